from __future__ import annotations

import dataclasses

import pytest

from modupdater.module import Module, UpdateScheduled


def test_module_dict_round_trip_uses_state_file_keys() -> None:
    module = Module(repo_path="qt/qtsvg", branch="dev", dependencies=["qt/qtbase"], tip="abc")

    assert module.to_dict() == {"RepoPath": "qt/qtsvg", "Branch": "dev", "Dependencies": ["qt/qtbase"], "Tip": "abc"}
    assert Module.from_dict(module.to_dict()) == module


def test_module_from_dict_fills_optional_fields() -> None:
    module = Module.from_dict({"RepoPath": "qt/qtsvg", "Branch": "dev", "Dependencies": None})

    assert module.dependencies == []
    assert module.tip == ""
    assert not module.has_dependency("qt/qtbase")


@pytest.mark.parametrize(
    ("raw", "match"),
    [
        ("qt/qtsvg", "must be a JSON object"),
        ({"Branch": "dev"}, "RepoPath"),
        ({"RepoPath": "qt/qtsvg"}, "Branch"),
        ({"RepoPath": "qt/qtsvg", "Branch": "dev", "Dependencies": "qt/qtbase"}, "Dependencies"),
        ({"RepoPath": "qt/qtsvg", "Branch": "dev", "Tip": 7}, "Tip"),
    ],
)
def test_module_from_dict_rejects_invalid_records(raw: object, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        Module.from_dict(raw)  # type: ignore[arg-type]


def test_update_scheduled_is_immutable() -> None:
    update = UpdateScheduled(commit_id="c1", change_id="I1", summary="s")

    with pytest.raises(dataclasses.FrozenInstanceError):
        update.commit_id = "c2"  # type: ignore[misc]
