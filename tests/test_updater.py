from __future__ import annotations

from pathlib import Path
from typing import Mapping

import pytest

from modupdater.backends import Backends
from modupdater.batch import ModuleUpdateBatch, PendingUpdate
from modupdater.loader import Submodule
from modupdater.module import DependencyMissing, DependencyUpdate, Module, UpdateScheduled, UpToDate
from modupdater.updater import ModuleUpdater, UpdaterConfig


class FakeSource:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    def product_submodules(self, *, product: str, branch: str, fetch_ref: str) -> dict[str, Submodule]:
        self.calls.append((product, branch, fetch_ref))
        return {
            "qt/qtbase": Submodule(name="qtbase", repo_path="qt/qtbase", branch="dev"),
            "qt/qtsvg": Submodule(name="qtsvg", repo_path="qt/qtsvg", branch="dev", dependencies=["qt/qtbase"]),
            "qt/qtdeclarative": Submodule(
                name="qtdeclarative", repo_path="qt/qtdeclarative", branch="dev", dependencies=["qt/qtsvg"]
            ),
        }


class ScriptedUpdater:
    """Schedules a change for every module whose dependencies are done."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()

    def compute_update(self, module: Module, done: Mapping[str, Module]) -> DependencyUpdate:
        if module.repo_path in self.fail_for:
            raise RuntimeError("manifest broken")
        if any(dep not in done for dep in module.dependencies):
            return DependencyMissing()
        if module.repo_path == "qt/qtsvg":
            return UpToDate()
        return UpdateScheduled(commit_id=f"c-{module.repo_path}", change_id=f"I-{module.repo_path}", summary="s")


class FakeRemote:
    def __init__(self, status: str = "MERGED") -> None:
        self.status = status
        self.published: list[str] = []
        self.staged: list[str] = []

    def publish_change(self, *, repo_path: str, branch: str, commit_id: str, summary: str, push_user: str) -> None:
        self.published.append(repo_path)

    def submit_for_review(self, *, repo_path: str, branch: str, commit_id: str, summary: str) -> None:
        self.staged.append(repo_path)

    def change_status(self, *, repo_path: str, branch: str, change_id: str) -> str:
        return self.status

    def refresh_tip(self, module: Module) -> None:
        module.tip = "new-tip"


def _cfg(tmp_path: Path, *, updater: object | None = None, remote: FakeRemote | None = None, source: object | None = None) -> UpdaterConfig:
    remote = remote or FakeRemote()
    return UpdaterConfig(
        state_dir=tmp_path / "state",
        product="qt/qt5",
        branch="dev",
        fetch_ref="",
        push_user="bot",
        manual_stage=False,
        foundational_module="qt/qtbase",
        unmanaged_branch="master",
        backends=Backends(updater=updater or ScriptedUpdater(), publisher=remote, review=remote, tips=remote),  # type: ignore[arg-type]
        product_source=source or FakeSource(),  # type: ignore[arg-type]
    )


def test_state_path_uses_sanitized_name(tmp_path: Path) -> None:
    assert _cfg(tmp_path).state_path == tmp_path / "state" / "state_qt_qt5_dev.json"


def test_first_round_loads_listing_and_saves_state(tmp_path: Path) -> None:
    source = FakeSource()
    remote = FakeRemote(status="STAGED")
    cfg = _cfg(tmp_path, remote=remote, source=source)

    batch = ModuleUpdater(cfg).run_round()

    assert source.calls == [("qt/qt5", "dev", "")]
    assert set(batch.done) == {"qt/qtbase", "qt/qtsvg"}
    assert [p.module.repo_path for p in batch.pending] == ["qt/qtdeclarative"]
    assert remote.published == ["qt/qtdeclarative"]
    assert remote.staged == ["qt/qtdeclarative"]
    assert ModuleUpdateBatch.load(cfg.state_path) == batch


def test_rounds_resume_from_state_until_complete(tmp_path: Path) -> None:
    remote = FakeRemote(status="STAGED")
    source = FakeSource()
    cfg = _cfg(tmp_path, remote=remote, source=source)
    ModuleUpdater(cfg).run_round()

    remote.status = "MERGED"
    batch = ModuleUpdater(cfg).run_round()

    assert len(source.calls) == 1
    assert batch.is_done()
    assert batch.done["qt/qtdeclarative"].tip == "new-tip"
    assert not cfg.state_path.exists()
    # Already published changes are not proposed again.
    assert remote.published == ["qt/qtdeclarative"]


def test_round_saves_state_before_reraising_scheduling_errors(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path, updater=ScriptedUpdater(fail_for={"qt/qtdeclarative"}))

    with pytest.raises(RuntimeError, match="fatal error proposing module update for qt/qtdeclarative"):
        ModuleUpdater(cfg).run_round()

    saved = ModuleUpdateBatch.load(cfg.state_path)
    assert saved is not None
    # qt/qtsvg was handled earlier in the same round and keeps its transition.
    assert set(saved.done) == {"qt/qtbase", "qt/qtsvg"}
    assert set(saved.todo) == {"qt/qtdeclarative"}


def test_listing_failure_propagates_without_state(tmp_path: Path) -> None:
    class BrokenSource:
        def product_submodules(self, *, product: str, branch: str, fetch_ref: str) -> dict[str, Submodule]:
            raise OSError("no clone of qt/qt5")

    cfg = _cfg(tmp_path, source=BrokenSource())

    with pytest.raises(RuntimeError, match="error listing product modules"):
        ModuleUpdater(cfg).run_round()

    assert not cfg.state_path.exists()


def test_reset_state_discards_saved_batch(tmp_path: Path) -> None:
    source = FakeSource()
    cfg = _cfg(tmp_path, source=source)
    stale = ModuleUpdateBatch(
        product="qt/qt5",
        branch="dev",
        pending=[PendingUpdate(module=Module("qt/qtstale", "dev"), change_id="Istale")],
    )
    stale.save(cfg.state_path)

    batch = ModuleUpdater(cfg).load_or_init_batch(reset_state=True)

    assert source.calls == [("qt/qt5", "dev", "")]
    assert batch.pending == []
    assert "qt/qtstale" not in batch.todo


def test_saved_state_for_other_product_is_rejected(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    ModuleUpdateBatch(product="qt/other", branch="dev", todo={"qt/a": Module("qt/a", "dev")}).save(cfg.state_path)

    with pytest.raises(ValueError, match="belongs to qt/other"):
        ModuleUpdater(cfg).load_or_init_batch()


def test_persist_clears_state_when_done(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    cfg.state_path.parent.mkdir(parents=True)
    cfg.state_path.write_text("{}", encoding="utf-8")

    ModuleUpdater(cfg).persist(ModuleUpdateBatch(product="qt/qt5", branch="dev", failed_module_count=1))

    assert not cfg.state_path.exists()
