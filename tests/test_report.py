from __future__ import annotations

from modupdater.batch import ModuleUpdateBatch, PendingUpdate
from modupdater.module import Module
from modupdater.report import render_summary

HEADER = "Summary of git repository dependency update for target branch 6.8 based off of qt/qt5"


def _m(path: str) -> Module:
    return Module(repo_path=path, branch="6.8")


def test_summary_of_complete_batch_without_failures() -> None:
    batch = ModuleUpdateBatch(product="qt/qt5", branch="6.8", done={"qt/qtbase": _m("qt/qtbase")})

    assert render_summary(batch) == (
        f"{HEADER}\n    No updates are necessary for any modules - everything is up-to-date\n"
    )


def test_summary_of_complete_batch_with_failures() -> None:
    batch = ModuleUpdateBatch(product="qt/qt5", branch="6.8", failed_module_count=2)

    assert render_summary(batch) == (
        f"{HEADER}\n    2 modules failed to be updated. Check the review system for the 6.8 branch\n"
    )


def test_summary_of_batch_in_progress_lists_each_partition() -> None:
    batch = ModuleUpdateBatch(
        product="qt/qt5",
        branch="6.8",
        todo={"qt/qtwebengine": _m("qt/qtwebengine"), "qt/qtdeclarative": _m("qt/qtdeclarative")},
        done={"qt/qtsvg": _m("qt/qtsvg"), "qt/qtbase": _m("qt/qtbase")},
        pending=[
            PendingUpdate(module=_m("qt/qtshadertools"), change_id="I2"),
            PendingUpdate(module=_m("qt/qtimageformats"), change_id="I1"),
        ],
        failed_module_count=1,
    )

    assert render_summary(batch).splitlines() == [
        HEADER,
        "The following modules have been brought up-to-date:",
        "    qt/qtbase",
        "    qt/qtsvg",
        "The following modules are currently in progress:",
        "    qt/qtshadertools",
        "    qt/qtimageformats",
        "The following modules are outdated and are either waiting for one of their dependencies "
        "or are ready for an update:",
        "    qt/qtdeclarative",
        "    qt/qtwebengine",
        "",
    ]


def test_summary_omits_empty_done_and_pending_sections() -> None:
    batch = ModuleUpdateBatch(
        product="qt/qt5",
        branch="6.8",
        pending=[PendingUpdate(module=_m("qt/qtsvg"), change_id="I1")],
    )

    text = render_summary(batch)

    assert "brought up-to-date" not in text
    assert "currently in progress:\n    qt/qtsvg\n" in text
    assert text.endswith("or are ready for an update:\n\n")
