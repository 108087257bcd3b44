"""Human-readable summary of a module update batch.

`render_summary()` is pure: it reads the batch and returns text, the CLI prints it to
stdout. The layout is for people, not parsers:

    Summary of git repository dependency update for target branch <branch> based off of <product>

When the batch is complete, one indented line follows: either the number of modules that
failed to integrate or a note that nothing needed updating. Otherwise up to three listings
follow, each under its own heading and one indented repo path per line:
- modules brought up to date (done, sorted),
- modules in progress (pending, in submission order),
- outdated modules (todo, sorted).
"""

from __future__ import annotations

from .batch import ModuleUpdateBatch

INDENT = "    "


def render_summary(batch: ModuleUpdateBatch) -> str:
    lines: list[str] = [
        f"Summary of git repository dependency update for target branch {batch.branch} based off of {batch.product}"
    ]

    if batch.is_done():
        if batch.failed_module_count > 0:
            lines.append(
                f"{INDENT}{batch.failed_module_count} modules failed to be updated. "
                f"Check the review system for the {batch.branch} branch"
            )
        else:
            lines.append(f"{INDENT}No updates are necessary for any modules - everything is up-to-date")
        return "\n".join(lines) + "\n"

    if batch.done:
        lines.append("The following modules have been brought up-to-date:")
        lines.extend(f"{INDENT}{path}" for path in sorted(batch.done))

    if batch.pending:
        lines.append("The following modules are currently in progress:")
        lines.extend(f"{INDENT}{p.module.repo_path}" for p in batch.pending)

    lines.append(
        "The following modules are outdated and are either waiting for one of their dependencies "
        "or are ready for an update:"
    )
    lines.extend(f"{INDENT}{path}" for path in sorted(batch.todo))
    lines.append("")
    return "\n".join(lines) + "\n"
