"""modupdater.cli

Command-line entrypoint: run one update round for a product branch and print a summary.

Entry points
- `modupdater.cli:main`
- `python3 -m modupdater ...` (delegates to this module)

Usage
- `python3 -m modupdater --branch 6.8`
- `python3 -m modupdater --product qt/qt5 --branch dev --push-user qt_bot --updater-cmd qt-deps-tool`
- `python3 -m modupdater --branch 6.8 --summary-only`

Each invocation performs a single round; re-run it (e.g. from cron) until the summary
reports completion. Progress goes to stderr with a `[modupdater]` prefix; the summary goes
to stdout.

Flags
- `--product <path>`: product supermodule (default: `qt/qt5`).
- `--branch <name>`: target branch (required).
- `--fetch-ref <ref>`: ref of the product to read `.gitmodules` from (default:
  `refs/heads/<branch>`). Only used when no state exists yet.
- `--push-user <name>`: ssh user for pushing changes (default from the settings file).
- `--manual-stage`: upload changes but do not approve/stage them.
- `--dry-run`: walk the dependency graph without pushing, staging or polling (see below).
- `--updater-cmd <exe>`: manifest tool implementing the update protocol described in
  `modupdater.backends`. Required unless `--dry-run`.
- `--gerrit-url <url>`: review server REST base url.
- `--config <path>`: settings YAML (default: `modupdater.yml`, optional).
- `--state-dir <dir>`: where state files live (default: the control root).
- `--reset-state`: discard saved state and start from the product listing.
- `--summary-only`: print the summary of the saved state without running a round.

Control root and path resolution
The control root is `$MODUPDATER_CONTROL_ROOT` when set, otherwise the current working
directory. `--config`, `--state-dir` and the settings' `repos_dir` are resolved relative to
it. Review server credentials are read from `MODUPDATER_GERRIT_USER` and
`MODUPDATER_GERRIT_PASSWORD`.

Dry-run semantics
- Update backend: `StubUpdateBackend` (never schedules a change).
- Git: `DryRunGitClient` (still fetches the product listing; never pushes).
- Review: `DryRunGerritClient` (never stages; every change reads as MERGED).
State files are written as usual.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .backends import Backends, ExternalUpdateBackend, StubUpdateBackend
from .batch import ModuleUpdateBatch, state_file_name
from .config import load_settings
from .gerrit import DryRunGerritClient, GerritClient
from .git_ops import DryRunGitClient, GitClient
from .report import render_summary
from .updater import ModuleUpdater, UpdaterConfig


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="modupdater",
        description="Propagate dependency updates through a product's submodules, one round per run.",
    )
    p.add_argument("--product", default="qt/qt5", help="Product supermodule repository (default: qt/qt5).")
    p.add_argument("--branch", required=True, help="Target branch, e.g. '6.8' or 'dev'.")
    p.add_argument(
        "--fetch-ref",
        default="",
        help="Product ref to read .gitmodules from (default: refs/heads/<branch>).",
    )
    p.add_argument("--push-user", default=None, help="ssh user name used to push changes.")
    p.add_argument(
        "--manual-stage",
        action="store_true",
        help="Upload changes for review but do not approve and stage them.",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Walk the dependency graph without pushing, staging or polling the review server.",
    )
    p.add_argument("--updater-cmd", default=None, help="Manifest update command (see modupdater.backends).")
    p.add_argument("--gerrit-url", default=None, help="Review server REST base url.")
    p.add_argument(
        "--config",
        default="modupdater.yml",
        help="Settings YAML file (default: ./modupdater.yml; optional).",
    )
    p.add_argument("--state-dir", default=".", help="Directory holding state files (default: control root).")
    p.add_argument(
        "--reset-state",
        action="store_true",
        help="Discard saved state and start over from the product listing.",
    )
    p.add_argument(
        "--summary-only",
        action="store_true",
        help="Print the summary of the saved state without running a round.",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(list(sys.argv[1:] if argv is None else argv))

    control_root_env = os.environ.get("MODUPDATER_CONTROL_ROOT")
    control_root = (Path(control_root_env) if control_root_env else Path.cwd()).resolve()
    settings = load_settings((control_root / args.config).resolve())
    state_dir = (control_root / args.state_dir).resolve()
    repos_dir = (control_root / settings.repos_dir).resolve()

    if args.summary_only:
        batch = ModuleUpdateBatch.load(state_dir / state_file_name(args.product, args.branch))
        if batch is None:
            print(f"[modupdater] no saved state for {args.product} ({args.branch})", file=sys.stderr)
            return 0
        sys.stdout.write(render_summary(batch))
        return 0

    push_user = args.push_user if args.push_user is not None else settings.push_user
    updater_cmd = args.updater_cmd or settings.updater_cmd

    if args.dry_run:
        git: GitClient = DryRunGitClient(repos_dir=repos_dir, ssh_host=settings.ssh_host, ssh_port=settings.ssh_port)
        review = DryRunGerritClient()
        updater = StubUpdateBackend()
    else:
        if not updater_cmd:
            raise SystemExit("modupdater: --updater-cmd (or updater_cmd in the settings file) is required")
        if not push_user:
            raise SystemExit("modupdater: --push-user (or push_user in the settings file) is required")
        git = GitClient(repos_dir=repos_dir, ssh_host=settings.ssh_host, ssh_port=settings.ssh_port)
        review = GerritClient(
            base_url=args.gerrit_url or settings.gerrit_url,
            username=os.environ.get("MODUPDATER_GERRIT_USER"),
            password=os.environ.get("MODUPDATER_GERRIT_PASSWORD"),
        )
        updater = ExternalUpdateBackend(cmd=updater_cmd, cwd=repos_dir)

    cfg = UpdaterConfig(
        state_dir=state_dir,
        product=args.product,
        branch=args.branch,
        fetch_ref=args.fetch_ref,
        push_user=push_user,
        manual_stage=bool(args.manual_stage),
        foundational_module=settings.foundational_module,
        unmanaged_branch=settings.unmanaged_branch,
        backends=Backends(updater=updater, publisher=git, review=review, tips=git),
        product_source=git,
    )
    batch = ModuleUpdater(cfg).run_round(reset_state=bool(args.reset_state))
    sys.stdout.write(render_summary(batch))
    return 0
