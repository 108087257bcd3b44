"""modupdater: dependency-ordered manifest updates across a product's submodules.

Given a product supermodule (e.g. `qt/qt5`) and a release branch, modupdater brings every
tracked submodule's dependency manifest up to date with the current tips of its
dependencies. Updates are proposed as review changes and merged strictly in dependency
order: a module is only touched once everything it depends on is consistent.

What modupdater provides
- A CLI entrypoint (`modupdater.cli:main`, runnable via `python -m modupdater`) that runs
  one round per invocation and prints a summary.
- The batch state machine (`modupdater.batch.ModuleUpdateBatch`) that:
  - partitions modules into todo / pending / done,
  - schedules updates for modules whose dependencies are done,
  - resolves pending review changes and prunes dependents of rejected ones,
  - persists itself as `state_<product>_<branch>.json` so rounds can resume after restarts.
- Collaborator protocols (`modupdater.backends`) with real clients for git
  (`modupdater.git_ops`) and Gerrit (`modupdater.gerrit`), plus dry-run stand-ins.

What modupdater intentionally does not do
- Compute manifest contents: an external update command does that and hands back a commit.
- Retry failed remote calls or loop: a failed round raises, and the next round is
  scheduled by whatever runs the CLI.
- Re-open modules that already merged when one of their dependencies later fails.

Key exports from this module
- `__version__`: the package version string. (`__all__` is intentionally limited to this.)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
