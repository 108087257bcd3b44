"""Module entrypoint for ``python -m modupdater``.

A thin wrapper around :func:`modupdater.cli.main`: the CLI return code becomes the process
exit status via ``SystemExit(main())``. Equivalent to the ``modupdater`` console script.

Failures are not caught here. A round that cannot complete (push or staging failure, an
invalid answer from the update command, a malformed state file, a dependency cycle)
surfaces as an uncaught exception and a non-zero exit; the state saved before the failure
is resumed by the next run.
"""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
