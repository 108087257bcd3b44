"""Git operations for modupdater.

This module provides two implementations with the same public surface:

- `GitClient`: the real implementation that shells out to `git` via `subprocess`.
- `DryRunGitClient`: keeps the read-only product listing but turns every operation that
  touches a remote (push) or mutates a module (tip refresh) into a no-op. Used by
  `--dry-run`.

GitClient API (public methods)
Each method maps closely to one or two git commands, so callers can reason about side
effects.

- `remote_url(repo_path, user=None) -> str`
  The ssh url of a repository on the review host:
  `ssh://[<user>@]<ssh_host>:<ssh_port>/<repo_path>`.
- `publish_change(repo_path, branch, commit_id, summary, push_user) -> None`
  Pushes `commit_id` from the module's local clone (`<repos_dir>/<repo_path>`) to
  `refs/for/<branch>`, which uploads it as a review change. `summary` is only logged.
- `remote_tip(repo_path, branch) -> str`
  Returns the sha of `refs/heads/<branch>` as reported by `git ls-remote`. Raises
  `RuntimeError` when the branch does not exist on the remote.
- `refresh_tip(module) -> None`
  Stores `remote_tip(...)` into `module.tip`.
- `product_submodules(product, branch, fetch_ref) -> dict[str, Submodule]`
  Fetches `fetch_ref` (default: `refs/heads/<branch>`) of the product repository into
  its local clone and parses `.gitmodules` from `FETCH_HEAD`.

Side effects and safety notes
- All invocations go through `_git(...)`, which uses `check=True` and raises
  `subprocess.CalledProcessError` on failure. The batch wraps those into round-aborting
  errors.
- `product_submodules()` needs a local clone of the product under `repos_dir`; it only
  fetches, it never checks anything out.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from .loader import Submodule, parse_gitmodules
from .module import Module


class GitClient:
    def __init__(self, *, repos_dir: Path, ssh_host: str, ssh_port: int = 29418) -> None:
        self.repos_dir = repos_dir
        self.ssh_host = ssh_host
        self.ssh_port = ssh_port

    def remote_url(self, repo_path: str, *, user: str | None = None) -> str:
        userinfo = f"{user}@" if user else ""
        return f"ssh://{userinfo}{self.ssh_host}:{self.ssh_port}/{repo_path}"

    def clone_dir(self, repo_path: str) -> Path:
        return self.repos_dir / repo_path

    def publish_change(
        self,
        *,
        repo_path: str,
        branch: str,
        commit_id: str,
        summary: str,
        push_user: str,
    ) -> None:
        print(f"[modupdater] pushing {commit_id} to {repo_path} ({branch}): {summary}", file=sys.stderr)
        self._git(
            ["push", self.remote_url(repo_path, user=push_user), f"{commit_id}:refs/for/{branch}"],
            cwd=self.clone_dir(repo_path),
        )

    def remote_tip(self, *, repo_path: str, branch: str) -> str:
        ref = f"refs/heads/{branch}"
        out = self._git(["ls-remote", self.remote_url(repo_path), ref], cwd=self.repos_dir)
        for line in out.splitlines():
            sha, _, name = line.partition("\t")
            if name.strip() == ref and sha.strip():
                return sha.strip()
        raise RuntimeError(f"Branch {branch} not found in {repo_path}")

    def refresh_tip(self, module: Module) -> None:
        module.tip = self.remote_tip(repo_path=module.repo_path, branch=module.branch)

    def product_submodules(self, *, product: str, branch: str, fetch_ref: str) -> dict[str, Submodule]:
        ref = fetch_ref or f"refs/heads/{branch}"
        cwd = self.clone_dir(product)
        self._git(["fetch", self.remote_url(product), ref], cwd=cwd)
        text = self._git(["show", "FETCH_HEAD:.gitmodules"], cwd=cwd)
        return parse_gitmodules(text, product=product)

    def _git(self, args: list[str], *, cwd: Path) -> str:
        p = subprocess.run(
            ["git", *args],
            cwd=cwd,
            text=True,
            check=True,
            capture_output=True,
        )
        return p.stdout


class DryRunGitClient(GitClient):
    """Reads the product listing but never pushes or updates modules."""

    def publish_change(  # type: ignore[override]
        self,
        *,
        repo_path: str,
        branch: str,
        commit_id: str,
        summary: str,
        push_user: str,
    ) -> None:
        print(f"[modupdater] (dry-run) would push {commit_id} to {repo_path} ({branch})", file=sys.stderr)

    def refresh_tip(self, module: Module) -> None:  # type: ignore[override]
        return
