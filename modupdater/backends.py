"""modupdater.backends

Protocols for the collaborators the batch state machine calls, plus the update backends.

The batch (`modupdater/batch.py`) never talks to git, the review system or the manifest
tooling directly; it programs against the small protocols below so a round can be driven
by real clients, by `--dry-run` stand-ins, or by test fakes.

Protocols
- UpdateBackend.compute_update(module, done) -> DependencyUpdate
  Decides whether `module`'s manifest needs a change given the modules currently in done.
  Returns one of `UpToDate`, `DependencyMissing`, `UpdateScheduled`. Raising aborts the
  round.
- ChangePublisher.publish_change(repo_path, branch, commit_id, summary, push_user)
  Uploads a prepared commit for review. Implemented by `GitClient`.
- ReviewBackend.submit_for_review(...) / change_status(...)
  Approves and stages an uploaded change, and reports the status of a change by id.
  Implemented by `GerritClient`.
- TipResolver.refresh_tip(module)
  Re-reads the tip revision of `module.branch` after a change merged. Implemented by
  `GitClient`.
- ProductSource.product_submodules(product, branch, fetch_ref) -> {repo_path: Submodule}
  Lists the product's submodules. Implemented by `GitClient`.

`Backends` bundles one implementation of each so call sites pass a single object.

Update backends
- StubUpdateBackend: used by `--dry-run`. Reports `DependencyMissing` while any dependency
  is outside done and `UpToDate` otherwise, so a dry run walks the graph in dependency
  order without producing any change.
- ExternalUpdateBackend: shells out to a manifest tool. The command is run as
  `<cmd> <repo_path> <branch>` with a JSON document on stdin:
      {"module": <module record>, "done": {"<repo_path>": "<tip>", ...}}
  and must print a single JSON object on stdout:
      {"result": "up_to_date"}
      {"result": "dependency_missing"}
      {"result": "scheduled", "commit_id": "...", "change_id": "...", "summary": "..."}
  A non-zero exit raises `RuntimeError`; output that does not match raises `ValueError`.
  The tool is expected to have created `commit_id` in the module's local clone so the
  publisher can push it.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol

from .loader import Submodule
from .module import DependencyMissing, DependencyUpdate, Module, UpdateScheduled, UpToDate


class UpdateBackend(Protocol):
    def compute_update(self, module: Module, done: Mapping[str, Module]) -> DependencyUpdate: ...


class ChangePublisher(Protocol):
    def publish_change(
        self,
        *,
        repo_path: str,
        branch: str,
        commit_id: str,
        summary: str,
        push_user: str,
    ) -> None: ...


class ReviewBackend(Protocol):
    def submit_for_review(self, *, repo_path: str, branch: str, commit_id: str, summary: str) -> None: ...

    def change_status(self, *, repo_path: str, branch: str, change_id: str) -> str: ...


class TipResolver(Protocol):
    def refresh_tip(self, module: Module) -> None: ...


class ProductSource(Protocol):
    def product_submodules(self, *, product: str, branch: str, fetch_ref: str) -> dict[str, Submodule]: ...


@dataclass(frozen=True)
class Backends:
    updater: UpdateBackend
    publisher: ChangePublisher
    review: ReviewBackend
    tips: TipResolver


class StubUpdateBackend:
    """Dependency-order walker for `--dry-run`; never schedules a change."""

    def compute_update(self, module: Module, done: Mapping[str, Module]) -> DependencyUpdate:
        if any(dep not in done for dep in module.dependencies):
            return DependencyMissing()
        return UpToDate()


class ExternalUpdateBackend:
    def __init__(self, *, cmd: str, cwd: Path) -> None:
        self.cmd = cmd
        self.cwd = cwd

    def compute_update(self, module: Module, done: Mapping[str, Module]) -> DependencyUpdate:
        payload = {
            "module": module.to_dict(),
            "done": {path: m.tip for path, m in done.items()},
        }
        p = subprocess.run(
            [self.cmd, module.repo_path, module.branch],
            cwd=self.cwd,
            input=json.dumps(payload),
            text=True,
            capture_output=True,
            check=False,
        )
        if p.returncode != 0:
            raise RuntimeError(
                f"Update command failed for {module.repo_path} with exit code {p.returncode}: {p.stderr.strip()}"
            )
        try:
            data = json.loads(p.stdout)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Update command returned invalid JSON for {module.repo_path}: {exc}") from exc
        return parse_update_result(data, repo_path=module.repo_path)


def parse_update_result(data: Any, *, repo_path: str) -> DependencyUpdate:
    if not isinstance(data, dict):
        raise ValueError(f"Update result for {repo_path} is not a JSON object: {type(data)}")

    result = data.get("result")
    if result == "up_to_date":
        return UpToDate()
    if result == "dependency_missing":
        return DependencyMissing()
    if result != "scheduled":
        raise ValueError(f"Update result for {repo_path} has unknown result: {result!r}")

    fields: dict[str, str] = {}
    for key in ("commit_id", "change_id", "summary"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Scheduled update for {repo_path} missing required string: {key}")
        fields[key] = value.strip()
    return UpdateScheduled(**fields)
