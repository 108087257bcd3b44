"""modupdater.module

The per-repository data model and the outcome type returned by update backends.

Module
- `repo_path` is the stable identifier (e.g. `qt/qtdeclarative`); every batch map is keyed
  by it and the persisted state file uses it to link pending entries back to modules.
- `dependencies` lists repo paths this module's manifest pins. Only membership matters;
  order is kept for readable state files.
- `tip` is the last recorded tip revision of `branch`. It is refreshed after a change
  merges and may be empty for modules that were never refreshed.

Serialized form (part of the state file layout):
  {"RepoPath": str, "Branch": str, "Dependencies": [str], "Tip": str}

Update outcome
`compute_update()` backends return exactly one of three variants:
- `UpToDate`: the manifest already matches every dependency in done.
- `DependencyMissing`: at least one dependency is not yet done; try again next round.
- `UpdateScheduled`: a commit has been prepared. Only this variant carries a commit id,
  a change id and a summary, so an "up to date" result with a commit attached cannot be
  built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union


@dataclass
class Module:
    repo_path: str
    branch: str
    dependencies: list[str] = field(default_factory=list)
    tip: str = ""

    def has_dependency(self, repo_path: str) -> bool:
        return repo_path in self.dependencies

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Module":
        if not isinstance(d, Mapping):
            raise ValueError(f"module record must be a JSON object, got {type(d)}")
        repo_path = d.get("RepoPath")
        if not isinstance(repo_path, str) or not repo_path:
            raise ValueError("module record is missing required field: RepoPath")
        branch = d.get("Branch")
        if not isinstance(branch, str):
            raise ValueError(f"module {repo_path} is missing required field: Branch")
        deps = d.get("Dependencies") or []
        if not isinstance(deps, list) or any(not isinstance(x, str) for x in deps):
            raise ValueError(f"module {repo_path} has invalid Dependencies; expected array of strings")
        tip = d.get("Tip") or ""
        if not isinstance(tip, str):
            raise ValueError(f"module {repo_path} has invalid Tip; expected string")
        return Module(repo_path=repo_path, branch=branch, dependencies=list(deps), tip=tip)

    def to_dict(self) -> dict[str, Any]:
        return {
            "RepoPath": self.repo_path,
            "Branch": self.branch,
            "Dependencies": list(self.dependencies),
            "Tip": self.tip,
        }


@dataclass(frozen=True)
class UpToDate:
    pass


@dataclass(frozen=True)
class DependencyMissing:
    pass


@dataclass(frozen=True)
class UpdateScheduled:
    commit_id: str
    change_id: str
    summary: str


DependencyUpdate = Union[UpToDate, DependencyMissing, UpdateScheduled]
