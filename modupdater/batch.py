"""modupdater.batch

The module update batch: the state machine that moves every tracked module of a product
branch from "outdated" to "consistent", one round at a time.

State
A `ModuleUpdateBatch` partitions modules into three places:
- `todo`: outdated, waiting either for dependencies or for an update to be proposed.
- `pending`: an update change was uploaded; waiting for the review system to merge or
  reject it. Ordered by submission.
- `done`: consistent with the current tips of their dependencies.
Every repo path is in exactly one of them at every observation point.
`failed_module_count` counts rejected changes and never decreases.

Round
A driver calls `schedule_updates()` and then `check_pending_modules()`, saving the batch
between rounds, until `is_done()`.

- `schedule_updates()` asks the update backend about every todo module:
  - up to date -> done
  - dependency missing -> stays in todo (not an error)
  - scheduled -> publish the commit, stage it for review (unless manual staging), then
    record a pending entry. A remote failure aborts the round before this module's state
    changes; modules already handled earlier in the round keep their new state.
- `check_pending_modules()` asks the review system about every pending change:
  - query error or STAGED / INTEGRATING / STAGING -> keep waiting
  - MERGED -> refresh the module's tip and move it to done
  - anything else (NEW, ABANDONED, ...) -> integration failure: count it once and remove
    every todo module that depends on the failed one, directly or indirectly.

Known limitation: the cascade only prunes todo. A module that already merged (done) or is
already in flight (pending) stays where it is even if one of its dependencies later fails
to integrate.

Persistence
The batch is saved as indented JSON under `state_<product>_<branch>.json` with the layout
    {"Product", "Branch", "Todo", "Done", "Pending", "FailedModuleCount"}
where Todo/Done map repo paths to module records and Pending is a list of
{"Module", "ChangeID"} objects. `load()` returns None when no state exists yet and raises
ValueError for anything it cannot trust.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .backends import Backends, ProductSource
from .loader import partition_submodules
from .module import DependencyMissing, Module, UpdateScheduled, UpToDate

TRANSIENT_STATUSES = frozenset({"STAGED", "INTEGRATING", "STAGING"})
MERGED_STATUS = "MERGED"


@dataclass
class PendingUpdate:
    module: Module
    change_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"Module": self.module.to_dict(), "ChangeID": self.change_id}

    @staticmethod
    def from_dict(d: Any) -> "PendingUpdate":
        if not isinstance(d, dict):
            raise ValueError(f"pending entry must be a JSON object, got {type(d)}")
        change_id = d.get("ChangeID")
        if not isinstance(change_id, str) or not change_id:
            raise ValueError("pending entry is missing required field: ChangeID")
        return PendingUpdate(module=Module.from_dict(d.get("Module")), change_id=change_id)


def sanitize_name(s: str) -> str:
    return s.lower().replace("/", "_").replace("-", "_")


def state_file_name(product: str, branch: str) -> str:
    return f"state_{sanitize_name(product)}_{sanitize_name(branch)}.json"


@dataclass
class ModuleUpdateBatch:
    product: str
    branch: str
    todo: dict[str, Module] = field(default_factory=dict)
    done: dict[str, Module] = field(default_factory=dict)
    pending: list[PendingUpdate] = field(default_factory=list)
    failed_module_count: int = 0

    @property
    def state_file_name(self) -> str:
        return state_file_name(self.product, self.branch)

    def is_done(self) -> bool:
        return not self.todo and not self.pending

    def load_todo_list(
        self,
        source: ProductSource,
        *,
        fetch_ref: str,
        foundational_module: str = "qt/qtbase",
        unmanaged_branch: str = "master",
    ) -> None:
        try:
            submodules = source.product_submodules(product=self.product, branch=self.branch, fetch_ref=fetch_ref)
        except Exception as exc:
            raise RuntimeError(f"error listing product modules of {self.product} ({self.branch}): {exc}") from exc

        self.todo, self.done = partition_submodules(
            self.branch,
            submodules,
            foundational_module=foundational_module,
            unmanaged_branch=unmanaged_branch,
        )
        print(
            f"[modupdater] loaded {self.product} ({self.branch}): todo={len(self.todo)} done={len(self.done)}",
            file=sys.stderr,
        )

    def schedule_updates(self, backends: Backends, *, push_user: str, manual_stage: bool = False) -> None:
        # Snapshot: modules leave todo while we iterate.
        for module in list(self.todo.values()):
            try:
                update = backends.updater.compute_update(module, self.done)
            except Exception as exc:
                raise RuntimeError(f"fatal error proposing module update for {module.repo_path}: {exc}") from exc

            print(f"[modupdater] update attempt for {module.repo_path}: {type(update).__name__}", file=sys.stderr)

            if isinstance(update, UpToDate):
                self.done[module.repo_path] = module
                del self.todo[module.repo_path]
            elif isinstance(update, DependencyMissing):
                # Waiting for (indirect) dependencies to land.
                continue
            elif isinstance(update, UpdateScheduled):
                try:
                    backends.publisher.publish_change(
                        repo_path=module.repo_path,
                        branch=module.branch,
                        commit_id=update.commit_id,
                        summary=update.summary,
                        push_user=push_user,
                    )
                except Exception as exc:
                    raise RuntimeError(f"error pushing change update for {module.repo_path}: {exc}") from exc

                if not manual_stage:
                    try:
                        backends.review.submit_for_review(
                            repo_path=module.repo_path,
                            branch=module.branch,
                            commit_id=update.commit_id,
                            summary=update.summary,
                        )
                    except Exception as exc:
                        raise RuntimeError(f"error staging change update for {module.repo_path}: {exc}") from exc

                self.pending.append(PendingUpdate(module=module, change_id=update.change_id))
                del self.todo[module.repo_path]
            else:
                raise RuntimeError(f"invalid state returned by update backend for {module.repo_path}: {update!r}")

    def check_pending_modules(self, backends: Backends) -> None:
        if not self.pending:
            return

        print("[modupdater] checking status of pending modules", file=sys.stderr)
        still_pending: list[PendingUpdate] = []
        for i, entry in enumerate(self.pending):
            module = entry.module
            try:
                status = backends.review.change_status(
                    repo_path=module.repo_path,
                    branch=module.branch,
                    change_id=entry.change_id,
                )
            except Exception as exc:
                print(f"[modupdater]     status check of {module.repo_path} gave error: {exc}", file=sys.stderr)
                still_pending.append(entry)
                continue

            print(f"[modupdater]     status of {module.repo_path}: {status}", file=sys.stderr)
            if status in TRANSIENT_STATUSES:
                still_pending.append(entry)
            elif status == MERGED_STATUS:
                try:
                    backends.tips.refresh_tip(module)
                except Exception as exc:
                    print(f"[modupdater]     refreshing tip of {module.repo_path} failed: {exc}", file=sys.stderr)
                self.done[module.repo_path] = module
            else:
                # Open, abandoned or unknown: the update failed to integrate.
                try:
                    removed = self.remove_dependents(module.repo_path)
                except Exception:
                    # Entries already handled have left pending; this one and the rest stay.
                    self.pending = still_pending + self.pending[i:]
                    raise
                self.failed_module_count += 1
                if removed:
                    print(
                        f"[modupdater]     dropped dependents of {module.repo_path}: {', '.join(removed)}",
                        file=sys.stderr,
                    )
        self.pending = still_pending

    def remove_dependents(self, failed_path: str) -> list[str]:
        """Remove every todo module that depends on `failed_path`, directly or transitively.

        The removal set is computed before `todo` is touched. A cycle among the collected
        modules is a configuration error and raises RuntimeError with todo unchanged.
        """
        doomed: set[str] = set()
        frontier = [failed_path]
        while frontier:
            root = frontier.pop()
            for path, module in self.todo.items():
                if path not in doomed and module.has_dependency(root):
                    doomed.add(path)
                    frontier.append(path)

        cycle = _find_cycle({path: self.todo[path] for path in doomed})
        if cycle:
            raise RuntimeError(f"dependency cycle among modules: {' -> '.join(cycle)}")

        for path in doomed:
            del self.todo[path]
        return sorted(doomed)

    def check_invariants(self) -> None:
        seen: dict[str, str] = {}
        duplicates: list[str] = []
        places = [
            ("todo", list(self.todo)),
            ("done", list(self.done)),
            ("pending", [p.module.repo_path for p in self.pending]),
        ]
        for place, paths in places:
            for path in paths:
                if path in seen:
                    duplicates.append(f"{path} ({seen[path]}, {place})")
                else:
                    seen[path] = place
        if duplicates:
            raise ValueError(f"modules tracked in more than one place: {', '.join(duplicates)}")
        for place, modules in (("todo", self.todo), ("done", self.done)):
            for key, module in modules.items():
                if key != module.repo_path:
                    raise ValueError(f"{place} key {key} does not match module {module.repo_path}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "Product": self.product,
            "Branch": self.branch,
            "Todo": {path: m.to_dict() for path, m in self.todo.items()},
            "Done": {path: m.to_dict() for path, m in self.done.items()},
            "Pending": [p.to_dict() for p in self.pending],
            "FailedModuleCount": self.failed_module_count,
        }

    @staticmethod
    def from_dict(raw: Any) -> "ModuleUpdateBatch":
        if not isinstance(raw, dict):
            raise ValueError(f"state must be a JSON object, got {type(raw)}")

        product = raw.get("Product")
        branch = raw.get("Branch")
        if not isinstance(product, str) or not product:
            raise ValueError("state is missing required field: Product")
        if not isinstance(branch, str) or not branch:
            raise ValueError("state is missing required field: Branch")

        todo = _module_map(raw.get("Todo"), name="Todo")
        done = _module_map(raw.get("Done"), name="Done")

        pending_raw = raw.get("Pending") or []
        if not isinstance(pending_raw, list):
            raise ValueError("state field Pending must be an array")
        pending = [PendingUpdate.from_dict(p) for p in pending_raw]

        failed = raw.get("FailedModuleCount", 0)
        if not isinstance(failed, int) or isinstance(failed, bool) or failed < 0:
            raise ValueError(f"state field FailedModuleCount must be a non-negative integer, got {failed!r}")

        batch = ModuleUpdateBatch(
            product=product,
            branch=branch,
            todo=todo,
            done=done,
            pending=pending,
            failed_module_count=failed,
        )
        batch.check_invariants()
        return batch

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=4) + "\n", encoding="utf-8")

    @staticmethod
    def load(path: Path) -> "ModuleUpdateBatch | None":
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"error decoding JSON state file {path}: {exc}") from exc
        return ModuleUpdateBatch.from_dict(raw)

    @staticmethod
    def clear(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            print(f"[modupdater] could not remove state file {path}: {exc}", file=sys.stderr)


def _module_map(raw: Any, *, name: str) -> dict[str, Module]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"state field {name} must be an object keyed by repo path")
    return {str(k): Module.from_dict(v) for k, v in raw.items()}


def _find_cycle(modules: dict[str, Module]) -> list[str] | None:
    """Return one dependency cycle among `modules` (edges restricted to the map), if any."""
    visiting: set[str] = set()
    finished: set[str] = set()

    for start in sorted(modules):
        if start in finished:
            continue
        stack: list[tuple[str, list[str]]] = [(start, _edges(modules, start))]
        path = [start]
        visiting.add(start)
        while stack:
            node, edges = stack[-1]
            if not edges:
                stack.pop()
                path.pop()
                visiting.discard(node)
                finished.add(node)
                continue
            nxt = edges.pop()
            if nxt in visiting:
                return path[path.index(nxt):] + [nxt]
            if nxt in finished:
                continue
            visiting.add(nxt)
            path.append(nxt)
            stack.append((nxt, _edges(modules, nxt)))
    return None


def _edges(modules: dict[str, Module], path: str) -> list[str]:
    return [d for d in modules[path].dependencies if d in modules]
