"""modupdater round driver: load state, schedule, poll, persist.

One call to `ModuleUpdater.run_round()` performs exactly one round for one
(product, branch) pair and returns the batch. Waiting for dependencies or for the review
system is done by running the tool again later (cron, CI timer); nothing here blocks or
sleeps.

Round
1. Resolve the state file: `<state_dir>/state_<product>_<branch>.json`.
2. Load it. When there is none (first run, or after `reset`), build a fresh batch and
   populate todo/done from the product's `.gitmodules`.
3. `schedule_updates()`: propose updates for every todo module whose dependencies are done.
4. `check_pending_modules()`: move merged changes to done, prune after failures.
5. Persist: when the batch is complete the state file is removed, otherwise it is
   rewritten.

Restartability
The state file is the only thing carried between rounds. If a round aborts (a push or
staging call fails), the batch is still saved before the error propagates: per-module
transitions applied earlier in the round are valid states and a change that was already
uploaded must not be proposed twice.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from .backends import Backends, ProductSource
from .batch import ModuleUpdateBatch, state_file_name


@dataclass(frozen=True)
class UpdaterConfig:
    state_dir: Path
    product: str
    branch: str
    fetch_ref: str
    push_user: str
    manual_stage: bool
    foundational_module: str
    unmanaged_branch: str
    backends: Backends
    product_source: ProductSource

    @property
    def state_path(self) -> Path:
        return self.state_dir / state_file_name(self.product, self.branch)


class ModuleUpdater:
    def __init__(self, cfg: UpdaterConfig) -> None:
        self.cfg = cfg

    def load_or_init_batch(self, *, reset_state: bool = False) -> ModuleUpdateBatch:
        if reset_state:
            print(f"[modupdater] resetting state: {self.cfg.state_path}", file=sys.stderr)
            ModuleUpdateBatch.clear(self.cfg.state_path)

        batch = ModuleUpdateBatch.load(self.cfg.state_path)
        if batch is not None:
            if batch.product != self.cfg.product or batch.branch != self.cfg.branch:
                raise ValueError(
                    f"state file {self.cfg.state_path} belongs to {batch.product} ({batch.branch}), "
                    f"not {self.cfg.product} ({self.cfg.branch})"
                )
            print(
                f"[modupdater] resuming from {self.cfg.state_path}: todo={len(batch.todo)} "
                f"pending={len(batch.pending)} done={len(batch.done)}",
                file=sys.stderr,
            )
            return batch

        batch = ModuleUpdateBatch(product=self.cfg.product, branch=self.cfg.branch)
        batch.load_todo_list(
            self.cfg.product_source,
            fetch_ref=self.cfg.fetch_ref,
            foundational_module=self.cfg.foundational_module,
            unmanaged_branch=self.cfg.unmanaged_branch,
        )
        return batch

    def run_round(self, *, reset_state: bool = False) -> ModuleUpdateBatch:
        batch = self.load_or_init_batch(reset_state=reset_state)
        try:
            batch.schedule_updates(
                self.cfg.backends,
                push_user=self.cfg.push_user,
                manual_stage=self.cfg.manual_stage,
            )
        except Exception:
            batch.save(self.cfg.state_path)
            raise
        batch.check_pending_modules(self.cfg.backends)
        self.persist(batch)
        return batch

    def persist(self, batch: ModuleUpdateBatch) -> None:
        if batch.is_done():
            print("[modupdater] batch complete; clearing state", file=sys.stderr)
            ModuleUpdateBatch.clear(self.cfg.state_path)
            return
        batch.save(self.cfg.state_path)
        print(f"[modupdater] state saved: {self.cfg.state_path}", file=sys.stderr)
