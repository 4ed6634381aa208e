from __future__ import annotations

"""
Access registry: which principals may execute jobs.

Two roles are tracked:
  - operator: privileged; may execute jobs and administer workers
  - worker:   may execute jobs

`is_authorized_node` is the read-only view the lifecycle engine consumes.
Config seeds the registry the first time a database is opened; later
changes go through `add_worker` / `remove_worker` and persist.
"""

import logging
from typing import Iterable, List

from ..context import ComputeContext
from ..errors import InvalidInput, Unauthorized
from ..qtypes.events import EventType

log = logging.getLogger(__name__)

OPERATOR = "operator"
WORKER = "worker"

_SEEDED_KEY = "registry_seeded"


class AccessRegistry:
    def __init__(self, ctx: ComputeContext) -> None:
        self.ctx = ctx

    def seed(self, operators: Iterable[str], workers: Iterable[str]) -> bool:
        """Install initial principals once per database. Returns True if seeding happened."""
        db = self.ctx.db
        with db.tx():
            if db.get_meta(_SEEDED_KEY):
                return False
            now = self.ctx.now()
            for p in operators:
                db.add_principal(p, OPERATOR, now)
            for p in workers:
                db.add_principal(p, WORKER, now)
            db.set_meta(_SEEDED_KEY, "1")
        return True

    # ---- reads -----------------------------------------------------------

    def is_operator(self, principal: str) -> bool:
        return self.ctx.db.has_principal(principal, OPERATOR)

    def is_worker(self, principal: str) -> bool:
        return self.ctx.db.has_principal(principal, WORKER)

    def is_authorized_node(self, principal: str) -> bool:
        return self.is_worker(principal) or self.is_operator(principal)

    def workers(self) -> List[str]:
        return self.ctx.db.list_principals(WORKER)

    def operators(self) -> List[str]:
        return self.ctx.db.list_principals(OPERATOR)

    # ---- administration --------------------------------------------------

    def _require_operator(self, caller: str) -> None:
        if not self.is_operator(caller):
            raise Unauthorized("only operators may administer workers", principal=caller)

    def add_worker(self, worker: str, caller: str) -> bool:
        if not worker:
            raise InvalidInput("worker principal must be non-empty")
        with self.ctx.db.tx():
            self._require_operator(caller)
            added = self.ctx.db.add_principal(worker, WORKER, self.ctx.now())
            if added:
                self.ctx.emit(EventType.WORKER_ADDED, principal=caller, worker=worker)
                log.info("worker added", extra={"worker": worker, "by": caller})
        return added

    def remove_worker(self, worker: str, caller: str) -> bool:
        with self.ctx.db.tx():
            self._require_operator(caller)
            removed = self.ctx.db.remove_principal(worker, WORKER)
            if removed:
                self.ctx.emit(EventType.WORKER_REMOVED, principal=caller, worker=worker)
                log.info("worker removed", extra={"worker": worker, "by": caller})
        return removed


__all__ = ["AccessRegistry", "OPERATOR", "WORKER"]
