from __future__ import annotations

"""
qpc.context — explicit service context

Everything an operation needs (durable store, host clock, encrypted value
backend, capability map, config, event bus) travels in one `ComputeContext`
that is passed to each component at construction. There are no module-level
counters or tables: job ids and the correlation table live in the store.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .clock import Clock
from .config import QPCConfig
from .fhe.acl import CapabilityMap
from .fhe.backend import MockFheBackend
from .qtypes.events import AuditEvent, EventType
from .store.state_db import QPCStateDB

log = logging.getLogger(__name__)

Subscriber = Callable[[AuditEvent], None]


class EventBus:
    """Synchronous in-process fan-out of committed audit events."""

    def __init__(self) -> None:
        self._subs: List[Subscriber] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        self._subs.append(fn)

        def _unsubscribe() -> None:
            if fn in self._subs:
                self._subs.remove(fn)

        return _unsubscribe

    def publish(self, ev: AuditEvent) -> None:
        for fn in list(self._subs):
            try:
                fn(ev)
            except Exception:
                # A broken subscriber must not undo a committed state change.
                log.exception("event subscriber failed", extra={"etype": ev.etype.value, "seq": ev.seq})


@dataclass
class ComputeContext:
    db: QPCStateDB
    clock: Clock
    fhe: MockFheBackend
    acl: CapabilityMap
    config: QPCConfig
    bus: EventBus = field(default_factory=EventBus)

    def now(self) -> float:
        return self.clock.now()

    def emit(
        self,
        etype: EventType,
        *,
        ts: Optional[float] = None,
        job_id: Optional[int] = None,
        principal: Optional[str] = None,
        **data: Any,
    ) -> AuditEvent:
        """Append an audit event; subscribers see it once the enclosing transaction commits."""
        ev = AuditEvent.new(etype, self.now() if ts is None else ts,
                            job_id=job_id, principal=principal, **data)
        with self.db.tx():
            self.db.append_event(ev)
            self.db.on_commit(lambda: self.bus.publish(ev))
        return ev


__all__ = ["EventBus", "ComputeContext", "Subscriber"]
