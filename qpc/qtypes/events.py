from __future__ import annotations
"""
Audit event types.

Every successful state change appends one `AuditEvent` to the durable audit
log (see qpc.store.state_db) and publishes it on the in-process event bus
(see qpc.context). Events are plain dataclasses with JSON-serializable fields.

Timestamps are host-clock UNIX seconds (the same clock the lifecycle engine
uses for timeout checks). `seq` is assigned by the store on append.
"""


from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class EventType(str, Enum):
    JOB_SUBMITTED = "JobSubmitted"
    ALGORITHM_EXECUTED = "AlgorithmExecuted"
    DECRYPT_GRANTED = "DecryptGranted"
    DECRYPTION_REQUESTED = "DecryptionRequested"
    JOB_COMPLETED = "JobCompleted"
    JOB_TIMED_OUT = "JobTimedOut"
    REFUND_ISSUED = "RefundIssued"
    REFUND_CLAIMED = "RefundClaimed"
    SECURITY_ALERT = "SecurityAlert"
    STATE_INITIALIZED = "StateInitialized"
    ENTANGLEMENT_CREATED = "EntanglementCreated"
    CIRCUIT_COMPILED = "CircuitCompiled"
    PRICE_OBFUSCATED = "PriceObfuscated"
    WORKER_ADDED = "WorkerAdded"
    WORKER_REMOVED = "WorkerRemoved"


class RefundReason(str, Enum):
    EXECUTE_TIMEOUT = "execute_timeout"
    REQUEST_TIMEOUT = "request_timeout"
    CALLBACK_TIMEOUT = "callback_timeout"
    MANUAL = "manual"


@dataclass
class AuditEvent:
    etype: EventType
    ts: float
    job_id: Optional[int] = None
    principal: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    seq: Optional[int] = None

    @staticmethod
    def new(etype: EventType, ts: float, *, job_id: Optional[int] = None,
            principal: Optional[str] = None, **data: Any) -> "AuditEvent":
        return AuditEvent(etype=etype, ts=float(ts), job_id=job_id,
                          principal=principal, data=dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "etype": self.etype.value,
            "ts": self.ts,
            "job_id": self.job_id,
            "principal": self.principal,
            "data": dict(self.data),
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "AuditEvent":
        return AuditEvent(
            etype=EventType(d["etype"]),
            ts=float(d["ts"]),
            job_id=int(d["job_id"]) if d.get("job_id") is not None else None,
            principal=d.get("principal"),
            data=dict(d.get("data") or {}),
            seq=int(d["seq"]) if d.get("seq") is not None else None,
        )


__all__ = ["EventType", "RefundReason", "AuditEvent"]
