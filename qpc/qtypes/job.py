from __future__ import annotations

"""
Job record and lifecycle enums.

Status graph (forward only):

    Submitted ──execute──▶ DecryptPending ──callback──▶ Completed
        │                      │
        └──────timeout─────────┴──────────▶ TimedOut ──▶ Refunded

`Completed` and `Refunded` are terminal. A job is never deleted.
"""

from dataclasses import dataclass, asdict
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Mapping, Optional


NO_REQUEST = 0  # outstanding_request_id sentinel / requestDecryption "redirected" result


class JobStatus(str, Enum):
    SUBMITTED = "Submitted"
    DECRYPT_PENDING = "DecryptPending"
    COMPLETED = "Completed"
    TIMED_OUT = "TimedOut"
    REFUNDED = "Refunded"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.REFUNDED)


# Allowed forward edges. Anything not listed is rejected by the engine.
TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.SUBMITTED: frozenset({JobStatus.DECRYPT_PENDING, JobStatus.TIMED_OUT}),
    JobStatus.DECRYPT_PENDING: frozenset({JobStatus.COMPLETED, JobStatus.TIMED_OUT}),
    JobStatus.TIMED_OUT: frozenset({JobStatus.REFUNDED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.REFUNDED: frozenset(),
}


def can_transition(src: JobStatus, dst: JobStatus) -> bool:
    return dst in TRANSITIONS[src]


class AlgorithmTag(IntEnum):
    """Bounded algorithm selector validated at submission."""
    SHOR = 0
    GROVER = 1
    VQE = 2
    QAOA = 3
    QUANTUM_ML = 4
    CUSTOM_CIRCUIT = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "AlgorithmTag":
        """Accept an int tag or a case-insensitive name; raise ValueError otherwise."""
        if isinstance(value, AlgorithmTag):
            return value
        if isinstance(value, bool):
            raise ValueError(f"invalid algorithm tag: {value!r}")
        if isinstance(value, int):
            return cls(value)
        s = str(value).strip()
        if s.lstrip("-").isdigit():
            return cls(int(s))
        try:
            return cls[s.upper().replace("-", "_")]
        except KeyError:
            raise ValueError(f"invalid algorithm tag: {value!r}") from None


@dataclass
class Job:
    job_id: int
    depositor: str
    encrypted_input: str            # ciphertext handle (0x…)
    algorithm: AlgorithmTag
    deposit: int
    submit_time: float
    status: JobStatus = JobStatus.SUBMITTED
    encrypted_result: Optional[str] = None   # written exactly once by execute
    complete_time: Optional[float] = None
    outstanding_request_id: int = NO_REQUEST
    refund_claimed: bool = False
    plaintext_result: Optional[int] = None
    resource_units: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.terminal

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["algorithm"] = int(self.algorithm)
        d["algorithm_name"] = self.algorithm.label
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Job":
        return Job(
            job_id=int(d["job_id"]),
            depositor=str(d["depositor"]),
            encrypted_input=str(d["encrypted_input"]),
            algorithm=AlgorithmTag(int(d["algorithm"])),
            deposit=int(d["deposit"]),
            submit_time=float(d["submit_time"]),
            status=JobStatus(d.get("status", JobStatus.SUBMITTED.value)),
            encrypted_result=d.get("encrypted_result"),
            complete_time=float(d["complete_time"]) if d.get("complete_time") is not None else None,
            outstanding_request_id=int(d.get("outstanding_request_id") or NO_REQUEST),
            refund_claimed=bool(d.get("refund_claimed", False)),
            plaintext_result=int(d["plaintext_result"]) if d.get("plaintext_result") is not None else None,
            resource_units=int(d.get("resource_units") or 0),
        )


@dataclass
class Correlation:
    """One row of the decryption request correlation table."""
    request_id: int
    job_id: int
    created_at: float
    deadline: float
    consumed: bool = False
    consumed_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "NO_REQUEST",
    "JobStatus",
    "TRANSITIONS",
    "can_transition",
    "AlgorithmTag",
    "Job",
    "Correlation",
]
