from __future__ import annotations

"""
Shared record types for QPC.

Conventions
-----------
- Job ids are positive integers allocated monotonically from 1.
- Oracle request ids are positive integers; 0 means "no request".
- Ciphertext handles are "0x"-prefixed lowercase hex strings.
- Deposits and refund balances are integer base units.
- Timestamps are host-clock UNIX seconds (float).
"""

from typing import NewType

from .events import AuditEvent, EventType, RefundReason
from .job import (NO_REQUEST, TRANSITIONS, AlgorithmTag, Correlation, Job,
                  JobStatus, can_transition)

Principal = NewType("Principal", str)
Handle = NewType("Handle", str)

__all__ = [
    "Principal",
    "Handle",
    "NO_REQUEST",
    "TRANSITIONS",
    "AlgorithmTag",
    "Correlation",
    "Job",
    "JobStatus",
    "can_transition",
    "AuditEvent",
    "EventType",
    "RefundReason",
]
