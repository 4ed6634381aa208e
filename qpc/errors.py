from __future__ import annotations
# qpc/errors.py
"""
Error types for the Quantum Privacy Compute (QPC) job service. These are
lightweight, serializable, and safe to surface over RPC/logs.

Validation failures (`InvalidInput`, `Unauthorized`, `NotFound`,
`InvalidState`, `NothingToClaim`) abort an operation atomically. `Expired` and
`SecurityAlert` describe *handled* control paths: the lifecycle engine turns
them into a defined transition (refund, rejection) and records them in the
audit log instead of raising them to the caller. `TransferFailure` is raised
by the refund ledger after the claim has been rolled back.

Exports:
- QPCError (base)
- InvalidInput
- Unauthorized
- NotFound
- InvalidState
- Expired
- SecurityAlert
- TransferFailure
- NothingToClaim
- FheError
- StoreError
"""


from typing import Any, Dict, Mapping, Optional
import json


class QPCError(Exception):
    """Base class for QPC domain errors."""

    code: str = "QPC_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            # Keep this compact and stable for logs
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class InvalidInput(QPCError):
    """Bad algorithm tag, size mismatch, under-minimum deposit, out-of-range value, etc."""
    code = "QPC_INVALID_INPUT"


class Unauthorized(QPCError):
    """The calling principal may not perform this operation."""
    code = "QPC_UNAUTHORIZED"

    def __init__(
        self,
        message: str = "unauthorized",
        *,
        principal: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if principal is not None:
            d.setdefault("principal", principal)
        super().__init__(message, details=d)


class NotFound(QPCError):
    """Referenced job / price record / state does not exist."""
    code = "QPC_NOT_FOUND"


class InvalidState(QPCError):
    """The job is in the wrong lifecycle state for the call."""
    code = "QPC_INVALID_STATE"

    def __init__(
        self,
        message: str = "invalid state",
        *,
        job_id: Optional[int] = None,
        status: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if job_id is not None:
            d["job_id"] = int(job_id)
        if status is not None:
            d["status"] = status
        super().__init__(message, details=d)


class Expired(QPCError):
    """
    A lazy timeout was detected mid-operation. The engine redirects into the
    refund path rather than raising this; the instance is kept for audit/logs.
    """
    code = "QPC_EXPIRED"

    def __init__(
        self,
        *,
        job_id: int,
        stage: str,
        deadline: float,
        now: float,
        message: str = "job expired",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"job_id": int(job_id), "stage": stage, "deadline": deadline, "now": now})
        super().__init__(message, details=d)


class SecurityAlert(QPCError):
    """
    An oracle callback did not match the outstanding correlation entry
    (stale, forged, or duplicated). Logged and recorded; never aborts other work.
    """
    code = "QPC_SECURITY_ALERT"

    def __init__(
        self,
        *,
        request_id: int,
        job_id: Optional[int] = None,
        outstanding_request_id: Optional[int] = None,
        message: str = "callback correlation mismatch",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d["request_id"] = int(request_id)
        if job_id is not None:
            d["job_id"] = int(job_id)
        if outstanding_request_id is not None:
            d["outstanding_request_id"] = int(outstanding_request_id)
        super().__init__(message, details=d)


class TransferFailure(QPCError):
    """A refund payout failed; the claim was rolled back and the balance restored."""
    code = "QPC_TRANSFER_FAILURE"


class NothingToClaim(QPCError):
    """The depositor has no pending refund balance."""
    code = "QPC_NOTHING_TO_CLAIM"


class FheError(QPCError):
    """Malformed ciphertext, bit-width mismatch, or arithmetic domain error."""
    code = "QPC_FHE_ERROR"


class StoreError(QPCError):
    """Persistent state failures (schema mismatch, corrupt rows)."""
    code = "QPC_STORE_ERROR"


__all__ = [
    "QPCError",
    "InvalidInput",
    "Unauthorized",
    "NotFound",
    "InvalidState",
    "Expired",
    "SecurityAlert",
    "TransferFailure",
    "NothingToClaim",
    "FheError",
    "StoreError",
]
