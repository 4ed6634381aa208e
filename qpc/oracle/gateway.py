from __future__ import annotations

"""
Decryption oracle gateway.

A pure translation layer between the lifecycle engine and an external
decryption oracle:

  (a) turn a ciphertext handle into the oracle's request payload,
  (b) submit it with the callback identifier and a deadline hint,
  (c) hand back the oracle-issued request id for correlation.

No business validation happens here; the engine owns all of it. If the
oracle never answers, the job stays DecryptPending until the lazy timeout
in the engine reclaims it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Sequence

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleRequest:
    handles: List[str]
    callback_id: str
    deadline_hint: float
    requester: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handles": list(self.handles),
            "callbackId": self.callback_id,
            "deadlineHint": self.deadline_hint,
            "requester": self.requester,
            "meta": dict(self.meta),
        }


class DecryptionOracle(Protocol):
    def submit_request(self, request: OracleRequest) -> int:
        """Queue a request; return a fresh, positive request id."""
        ...


class OracleGateway:
    def __init__(self, oracle: DecryptionOracle, callback_id: str) -> None:
        self.oracle = oracle
        self.callback_id = callback_id

    def build_request(self, handles: Sequence[str], deadline_hint: float, requester: str) -> OracleRequest:
        return OracleRequest(
            handles=[str(h) for h in handles],
            callback_id=self.callback_id,
            deadline_hint=float(deadline_hint),
            requester=requester,
        )

    def request_decryption(self, handle: str, deadline_hint: float, requester: str) -> int:
        req = self.build_request([handle], deadline_hint, requester)
        request_id = int(self.oracle.submit_request(req))
        log.debug("oracle request submitted", extra={"request_id": request_id, "requester": requester})
        return request_id


__all__ = ["OracleRequest", "DecryptionOracle", "OracleGateway"]
