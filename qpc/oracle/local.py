from __future__ import annotations

"""
In-process decryption oracle.

Stands in for the external oracle service: requests are persisted in the
state DB (so a separate process, e.g. `qpc oracle-fulfill`, can answer them
later), and fulfilment decrypts the first handle and invokes the registered
callback as the trusted oracle principal.

The oracle only discloses a ciphertext whose decrypt capability is held by
the requester. Requests that fail this check are marked 'failed' and never
answered, which the engine treats like any other unresponsive oracle.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..context import ComputeContext
from ..errors import InvalidState, NotFound
from .gateway import OracleRequest

log = logging.getLogger(__name__)

Callback = Callable[..., Any]

PENDING = "pending"
FULFILLED = "fulfilled"
FAILED = "failed"


class LocalOracle:
    def __init__(self, ctx: ComputeContext) -> None:
        self.ctx = ctx
        self._callbacks: Dict[str, Callback] = {}

    @property
    def principal(self) -> str:
        return self.ctx.config.oracle.principal

    def register_callback(self, callback_id: str, fn: Callback) -> None:
        self._callbacks[callback_id] = fn

    # ---- DecryptionOracle ------------------------------------------------

    def submit_request(self, request: OracleRequest) -> int:
        return self.ctx.db.insert_oracle_request(
            request.handles,
            request.callback_id,
            request.deadline_hint,
            request.requester,
            self.ctx.now(),
        )

    # ---- oracle-side operations ------------------------------------------

    def pending(self) -> List[Dict[str, Any]]:
        return self.ctx.db.list_oracle_requests(PENDING)

    def get(self, request_id: int) -> Dict[str, Any]:
        req = self.ctx.db.get_oracle_request(request_id)
        if req is None:
            raise NotFound(f"oracle request {request_id} not found")
        return req

    def fulfill(self, request_id: int) -> Optional[Any]:
        """
        Decrypt and deliver one request. Returns the callback's result, or
        None if the request was refused for lack of a decrypt capability.
        """
        req = self.get(request_id)
        if req["status"] != PENDING:
            raise InvalidState(f"oracle request {request_id} is {req['status']}")
        fn = self._callbacks.get(req["callback_id"])
        if fn is None:
            raise NotFound(f"no callback registered for {req['callback_id']!r}")

        handles = req["handles"]
        if not handles or not all(self.ctx.acl.allowed(h, req["requester"]) for h in handles):
            self.ctx.db.set_oracle_request_status(request_id, FAILED)
            log.warning("oracle refused request without decrypt capability",
                        extra={"request_id": request_id, "requester": req["requester"]})
            return None

        plaintext = self.ctx.fhe.decrypt(handles[0])
        with self.ctx.db.tx():
            self.ctx.db.set_oracle_request_status(request_id, FULFILLED)
            return fn(request_id, plaintext, caller=self.principal)

    def fulfill_all(self) -> List[Any]:
        return [self.fulfill(r["request_id"]) for r in self.pending()]


__all__ = ["LocalOracle", "PENDING", "FULFILLED", "FAILED"]
