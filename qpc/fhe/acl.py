from __future__ import annotations

"""
Decrypt capability map.

An explicit (resource, principal) → grant table. A resource is the SHA3-256
digest of a ciphertext handle, so grants survive restarts and can be checked
without storing the handle twice. The decryption oracle only discloses a
ciphertext to a requester that holds a grant for it.
"""

import hashlib
import logging
from typing import List

from ..store.state_db import QPCStateDB
from .backend import Ciphertext, CiphertextLike

log = logging.getLogger(__name__)


def resource_id(ct: CiphertextLike) -> str:
    handle = ct.handle if isinstance(ct, Ciphertext) else str(ct)
    return hashlib.sha3_256(handle.encode("ascii")).hexdigest()


class CapabilityMap:
    def __init__(self, db: QPCStateDB) -> None:
        self._db = db

    def grant(self, ct: CiphertextLike, principal: str, *, at: float) -> bool:
        """Grant `principal` decrypt rights over `ct`. Returns False if already granted."""
        rid = resource_id(ct)
        fresh = self._db.acl_grant(rid, principal, at)
        if fresh:
            log.debug("decrypt capability granted", extra={"resource": rid, "principal": principal})
        return fresh

    def allowed(self, ct: CiphertextLike, principal: str) -> bool:
        return self._db.acl_has(resource_id(ct), principal)

    def holders(self, ct: CiphertextLike) -> List[str]:
        return self._db.acl_holders(resource_id(ct))


__all__ = ["CapabilityMap", "resource_id"]
