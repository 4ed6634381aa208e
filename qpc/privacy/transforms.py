from __future__ import annotations

"""
Privacy transforms
==================

Two arithmetic transforms that mask sensitive operands with an ephemeral
random scale factor `m` drawn from [mult_min, mult_max):

Obfuscated division
-------------------
    q = ((n * m) / d) / m        (integer division, encrypted throughout)

Operands are widened to `work_bits` before scaling, so `n * m` never wraps.
With exact integer arithmetic, floor(floor(n*m/d)/m) == floor(n/d) for any
positive integers m and d (floor(floor(x/a)/b) == floor(x/(a*b))), hence the
result is *exactly* the floor quotient: the rounding error bound is 0.

Obfuscated price storage
------------------------
    stored = price * m,  factor = Enc(m)   (both widened)
    recover(price_id) = stored / factor

The factor is persisted per price id; re-obfuscating an id replaces both the
stored value and the factor, so recovery always uses the latest pair.

Factor seeding
--------------
    m = mult_min + SHA3-256(tag || caller || now || 16 random bytes) mod (mult_max - mult_min)

Caller identity and host time are mixed in as required; the random salt
makes the factor unpredictable even to a caller who knows both.
"""

import hashlib
import logging
import secrets
from typing import Union

from .. import metrics
from ..context import ComputeContext
from ..errors import InvalidInput, NotFound, Unauthorized
from ..fhe.backend import Ciphertext
from ..qtypes.events import EventType

log = logging.getLogger(__name__)

FACTOR_DOMAIN_TAG = b"qpc/obfuscation/factor/v1"

Operand = Union[int, str, Ciphertext]


class PrivacyTransforms:
    def __init__(self, ctx: ComputeContext) -> None:
        self.ctx = ctx

    @property
    def _cfg(self):
        return self.ctx.config.obfuscation

    # ---- helpers ---------------------------------------------------------

    def draw_factor(self, caller: str, now: float) -> int:
        lo, hi = self._cfg.mult_min, self._cfg.mult_max
        seed = b"|".join((
            FACTOR_DOMAIN_TAG,
            caller.encode("utf-8"),
            repr(float(now)).encode("ascii"),
            secrets.token_bytes(16),
        ))
        digest = hashlib.sha3_256(seed).digest()
        return lo + int.from_bytes(digest, "big") % (hi - lo)

    def _widen(self, x: Operand, bits: int, name: str, caller: str) -> Ciphertext:
        """
        Bring a plaintext or ciphertext operand into the widened working domain.
        A ciphertext operand is only accepted from a caller that may decrypt it.
        """
        wb = self._cfg.work_bits
        if isinstance(x, (str, Ciphertext)):
            fhe = self.ctx.fhe
            if not self.ctx.acl.allowed(x, caller):
                raise Unauthorized(f"caller holds no decrypt capability for the {name}", principal=caller)
            if fhe.bits_of(x) > bits:
                raise InvalidInput(f"{name} ciphertext wider than {bits} bits")
            return fhe.cast(x, wb)
        if isinstance(x, bool) or not isinstance(x, int):
            raise InvalidInput(f"{name} must be an integer or a ciphertext handle")
        if not (0 <= x < (1 << bits)):
            raise InvalidInput(f"{name} out of range for {bits}-bit value", details={name: x})
        return self.ctx.fhe.encrypt(x, wb)

    # ---- obfuscated division ---------------------------------------------

    def obfuscated_divide(self, numerator: Operand, denominator: Operand, caller: str) -> Ciphertext:
        """Return Enc(floor(numerator / denominator)) at `value_bits`, decryptable by `caller`."""
        vb = self._cfg.value_bits
        if isinstance(denominator, int) and not isinstance(denominator, bool) and denominator == 0:
            raise InvalidInput("division by zero")

        fhe = self.ctx.fhe
        with metrics.timed("obfuscated_divide"):
            n = self._widen(numerator, vb, "numerator", caller)
            d = self._widen(denominator, vb, "denominator", caller)
            now = self.ctx.now()
            m = fhe.encrypt(self.draw_factor(caller, now), self._cfg.work_bits)
            scaled = fhe.div(fhe.mul(n, m), d)
            out = fhe.cast(fhe.div(scaled, m), vb)
            with self.ctx.db.tx():
                self.ctx.acl.grant(out, caller, at=now)
        metrics.record_privacy_op("divide")
        return out

    # ---- obfuscated price storage ----------------------------------------

    def obfuscate_price(self, price: Operand, price_id: int, caller: str) -> Ciphertext:
        """Store price * m together with Enc(m); return the obfuscated ciphertext."""
        pb = self._cfg.price_bits
        fhe = self.ctx.fhe
        with metrics.timed("obfuscate_price"):
            p = self._widen(price, pb, "price", caller)
            now = self.ctx.now()
            factor = fhe.encrypt(self.draw_factor(caller, now), self._cfg.work_bits)
            stored = fhe.mul(p, factor)
            with self.ctx.db.tx():
                self.ctx.db.put_price(int(price_id), factor.handle, stored.handle, caller, now)
                self.ctx.acl.grant(stored, caller, at=now)
                self.ctx.emit(EventType.PRICE_OBFUSCATED, ts=now, principal=caller, price_id=int(price_id))
        metrics.record_privacy_op("obfuscate_price")
        log.info("price obfuscated", extra={"price_id": int(price_id), "owner": caller})
        return stored

    def deobfuscate_price(self, price_id: int, caller: str) -> Ciphertext:
        """
        Return Enc(price) for the latest record of `price_id`. The decrypt
        capability goes to the record's owner only.
        """
        rec = self.ctx.db.get_price(int(price_id))
        if rec is None:
            raise NotFound(f"no obfuscated price stored for id {price_id}")
        fhe = self.ctx.fhe
        with metrics.timed("deobfuscate_price"):
            out = fhe.cast(fhe.div(rec["obfuscated_handle"], rec["factor_handle"]), self._cfg.price_bits)
            with self.ctx.db.tx():
                self.ctx.acl.grant(out, rec["owner"], at=self.ctx.now())
        metrics.record_privacy_op("deobfuscate_price")
        if caller != rec["owner"]:
            log.info("price recovered by non-owner; capability withheld",
                     extra={"price_id": int(price_id), "caller": caller})
        return out


__all__ = ["PrivacyTransforms", "FACTOR_DOMAIN_TAG"]
