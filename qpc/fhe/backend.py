from __future__ import annotations

"""
Encrypted value type (mock FHE backend)
=======================================

A stand-in for a real homomorphic scheme with the same *interface* the
lifecycle engine and privacy transforms consume:

    encrypt(plain, bits) -> Ciphertext
    add / sub / mul / div(a, b) -> Ciphertext
    cast(a, bits) -> Ciphertext
    decrypt(a) -> int          (oracle side only)

Ciphertexts are sealed with ChaCha20-Poly1305 under a service key, so a
handle reveals nothing about its plaintext and cannot be forged or altered
without detection. Arithmetic is performed inside the backend (open, compute,
reseal with a fresh nonce); callers outside this module never see a
plaintext. Values are unsigned integers of `bits` width; add/sub/mul wrap
modulo 2**bits like fixed-width encrypted integers do.

Handle format
-------------
    handle = "0x" || hex( bits:u8 || nonce:12 || AEAD(be64(value)) )

AAD is the domain tag followed by the bit width, binding a ciphertext to its
declared type.
"""

import os
from dataclasses import dataclass
from typing import Protocol, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..errors import FheError

FHE_DOMAIN_TAG = b"qpc/fhe/mock/v1"
NONCE_SIZE = 12
KEY_SIZE = 32
MAX_BITS = 64
_SEALED_LEN = NONCE_SIZE + 8 + 16  # nonce + be64 plaintext + Poly1305 tag


@dataclass(frozen=True)
class Ciphertext:
    bits: int
    blob: bytes

    @property
    def handle(self) -> str:
        return "0x" + bytes([self.bits]).hex() + self.blob.hex()

    @staticmethod
    def from_handle(handle: str) -> "Ciphertext":
        if not isinstance(handle, str) or not handle.startswith("0x"):
            raise FheError("ciphertext handle must be a 0x-prefixed hex string")
        try:
            raw = bytes.fromhex(handle[2:])
        except ValueError as e:
            raise FheError("ciphertext handle is not valid hex") from e
        if len(raw) != 1 + _SEALED_LEN:
            raise FheError("ciphertext handle has the wrong length", details={"length": len(raw)})
        bits = raw[0]
        if not (1 <= bits <= MAX_BITS):
            raise FheError("ciphertext declares an unsupported bit width", details={"bits": bits})
        return Ciphertext(bits=bits, blob=raw[1:])

    def __str__(self) -> str:  # pragma: no cover - convenience
        return self.handle


CiphertextLike = Union[Ciphertext, str]


class EncryptedValueType(Protocol):
    def encrypt(self, plain: int, bits: int = 8) -> Ciphertext: ...
    def add(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext: ...
    def sub(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext: ...
    def mul(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext: ...
    def div(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext: ...
    def cast(self, a: CiphertextLike, bits: int) -> Ciphertext: ...


def generate_key() -> bytes:
    return ChaCha20Poly1305.generate_key()


class MockFheBackend:
    """Sealed-integer implementation of `EncryptedValueType`."""

    name = "mock-chacha20"

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise FheError("FHE service key must be 32 bytes")
        self._aead = ChaCha20Poly1305(key)

    # ---- sealing ---------------------------------------------------------

    @staticmethod
    def _aad(bits: int) -> bytes:
        return FHE_DOMAIN_TAG + bytes([bits])

    @staticmethod
    def _check_bits(bits: int) -> int:
        if not isinstance(bits, int) or not (1 <= bits <= MAX_BITS):
            raise FheError(f"unsupported bit width: {bits!r}")
        return bits

    def _seal(self, value: int, bits: int) -> Ciphertext:
        nonce = os.urandom(NONCE_SIZE)
        body = self._aead.encrypt(nonce, int(value).to_bytes(8, "big"), self._aad(bits))
        return Ciphertext(bits=bits, blob=nonce + body)

    def _open(self, ct: CiphertextLike) -> Ciphertext:
        return Ciphertext.from_handle(ct) if isinstance(ct, str) else ct

    def _value(self, ct: CiphertextLike) -> int:
        c = self._open(ct)
        nonce, body = c.blob[:NONCE_SIZE], c.blob[NONCE_SIZE:]
        try:
            raw = self._aead.decrypt(nonce, body, self._aad(c.bits))
        except InvalidTag as e:
            raise FheError("ciphertext failed authentication") from e
        return int.from_bytes(raw, "big")

    def _pair(self, a: CiphertextLike, b: CiphertextLike):
        ca, cb = self._open(a), self._open(b)
        if ca.bits != cb.bits:
            raise FheError(
                "operand bit widths differ", details={"left": ca.bits, "right": cb.bits}
            )
        return ca.bits, self._value(ca), self._value(cb)

    # ---- public surface --------------------------------------------------

    def encrypt(self, plain: int, bits: int = 8) -> Ciphertext:
        self._check_bits(bits)
        if isinstance(plain, bool) or not isinstance(plain, int):
            raise FheError("plaintext must be an integer")
        if not (0 <= plain < (1 << bits)):
            raise FheError(f"plaintext out of range for {bits}-bit value", details={"value": plain})
        return self._seal(plain, bits)

    def add(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext:
        bits, x, y = self._pair(a, b)
        return self._seal((x + y) % (1 << bits), bits)

    def sub(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext:
        bits, x, y = self._pair(a, b)
        return self._seal((x - y) % (1 << bits), bits)

    def mul(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext:
        bits, x, y = self._pair(a, b)
        return self._seal((x * y) % (1 << bits), bits)

    def div(self, a: CiphertextLike, b: CiphertextLike) -> Ciphertext:
        bits, x, y = self._pair(a, b)
        if y == 0:
            raise FheError("encrypted division by zero")
        return self._seal(x // y, bits)

    def cast(self, a: CiphertextLike, bits: int) -> Ciphertext:
        """Re-type a ciphertext; narrowing truncates modulo 2**bits."""
        self._check_bits(bits)
        return self._seal(self._value(a) % (1 << bits), bits)

    def bits_of(self, a: CiphertextLike) -> int:
        return self._open(a).bits

    def decrypt(self, a: CiphertextLike) -> int:
        """Reveal a plaintext. Only the decryption oracle calls this."""
        return self._value(a)


__all__ = [
    "FHE_DOMAIN_TAG",
    "Ciphertext",
    "CiphertextLike",
    "EncryptedValueType",
    "MockFheBackend",
    "generate_key",
]
