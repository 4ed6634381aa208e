from __future__ import annotations

import pytest

from qpc.errors import FheError
from qpc.fhe.acl import resource_id
from qpc.fhe.backend import Ciphertext, MockFheBackend, generate_key


@pytest.fixture
def fhe() -> MockFheBackend:
    return MockFheBackend(generate_key())


def test_encrypt_decrypt(fhe):
    ct = fhe.encrypt(200, 8)
    assert ct.bits == 8
    assert fhe.decrypt(ct) == 200
    assert fhe.decrypt(ct.handle) == 200


def test_handles_do_not_repeat(fhe):
    assert fhe.encrypt(5).handle != fhe.encrypt(5).handle


def test_arithmetic_wraps_at_width(fhe):
    a, b = fhe.encrypt(200), fhe.encrypt(100)
    assert fhe.decrypt(fhe.add(a, b)) == 44
    assert fhe.decrypt(fhe.sub(b, a)) == 156
    assert fhe.decrypt(fhe.mul(a, b)) == (200 * 100) % 256
    assert fhe.decrypt(fhe.div(a, b)) == 2


def test_cast_widens_and_truncates(fhe):
    wide = fhe.cast(fhe.encrypt(250), 64)
    assert wide.bits == 64
    big = fhe.mul(wide, fhe.encrypt(16, 64))
    assert fhe.decrypt(big) == 4000
    assert fhe.decrypt(fhe.cast(big, 8)) == 4000 % 256


def test_mixed_widths_are_rejected(fhe):
    with pytest.raises(FheError):
        fhe.add(fhe.encrypt(1, 8), fhe.encrypt(1, 16))


def test_division_by_zero(fhe):
    with pytest.raises(FheError):
        fhe.div(fhe.encrypt(1), fhe.encrypt(0))


@pytest.mark.parametrize("value,bits", [(256, 8), (-1, 8), (True, 8), (1, 0), (1, 65)])
def test_encrypt_range_checks(fhe, value, bits):
    with pytest.raises(FheError):
        fhe.encrypt(value, bits)


def test_tampered_ciphertext_fails_authentication(fhe):
    ct = fhe.encrypt(9)
    flipped = ct.blob[:-1] + bytes([ct.blob[-1] ^ 0x01])
    with pytest.raises(FheError):
        fhe.decrypt(Ciphertext(bits=ct.bits, blob=flipped))


def test_relabelled_width_fails_authentication(fhe):
    ct = fhe.encrypt(9, 8)
    with pytest.raises(FheError):
        fhe.decrypt(Ciphertext(bits=16, blob=ct.blob))


def test_foreign_key_cannot_open(fhe):
    other = MockFheBackend(generate_key())
    with pytest.raises(FheError):
        other.decrypt(fhe.encrypt(3))


@pytest.mark.parametrize("handle", ["", "deadbeef", "0xzz", "0x08" + "00" * 4, "0x00" + "00" * 36])
def test_malformed_handles(handle):
    with pytest.raises(FheError):
        Ciphertext.from_handle(handle)


def test_resource_id_is_stable_per_handle(fhe):
    ct = fhe.encrypt(1)
    assert resource_id(ct) == resource_id(ct.handle)
    assert resource_id(ct) != resource_id(fhe.encrypt(1))
