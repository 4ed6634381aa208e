from __future__ import annotations

"""
Algorithm stand-ins.

`run(tag, encrypted_input)` is what `executeJob` calls. Each "algorithm" is
a short, fixed sequence of encrypted arithmetic over the job input; the
numbers are placeholders, not a simulation. Every step is charged a number
of resource units, so an executed job always reports units > 0.
"""

from typing import Callable, Dict, Tuple

from ..fhe.backend import Ciphertext, CiphertextLike, MockFheBackend
from ..qtypes.job import AlgorithmTag

Step = Callable[[MockFheBackend, Ciphertext], Ciphertext]


def _const(fhe: MockFheBackend, like: Ciphertext, v: int) -> Ciphertext:
    return fhe.encrypt(v % (1 << like.bits), like.bits)


def _shor(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    # period-finding placeholder: x^2 + 1
    return fhe.add(fhe.mul(x, x), _const(fhe, x, 1))


def _grover(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    # amplitude amplification placeholder: 2x - 1
    return fhe.sub(fhe.add(x, x), _const(fhe, x, 1))


def _vqe(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    # energy estimate placeholder: x - x/2
    return fhe.sub(x, fhe.div(x, _const(fhe, x, 2)))


def _qaoa(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    return fhe.mul(x, _const(fhe, x, 3))


def _quantum_ml(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    return fhe.mul(fhe.add(x, _const(fhe, x, 7)), _const(fhe, x, 2))


def _custom(fhe: MockFheBackend, x: Ciphertext) -> Ciphertext:
    return fhe.add(x, x)


# tag -> (stand-in, resource units charged)
ALGORITHMS: Dict[AlgorithmTag, Tuple[Step, int]] = {
    AlgorithmTag.SHOR: (_shor, 120),
    AlgorithmTag.GROVER: (_grover, 80),
    AlgorithmTag.VQE: (_vqe, 150),
    AlgorithmTag.QAOA: (_qaoa, 100),
    AlgorithmTag.QUANTUM_ML: (_quantum_ml, 200),
    AlgorithmTag.CUSTOM_CIRCUIT: (_custom, 50),
}


class AlgorithmRunner:
    def __init__(self, fhe: MockFheBackend) -> None:
        self.fhe = fhe

    def run(self, tag: AlgorithmTag, encrypted_input: CiphertextLike) -> Tuple[Ciphertext, int]:
        """Return (encrypted result, resource units)."""
        step, units = ALGORITHMS[AlgorithmTag(tag)]
        x = Ciphertext.from_handle(encrypted_input) if isinstance(encrypted_input, str) else encrypted_input
        return step(self.fhe, x), units


__all__ = ["ALGORITHMS", "AlgorithmRunner"]
