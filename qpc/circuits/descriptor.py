from __future__ import annotations

"""
Quantum state registry and circuit descriptor store.

Shallow validation only: a state is a list of encrypted 8-bit amplitudes for
1..max_qubits qubits; a circuit is a gate-type sequence with target/control
indices that must fit the caller's register. Nothing here simulates a
circuit. Descriptors are stored per owner and replaced on re-submission.
"""

import logging
from dataclasses import dataclass, asdict
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from ..context import ComputeContext
from ..errors import InvalidInput, NotFound
from ..qtypes.events import EventType

log = logging.getLogger(__name__)


class Gate(IntEnum):
    H = 1
    CNOT = 2
    X = 3
    Y = 4
    Z = 5
    PHASE = 6

    @property
    def two_qubit(self) -> bool:
        return self is Gate.CNOT


AMPLITUDE_MAX = 255


@dataclass
class StateInfo:
    owner: str
    qubit_count: int = 0
    updated_at: Optional[float] = None
    entangled_with: Optional[str] = None

    @property
    def is_entangled(self) -> bool:
        return self.entangled_with is not None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["is_entangled"] = self.is_entangled
        return d


class CircuitStore:
    def __init__(self, ctx: ComputeContext) -> None:
        self.ctx = ctx

    @property
    def max_qubits(self) -> int:
        return self.ctx.config.circuits.max_qubits

    # ---- quantum states --------------------------------------------------

    def initialize_state(self, owner: str, amplitudes: Sequence[int], qubit_count: int) -> StateInfo:
        if qubit_count <= 0:
            raise InvalidInput("invalid qubit count", details={"qubit_count": qubit_count})
        if qubit_count > self.max_qubits:
            raise InvalidInput("too many qubits",
                               details={"qubit_count": qubit_count, "max": self.max_qubits})
        if len(amplitudes) != 1 << qubit_count:
            raise InvalidInput("amplitude count mismatch",
                               details={"expected": 1 << qubit_count, "got": len(amplitudes)})
        for a in amplitudes:
            if isinstance(a, bool) or not isinstance(a, int) or not (0 <= a <= AMPLITUDE_MAX):
                raise InvalidInput("amplitude out of range", details={"value": a})

        now = self.ctx.now()
        sealed = [self.ctx.fhe.encrypt(a, 8).handle for a in amplitudes]
        with self.ctx.db.tx():
            self.ctx.db.upsert_state(owner, qubit_count, sealed, now)
            self.ctx.emit(EventType.STATE_INITIALIZED, ts=now, principal=owner, qubit_count=qubit_count)
        log.info("quantum state initialized", extra={"owner": owner, "qubit_count": qubit_count})
        return self.state_info(owner)

    def state_info(self, owner: str) -> StateInfo:
        row = self.ctx.db.get_state(owner)
        if row is None:
            return StateInfo(owner=owner)
        return StateInfo(
            owner=owner,
            qubit_count=row["qubit_count"],
            updated_at=row["updated_at"],
            entangled_with=row["entangled_with"],
        )

    def has_state(self, owner: str) -> bool:
        return self.ctx.db.get_state(owner) is not None

    def create_entanglement(self, owner: str, partner: str) -> None:
        if owner == partner:
            raise InvalidInput("cannot entangle with self")
        with self.ctx.db.tx():
            if not self.has_state(owner):
                raise InvalidInput("quantum state not initialized", details={"owner": owner})
            if not self.has_state(partner):
                raise InvalidInput("partner state not initialized", details={"partner": partner})
            self.ctx.db.set_entangled(owner, partner)
            self.ctx.db.set_entangled(partner, owner)
            self.ctx.emit(EventType.ENTANGLEMENT_CREATED, principal=owner, partner=partner)
        log.info("entanglement created", extra={"owner": owner, "partner": partner})

    # ---- circuits --------------------------------------------------------

    def compile_circuit(
        self,
        owner: str,
        circuit_id: int,
        gate_types: Sequence[int],
        target_qubits: Sequence[int],
        control_qubits: Sequence[int],
    ) -> List[Dict[str, int]]:
        if not (len(gate_types) == len(target_qubits) == len(control_qubits)):
            raise InvalidInput("array length mismatch", details={
                "gates": len(gate_types), "targets": len(target_qubits), "controls": len(control_qubits),
            })
        if not gate_types:
            raise InvalidInput("circuit must contain at least one gate")
        max_gates = self.ctx.config.circuits.max_gates
        if len(gate_types) > max_gates:
            raise InvalidInput("too many gates", details={"gates": len(gate_types), "max": max_gates})

        info = self.state_info(owner)
        bound = info.qubit_count or self.max_qubits

        gates: List[Dict[str, int]] = []
        for i, (g, t, c) in enumerate(zip(gate_types, target_qubits, control_qubits)):
            try:
                gate = Gate(int(g))
            except ValueError:
                raise InvalidInput("invalid gate type", details={"index": i, "gate": g}) from None
            if not (0 <= int(t) < bound) or not (0 <= int(c) < bound):
                raise InvalidInput("qubit index out of range",
                                   details={"index": i, "target": t, "control": c, "qubits": bound})
            if gate.two_qubit and int(c) == int(t):
                raise InvalidInput("control and target must differ", details={"index": i})
            gates.append({"gate": int(gate), "target": int(t), "control": int(c)})

        with self.ctx.db.tx():
            self.ctx.db.upsert_circuit(owner, int(circuit_id), gates, self.ctx.now())
            self.ctx.emit(EventType.CIRCUIT_COMPILED, principal=owner,
                          circuit_id=int(circuit_id), gates=len(gates))
        log.info("circuit compiled", extra={"owner": owner, "circuit_id": circuit_id, "gates": len(gates)})
        return gates

    def get_circuit(self, owner: str, circuit_id: int) -> Dict[str, Any]:
        row = self.ctx.db.get_circuit(owner, circuit_id)
        if row is None:
            raise NotFound(f"circuit {circuit_id} not found for {owner}")
        return row


__all__ = ["Gate", "StateInfo", "CircuitStore", "AMPLITUDE_MAX"]
