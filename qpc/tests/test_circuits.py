from __future__ import annotations

import pytest

from qpc.circuits.algorithms import ALGORITHMS, AlgorithmRunner
from qpc.circuits.descriptor import Gate
from qpc.errors import InvalidInput, NotFound
from qpc.node import build_node
from qpc.qtypes.job import AlgorithmTag

from .conftest import DEPOSITOR, MIN_FEE, make_config

OWNER = "alice"
PARTNER = "bob"


# ---- algorithm stand-ins -----------------------------------------------------


@pytest.mark.parametrize(
    "tag,x,expected",
    [
        (AlgorithmTag.SHOR, 5, 26),
        (AlgorithmTag.GROVER, 42, 83),
        (AlgorithmTag.VQE, 9, 5),
        (AlgorithmTag.QAOA, 7, 21),
        (AlgorithmTag.QUANTUM_ML, 3, 20),
        (AlgorithmTag.CUSTOM_CIRCUIT, 100, 200),
    ],
)
def test_runner_stand_ins(node, tag, x, expected):
    out, units = AlgorithmRunner(node.ctx.fhe).run(tag, node.encrypt(x))
    assert node.ctx.fhe.decrypt(out) == expected
    assert units > 0


def test_every_tag_has_a_stand_in():
    assert set(ALGORITHMS) == set(AlgorithmTag)


# ---- quantum states ----------------------------------------------------------


def test_initialize_state(node):
    info = node.circuits.initialize_state(OWNER, [1, 2, 3, 4], 2)
    assert info.qubit_count == 2
    assert not info.is_entangled
    assert node.circuits.has_state(OWNER)


def test_unknown_owner_has_empty_info(node):
    info = node.circuits.state_info("nobody")
    assert info.qubit_count == 0
    assert info.updated_at is None


@pytest.mark.parametrize(
    "amps,qubits,message",
    [
        ([1, 2], 0, "invalid qubit count"),
        ([0] * 16, 4, "too many qubits"),
        ([1, 2, 3], 2, "amplitude count mismatch"),
        ([1, 256], 1, "amplitude out of range"),
        ([-1, 0], 1, "amplitude out of range"),
    ],
)
def test_initialize_state_validation(node, amps, qubits, message):
    with pytest.raises(InvalidInput) as ei:
        node.circuits.initialize_state(OWNER, amps, qubits)
    assert ei.value.message == message
    assert not node.circuits.has_state(OWNER)


def test_entanglement_marks_both_states(node):
    node.circuits.initialize_state(OWNER, [1, 2], 1)
    node.circuits.initialize_state(PARTNER, [3, 4], 1)
    node.circuits.create_entanglement(OWNER, PARTNER)
    assert node.circuits.state_info(OWNER).entangled_with == PARTNER
    assert node.circuits.state_info(PARTNER).entangled_with == OWNER


def test_reinitializing_clears_entanglement(node):
    node.circuits.initialize_state(OWNER, [1, 2], 1)
    node.circuits.initialize_state(PARTNER, [3, 4], 1)
    node.circuits.create_entanglement(OWNER, PARTNER)
    node.circuits.initialize_state(OWNER, [5, 6], 1)
    assert not node.circuits.state_info(OWNER).is_entangled


@pytest.mark.parametrize(
    "setup,partner,message",
    [
        ([OWNER], OWNER, "cannot entangle with self"),
        ([PARTNER], PARTNER, "quantum state not initialized"),
        ([OWNER], PARTNER, "partner state not initialized"),
    ],
)
def test_entanglement_validation(node, setup, partner, message):
    for who in setup:
        node.circuits.initialize_state(who, [1, 2], 1)
    with pytest.raises(InvalidInput) as ei:
        node.circuits.create_entanglement(OWNER, partner)
    assert ei.value.message == message


# ---- circuits ----------------------------------------------------------------


def test_compile_circuit_stores_gates(node):
    node.circuits.initialize_state(OWNER, [0] * 4, 2)
    gates = node.circuits.compile_circuit(OWNER, 1, [Gate.H, Gate.CNOT], [0, 1], [0, 0])
    assert gates == [
        {"gate": 1, "target": 0, "control": 0},
        {"gate": 2, "target": 1, "control": 0},
    ]
    assert node.circuits.get_circuit(OWNER, 1)["gates"] == gates


def test_recompiling_replaces_circuit(node):
    node.circuits.compile_circuit(OWNER, 1, [Gate.H], [0], [0])
    node.circuits.compile_circuit(OWNER, 1, [Gate.X, Gate.Z], [1, 2], [0, 0])
    assert len(node.circuits.get_circuit(OWNER, 1)["gates"]) == 2


@pytest.mark.parametrize(
    "gates,targets,controls,message",
    [
        ([1, 2], [0], [0, 0], "array length mismatch"),
        ([9], [0], [0], "invalid gate type"),
        ([1], [2], [0], "qubit index out of range"),
        ([Gate.CNOT], [1], [1], "control and target must differ"),
    ],
)
def test_compile_validation(node, gates, targets, controls, message):
    node.circuits.initialize_state(OWNER, [0] * 4, 2)
    with pytest.raises(InvalidInput) as ei:
        node.circuits.compile_circuit(OWNER, 1, gates, targets, controls)
    assert ei.value.message == message
    with pytest.raises(NotFound):
        node.circuits.get_circuit(OWNER, 1)


def test_compile_rejects_empty_and_oversized(node):
    with pytest.raises(InvalidInput):
        node.circuits.compile_circuit(OWNER, 1, [], [], [])
    node.config.circuits.max_gates = 2
    with pytest.raises(InvalidInput) as ei:
        node.circuits.compile_circuit(OWNER, 1, [1, 1, 1], [0, 0, 0], [0, 0, 0])
    assert ei.value.message == "too many gates"


def test_submission_can_require_a_state(clock):
    cfg = make_config()
    cfg.circuits.require_state = True
    node = build_node(cfg, clock=clock)
    try:
        with pytest.raises(InvalidInput):
            node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), 0, MIN_FEE)
        node.circuits.initialize_state(DEPOSITOR, [1, 2], 1)
        assert node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), 0, MIN_FEE) == 1
    finally:
        node.close()
