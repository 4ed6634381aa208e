from .algorithms import ALGORITHMS, AlgorithmRunner
from .descriptor import AMPLITUDE_MAX, CircuitStore, Gate, StateInfo

__all__ = ["ALGORITHMS", "AlgorithmRunner", "AMPLITUDE_MAX", "CircuitStore", "Gate", "StateInfo"]
