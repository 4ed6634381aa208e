from __future__ import annotations
"""
QPC - Quantum Privacy Compute.

A depositor submits an encrypted input together with a fee, an authorized
worker produces an encrypted result, and a decryption oracle later discloses
the plaintext through an asynchronous callback. Timeouts are checked lazily
on every state-changing call and route stuck jobs into the refund ledger.

    from qpc import build_node, QPCConfig
    node = build_node(QPCConfig())

Subpackages and the names below are imported on first attribute access.
"""

import importlib
from typing import Dict, List

from .version import __version__

_SUBMODULES = (
    "config", "errors", "metrics", "clock", "context", "node",
    "qtypes", "fhe", "registry", "store",
    "lifecycle", "oracle", "treasury", "privacy", "circuits",
    "rpc", "cli",
)

# attribute -> defining module
_SHORTCUTS: Dict[str, str] = {
    "build_node": ".node",
    "QPCNode": ".node",
    "QPCConfig": ".config",
    "load_config": ".config",
    "QPCError": ".errors",
    "JobStatus": ".qtypes.job",
    "AlgorithmTag": ".qtypes.job",
}

__all__: List[str] = ["__version__", *_SUBMODULES, *_SHORTCUTS]


def __getattr__(name: str):
    if name in _SUBMODULES:
        return importlib.import_module(f".{name}", __name__)
    if name in _SHORTCUTS:
        mod = importlib.import_module(_SHORTCUTS[name], __name__)
        return getattr(mod, "load" if name == "load_config" else name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals()) | set(__all__))
