from __future__ import annotations

"""
qpc.rpc.mount
-------------

Helpers to mount the QPC RPC surface into an existing FastAPI app and/or to
register the JSON-RPC methods with your dispatcher.

Typical usage (REST):
    from fastapi import FastAPI
    from qpc.rpc.mount import mount_qpc
    app = FastAPI()
    mount_qpc(app, node, prefix="/qpc")

Typical usage (JSON-RPC):
    from qpc.rpc.mount import register_jsonrpc
    register_jsonrpc(dispatcher, node)

No hard dependency on a specific JSON-RPC framework: we expect a dispatcher
with a `.add(name, callable)` or `.register(name, callable)` API.
"""

from typing import Any, Protocol

from ..metrics import metrics_app
from ..node import QPCNode
from .methods import build_rest_router, make_methods


class _JsonRpcDispatcherLike(Protocol):
    """Minimal protocol to support common JSON-RPC dispatchers."""
    def add(self, method: str, func: Any) -> None: ...
    def register(self, method: str, func: Any) -> None: ...


def mount_qpc(app: Any, node: QPCNode, *, prefix: str = "/qpc", metrics: bool = True) -> None:
    """
    Mount the QPC REST endpoints under `prefix` on a FastAPI app, plus the
    Prometheus exposition at `{prefix}/metrics` when `metrics` is true.
    """
    app.include_router(build_rest_router(node), prefix=prefix, tags=["qpc"])
    if metrics:
        app.mount(f"{prefix}/metrics", metrics_app)


def register_jsonrpc(dispatcher: _JsonRpcDispatcherLike, node: QPCNode) -> None:
    """
    Register JSON-RPC methods on a dispatcher.

    We try `.add(name, fn)` first and fall back to `.register(name, fn)`.
    """
    for name, fn in make_methods(node).items():
        try:
            dispatcher.add(name, fn)  # type: ignore[attr-defined]
        except AttributeError:
            dispatcher.register(name, fn)  # type: ignore[attr-defined]


__all__ = ["mount_qpc", "register_jsonrpc"]
