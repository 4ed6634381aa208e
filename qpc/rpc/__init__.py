"""RPC surface for QPC: JSON-RPC method table and FastAPI REST router."""

RPC_PREFIX = "/qpc"

__all__ = ["RPC_PREFIX"]
