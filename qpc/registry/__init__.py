from .access import OPERATOR, WORKER, AccessRegistry

__all__ = ["AccessRegistry", "OPERATOR", "WORKER"]
