"""Durable state for QPC (SQLite)."""

from .state_db import QPCStateDB, open_state_db

__all__ = ["QPCStateDB", "open_state_db"]
