from __future__ import annotations

"""
Host clocks.

Every lifecycle operation reads time from a `Clock` exactly once, at the
moment it runs; nothing caches time across calls. `ManualClock` lets tests
(and the CLI's `--now` override) move time forward deterministically.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:  # seconds since epoch
        ...


class SystemClock:
    """Wall clock (UNIX seconds)."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._t = float(start)

    def now(self) -> float:
        return self._t

    def set(self, t: float) -> None:
        if t < self._t:
            raise ValueError("ManualClock cannot move backwards")
        self._t = float(t)

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._t += float(seconds)
        return self._t


__all__ = ["Clock", "SystemClock", "ManualClock"]
