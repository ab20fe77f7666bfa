"""Clock sources — the externally supplied notion of "now".

Expiry comparisons read the clock; nothing in the core ever advances it.
Time is integer epoch seconds.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Monotonically non-decreasing source of the current timestamp."""

    def now(self) -> int:
        ...


class SystemClock:
    """Wall-clock time, truncated to whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """A clock that only moves when told to.

    Usage:
        clock = ManualClock(1_000)
        clock.advance(30)
        clock.now()  # 1030
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError(f"Clock cannot start before epoch: {start}")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError(
                f"Clock cannot move backwards: {timestamp} < {self._now}"
            )
        self._now = timestamp
