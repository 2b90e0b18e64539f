"""Clock abstraction for the dispatch pipeline.

The circuit breaker, rate governor and dispatcher all read time and sleep
through a ``Clock`` so that spacing, backoff and cooldown behaviour can be
tested without real waits.

Production code uses ``SystemClock`` (the default).
Tests inject ``MockClock`` to control time advancement.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Time source used by the resilience components."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for *seconds*."""
        ...


class SystemClock:
    """Production clock: ``time.monotonic()`` and ``asyncio.sleep()``."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class MockClock:
    """Controllable clock for deterministic testing.

    ``sleep()`` advances the clock by the requested amount and yields to
    the event loop once, so a 27s backoff completes instantly.  Every
    requested delay is kept in ``sleeps`` for assertions.

    Example:
        clock = MockClock(start=0.0)
        await clock.sleep(3.0)
        assert clock.monotonic() == 3.0
        assert clock.sleeps == [3.0]
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self._current

    def advance(self, seconds: float) -> None:
        """Move time forward by *seconds* (must be non-negative)."""
        if seconds < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {seconds}")
        self._current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)
