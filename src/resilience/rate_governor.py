"""Global request spacing for the ledger API.

The ledger tolerates roughly one call every two seconds.  ``RateGovernor``
enforces a minimum gap between the *start* of consecutive attempts,
whatever their outcome and whichever submission they belong to.
"""

from __future__ import annotations

import logging

from src.core.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class RateGovernor:
    """Minimum-interval gate between attempt starts.

    Args:
        spacing: Seconds required between two attempt starts.
        clock:   Time source (defaults to ``SystemClock``).
    """

    def __init__(self, spacing: float = 2.1, clock: Clock | None = None) -> None:
        self.spacing = spacing
        self._clock = clock or SystemClock()
        self.last_dispatch: float | None = None

    def remaining(self) -> float:
        """Seconds still to wait before the next attempt may start."""
        if self.last_dispatch is None:
            return 0.0
        elapsed = self._clock.monotonic() - self.last_dispatch
        return max(0.0, self.spacing - elapsed)

    async def await_slot(self) -> float:
        """Suspend until the spacing interval has passed; return the wait."""
        wait = self.remaining()
        if wait > 0:
            logger.debug("Spacing ledger call by %.2fs", wait)
            await self._clock.sleep(wait)
        return wait

    def mark_dispatch(self) -> None:
        """Record that an attempt is starting now."""
        self.last_dispatch = self._clock.monotonic()
