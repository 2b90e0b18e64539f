"""Circuit breaker for the ledger API.

Implements the standard three-state circuit breaker:

    CLOSED  →  (failure_threshold reached)  →  OPEN
    OPEN    →  (cooldown elapsed, queried)  →  HALF_OPEN
    HALF_OPEN → (probe succeeds)            →  CLOSED
    HALF_OPEN → (probe fails)               →  OPEN

There is a single breaker for the whole ledger API, owned by the
``LedgerDispatcher``.  Only the dispatcher's worker task calls into it,
so no lock is held: the worker never runs two submissions at once, which
also means a HALF_OPEN circuit admits exactly one probing submission.
"""

from __future__ import annotations

import logging
from enum import Enum

from src.core.clock import Clock, SystemClock
from src.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Args:
        failure_threshold: Consecutive failures before opening the circuit.
        cooldown:          Seconds the circuit stays OPEN before probing.
        clock:             Time source (defaults to ``SystemClock``).
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        clock: Clock | None = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock or SystemClock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._next_attempt_time: float | None = None

        # Metrics
        self.total_rejections = 0
        self.total_failures = 0
        self.total_successes = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Return the recorded state.

        Unlike ``can_execute()`` this never transitions OPEN → HALF_OPEN;
        the transition happens when a caller actually asks to go through.
        """
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    # ── State machine ────────────────────────────────────────────────

    def can_execute(self) -> bool:
        """Return whether a call may go through right now.

        An OPEN circuit whose cooldown has elapsed moves to HALF_OPEN and
        allows the probe.  A denial is counted as a rejection, never as a
        failure.
        """
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._clock.monotonic() >= self._next_attempt_time:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit breaker → HALF_OPEN (probing ledger API)")
                return True
            self.total_rejections += 1
            return False

        # HALF_OPEN: the probing submission may run all of its attempts
        return True

    def record_success(self) -> None:
        """Record a successful call and close the circuit if probing."""
        self.total_successes += 1
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker → CLOSED (ledger API restored)")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._next_attempt_time = None

    def record_failure(self) -> None:
        """Record a failed call; may open the circuit."""
        self._failure_count += 1
        self.total_failures += 1

        if self._state == CircuitState.HALF_OPEN:
            # Probe failed: reopen and restart the cooldown
            self._open()
            logger.warning(
                "Circuit breaker → OPEN (probe failed, next attempt in %.0fs)",
                self.cooldown,
            )
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._open()
            logger.warning(
                "Circuit breaker → OPEN (%d consecutive failures, blocked for %.0fs)",
                self._failure_count,
                self.cooldown,
            )

    def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._next_attempt_time = None

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt_time = self._clock.monotonic() + self.cooldown

    # ── Reporting ────────────────────────────────────────────────────

    def remaining_block_seconds(self) -> float:
        """Seconds until an OPEN circuit may probe (0 when not blocked)."""
        if self._next_attempt_time is None:
            return 0.0
        return max(0.0, self._next_attempt_time - self._clock.monotonic())

    def open_error(self) -> CircuitOpenError:
        """Build the error returned for a call refused while blocked."""
        return CircuitOpenError(self.remaining_block_seconds())

    def get_status(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "remaining_block_ms": int(self.remaining_block_seconds() * 1000),
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }
