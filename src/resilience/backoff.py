"""Retry classification and exponential backoff for ledger calls.

Failures are split by the HTTP status the ledger answered with:

* explicit client-side rejections (400, 401, 403, 404) are terminal;
* overload / unavailable answers (429, 500, 502, 503, 504) are retryable;
* failures with no status at all (timeouts, connection resets, any other
  transport error) are treated as transient and retried;
* every other status is terminal.

The deny-list is checked first, so a status can never be both.
"""

from __future__ import annotations

from enum import Enum

import httpx

# HTTP status codes that must not be retried
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404})

# HTTP status codes that are safe to retry
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class FailureKind(str, Enum):
    """How a failed attempt should be handled."""

    RETRYABLE = "retryable"
    TERMINAL = "terminal"


def failure_status(exc: BaseException) -> int | None:
    """Extract the HTTP status carried by *exc*, if any."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return None


class BackoffPolicy:
    """Decides whether a failed attempt is retried and how long to wait.

    Args:
        max_retries: Retries allowed after the first attempt.
        unit:        Delay in seconds before the first retry.
        base:        Growth factor between successive retries.
    """

    def __init__(self, max_retries: int = 3, unit: float = 3.0, base: float = 3.0) -> None:
        self.max_retries = max_retries
        self.unit = unit
        self.base = base

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def classify(self, exc: BaseException) -> FailureKind:
        status = failure_status(exc)
        if status in NON_RETRYABLE_STATUS_CODES:
            return FailureKind.TERMINAL
        if status is None or status in RETRYABLE_STATUS_CODES:
            return FailureKind.RETRYABLE
        return FailureKind.TERMINAL

    def should_retry(
        self,
        exc: BaseException,
        attempt: int,
        max_attempts: int | None = None,
        *,
        skip_retry: bool = False,
    ) -> bool:
        """Return ``True`` when attempt number *attempt* (1-based) should be retried."""
        if skip_retry:
            return False
        limit = self.max_attempts if max_attempts is None else max_attempts
        if attempt >= limit:
            return False
        return self.classify(exc) is FailureKind.RETRYABLE

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt *attempt*: 3s, 9s, 27s by default."""
        return self.unit * self.base ** (attempt - 1)
