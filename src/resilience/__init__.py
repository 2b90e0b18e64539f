"""Resilience patterns for ledger dispatch.

Provides the single ledger circuit breaker, the retry/backoff policy and
the global rate governor used by ``LedgerDispatcher`` to protect the
ledger API and the gateway from cascading failures.
"""

from src.resilience.backoff import BackoffPolicy, FailureKind
from src.resilience.circuit_breaker import CircuitBreaker, CircuitState
from src.resilience.rate_governor import RateGovernor

__all__ = [
    "BackoffPolicy",
    "CircuitBreaker",
    "CircuitState",
    "FailureKind",
    "RateGovernor",
]
