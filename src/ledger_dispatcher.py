"""LedgerDispatcher: the single gateway for every ledger API call.

Callers hand ``submit()`` an async callable and get back a future.  A
single worker task drains the FIFO queue and drives each submission,
one at a time, through:

    circuit breaker  →  rate governor  →  work  →  backoff policy

so at most one ledger request is ever in flight, consecutive attempt
starts are spaced by ``DISPATCH_SPACING_SECONDS``, transient failures
are retried with exponential backoff, and a degraded ledger is failed
fast by the circuit breaker.  Submissions resolve in arrival order.

The breaker is updated once per submission, after all of its retries
have concluded, unless ``count_every_attempt`` is set.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from src.core.clock import Clock, SystemClock
from src.core.config import Settings
from src.core.errors import CircuitOpenError, LedgerGatewayError
from src.resilience.backoff import BackoffPolicy
from src.resilience.circuit_breaker import CircuitBreaker
from src.resilience.rate_governor import RateGovernor

logger = logging.getLogger(__name__)

Work = Callable[..., Awaitable[Any]]

_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL,
)


# ── Data classes ────────────────────────────────────────────────────────


class AttemptSignal:
    """Cancellation handle passed to ``work`` for a single attempt.

    A fresh signal is created for every attempt.  It is aborted when the
    attempt times out or when the caller cancels the submission, so
    ``work`` can stop streaming or release resources early.

    Attributes:
        attempt: 1-based attempt number within the submission.
    """

    def __init__(self, attempt: int) -> None:
        self.attempt = attempt
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until the attempt is aborted."""
        await self._event.wait()


@dataclass
class Submission:
    """One queued unit of work and the future its caller is awaiting.

    Attributes:
        work:       Async callable taking no argument or an ``AttemptSignal``.
        future:     Resolved with the outcome once processing finishes.
        skip_retry: Allow a single attempt only.
        timeout:    Per-attempt deadline in seconds (``None`` = no deadline).
        label:      Name used in log lines.
    """

    work: Work
    future: asyncio.Future
    skip_retry: bool = False
    timeout: float | None = None
    label: str = "ledger call"


def _accepts_signal(work: Work) -> bool:
    """Return whether *work* takes a positional argument for the signal."""
    try:
        params = inspect.signature(work).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(p.kind in _POSITIONAL_KINDS for p in params)


# ── Dispatcher ──────────────────────────────────────────────────────────


class LedgerDispatcher:
    """Serializes, throttles and retries calls to the ledger API.

    Construct one instance at startup and inject it wherever ledger calls
    are made.  All mutable state (queue, circuit, last dispatch time) is
    touched only by the worker task.

    Args:
        spacing:             Seconds between consecutive attempt starts.
        max_retries:         Retries after the first attempt.
        backoff_unit:        Delay before the first retry, in seconds.
        backoff_base:        Growth factor between retries.
        failure_threshold:   Failed submissions before the circuit opens.
        cooldown:            Seconds an open circuit blocks traffic.
        count_every_attempt: Feed every failed attempt to the breaker
                             instead of one failure per submission.
        clock:               Time source (defaults to ``SystemClock``).
    """

    def __init__(
        self,
        *,
        spacing: float = 2.1,
        max_retries: int = 3,
        backoff_unit: float = 3.0,
        backoff_base: float = 3.0,
        failure_threshold: int = 5,
        cooldown: float = 60.0,
        count_every_attempt: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self.backoff = BackoffPolicy(max_retries=max_retries, unit=backoff_unit, base=backoff_base)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            cooldown=cooldown,
            clock=self._clock,
        )
        self.rate_governor = RateGovernor(spacing=spacing, clock=self._clock)
        self._count_every_attempt = count_every_attempt

        self._queue: asyncio.Queue[Submission] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._current: Submission | None = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> LedgerDispatcher:
        return cls(
            spacing=settings.DISPATCH_SPACING_SECONDS,
            max_retries=settings.DISPATCH_MAX_RETRIES,
            backoff_unit=settings.DISPATCH_BACKOFF_UNIT_SECONDS,
            backoff_base=settings.DISPATCH_BACKOFF_BASE,
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            cooldown=settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
            count_every_attempt=settings.CIRCUIT_BREAKER_COUNT_EVERY_ATTEMPT,
            clock=clock,
        )

    @property
    def is_processing(self) -> bool:
        return self._current is not None

    # ── Public API ───────────────────────────────────────────────────

    def submit(
        self,
        work: Work,
        *,
        skip_retry: bool = False,
        timeout: float | None = None,
        label: str | None = None,
    ) -> asyncio.Future:
        """Queue *work* and return a future for its outcome.

        Must be called from inside the running event loop.  Enqueueing
        never blocks; the returned future resolves to ``work``'s result
        or raises its terminal failure (or ``CircuitOpenError``).

        Args:
            work:       Async callable; receives an ``AttemptSignal`` if it
                        accepts a positional argument.
            skip_retry: Make exactly one attempt whatever the failure.
            timeout:    Per-attempt deadline in seconds.
            label:      Name used in log lines.

        Raises:
            RuntimeError: If the dispatcher has been closed.
        """
        if self._closed:
            raise RuntimeError("LedgerDispatcher is closed")

        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(
            Submission(
                work=work,
                future=future,
                skip_retry=skip_retry,
                timeout=timeout,
                label=label or "ledger call",
            )
        )

        pending = self._queue.qsize()
        if pending == 1:
            logger.info("Ledger queue: 1 request pending")
        else:
            logger.info(
                "Ledger queue: %d requests pending (~%.0fs wait)",
                pending,
                (pending - 1) * self.rate_governor.spacing,
            )

        self._ensure_worker()
        return future

    def get_status(self) -> dict:
        """Return queue and circuit state for health/ops endpoints."""
        return {
            "queue_size": self._queue.qsize(),
            "is_processing": self.is_processing,
            "circuit_breaker": self.circuit_breaker.get_status(),
        }

    async def close(self) -> None:
        """Stop the worker and cancel every submission still pending."""
        self._closed = True
        current = self._current
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        if current is not None:
            current.future.cancel()
        while not self._queue.empty():
            self._queue.get_nowait().future.cancel()
            self._queue.task_done()

    # ── Worker ───────────────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        # Exactly one drain loop may exist at a time
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="ledger-dispatcher")

    async def _drain(self) -> None:
        while True:
            submission = await self._queue.get()
            try:
                if submission.future.done():
                    logger.info("Skipping %s: cancelled before dispatch", submission.label)
                    continue
                self._current = submission
                await self._run(submission)
            finally:
                self._current = None
                self._queue.task_done()

    async def _run(self, submission: Submission) -> None:
        """Process *submission*, aborting it if its caller cancels the future."""
        task = asyncio.create_task(self._process(submission))

        def _cancel_on_caller_cancel(future: asyncio.Future) -> None:
            if future.cancelled():
                task.cancel()

        submission.future.add_done_callback(_cancel_on_caller_cancel)
        try:
            await task
        except asyncio.CancelledError as exc:
            if asyncio.current_task().cancelling():
                raise
            if submission.future.done():
                logger.info("%s cancelled by caller", submission.label)
            else:
                # work raised CancelledError on its own; the caller is still waiting
                self.circuit_breaker.record_failure()
                logger.error("%s failed: cancelled inside the ledger call", submission.label)
                error = LedgerGatewayError(f"{submission.label} was cancelled inside the ledger call")
                error.__cause__ = exc
                submission.future.set_exception(error)
        finally:
            submission.future.remove_done_callback(_cancel_on_caller_cancel)

    async def _process(self, submission: Submission) -> None:
        future = submission.future
        try:
            result = await self._execute_with_retry(submission)
        except CircuitOpenError as exc:
            logger.warning("%s rejected: %s", submission.label, exc)
            if not future.done():
                future.set_exception(exc)
        except Exception as exc:
            if not self._count_every_attempt:
                self.circuit_breaker.record_failure()
            logger.error("%s failed: %s", submission.label, exc)
            if not future.done():
                future.set_exception(exc)
        else:
            self.circuit_breaker.record_success()
            if not future.done():
                future.set_result(result)

    async def _execute_with_retry(self, submission: Submission) -> Any:
        max_attempts = 1 if submission.skip_retry else self.backoff.max_attempts
        attempt = 1

        while True:
            if not self.circuit_breaker.can_execute():
                raise self.circuit_breaker.open_error()

            await self.rate_governor.await_slot()
            self.rate_governor.mark_dispatch()

            signal = AttemptSignal(attempt)
            try:
                return await self._attempt(submission, signal)
            except asyncio.CancelledError:
                signal.abort()
                raise
            except Exception as exc:
                if self._count_every_attempt:
                    self.circuit_breaker.record_failure()
                if not self.backoff.should_retry(
                    exc,
                    attempt,
                    max_attempts,
                    skip_retry=submission.skip_retry,
                ):
                    exc.add_note(f"{submission.label}: gave up after {attempt} attempt(s)")
                    raise
                delay = self.backoff.delay_for(attempt)
                logger.warning(
                    "Retry %d/%d for %s after error: %s, waiting %.1fs",
                    attempt,
                    max_attempts - 1,
                    submission.label,
                    exc,
                    delay,
                )

            await self._clock.sleep(delay)
            attempt += 1

    async def _attempt(self, submission: Submission, signal: AttemptSignal) -> Any:
        """Run ``work`` once, enforcing the per-attempt timeout if set."""
        work = submission.work
        call = work(signal) if _accepts_signal(work) else work()
        if submission.timeout is None:
            return await call
        try:
            async with asyncio.timeout(submission.timeout):
                return await call
        except TimeoutError:
            signal.abort()
            raise
