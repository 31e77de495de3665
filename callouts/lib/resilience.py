"""Retry with exponential backoff for callouts.

The wrapper retries on *outcomes*, not exceptions: the transport returns
failures as data, so a retryable outcome (429, 502/503/504, timeouts and
connection failures under the default policy) is re-attempted until it
succeeds, turns non-retryable, or the attempt budget runs out. The last
outcome is always returned; exhaustion is not an exception.

Two ways to drive it:
- ``execute()`` runs the whole loop in-line, suspending with ``sleep``
  between attempts (tenacity does the bookkeeping).
- ``attempt()`` performs exactly one transport call and says when the next
  one is due, so a scheduler can resume the operation later instead of
  blocking a worker.

Example:
    wrapper = ResilienceWrapper(HttpTransport(), recorder=recorder)
    outcome = wrapper.execute(request, RetryPolicy(max_attempts=3, base_delay=0.5))
    if not outcome.success:
        mark_failed(outcome.error_message)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import tenacity
from tenacity.wait import wait_base

from callouts.lib.errors import ConfigurationError
from callouts.lib.models import CalloutOutcome, CalloutRequest, ErrorClass
from callouts.lib.observability import CalloutRecorder
from callouts.lib.transport import Transport

logger = logging.getLogger(__name__)

__all__ = [
    "RetryPolicy",
    "ResilienceWrapper",
    "AttemptResult",
    "default_retryable",
    "RETRYABLE_STATUS_CODES",
    "RETRYABLE_ERRORS",
]

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})

# Failures that never produced a response
RETRYABLE_ERRORS = frozenset(
    {ErrorClass.RATE_LIMITED, ErrorClass.TIMEOUT, ErrorClass.TRANSPORT_FAILURE}
)


def default_retryable(outcome: CalloutOutcome) -> bool:
    """Rate limits, gateway-level 5xx, timeouts and connection failures."""
    if outcome.error in RETRYABLE_ERRORS:
        return True
    return outcome.status_code in RETRYABLE_STATUS_CODES


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one logical callout.

    Shared read-only by every attempt of the operation.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    retryable: Callable[[CalloutOutcome], bool] = default_retryable
    max_delay: Optional[float] = None
    honor_retry_after: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be a positive integer",
                field="max_attempts",
                value=self.max_attempts,
            )
        if self.base_delay < 0:
            raise ConfigurationError(
                "base_delay must not be negative", field="base_delay", value=self.base_delay
            )
        if self.max_delay is not None and self.max_delay < 0:
            raise ConfigurationError(
                "max_delay must not be negative", field="max_delay", value=self.max_delay
            )

    @classmethod
    def none(cls) -> "RetryPolicy":
        """No retry - a single attempt."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryPolicy":
        """3 attempts, 1s base delay."""
        return cls()

    @classmethod
    def aggressive(cls) -> "RetryPolicy":
        """5 attempts with a longer base delay."""
        return cls(max_attempts=5, base_delay=5.0)

    def should_retry(self, outcome: CalloutOutcome) -> bool:
        # Success is checked first so an unusual 2xx never reaches the predicate
        if outcome.success:
            return False
        return bool(self.retryable(outcome))

    def delay_for(self, attempt: int, outcome: Optional[CalloutOutcome] = None) -> float:
        """Delay before the attempt that follows ``attempt`` (1-based)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.honor_retry_after and outcome is not None and outcome.retry_after:
            delay = max(delay, outcome.retry_after)
        return delay

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "honor_retry_after": self.honor_retry_after,
        }


class wait_retry_after(wait_base):
    """Stretch another wait strategy up to the server's Retry-After."""

    def __init__(self, base: wait_base) -> None:
        self.base = base

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        delay = self.base(retry_state)
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            retry_after = outcome.result().retry_after
            if retry_after:
                return max(delay, retry_after)
        return delay


def _build_wait(policy: RetryPolicy) -> wait_base:
    # Tenacity exponential: multiplier * 2^(attempt-1), i.e. base_delay * 2^(attempt-1)
    kwargs: Dict[str, float] = {"multiplier": policy.base_delay}
    if policy.max_delay is not None:
        kwargs["max"] = policy.max_delay
    wait_strategy: wait_base = tenacity.wait_exponential(**kwargs)
    if policy.honor_retry_after:
        wait_strategy = wait_retry_after(wait_strategy)
    return wait_strategy


@dataclass(frozen=True)
class AttemptResult:
    """One attempt's outcome and, when a retry is due, when to run it."""

    outcome: CalloutOutcome
    next_attempt: Optional[int] = None
    delay: Optional[float] = None

    @property
    def done(self) -> bool:
        return self.next_attempt is None


class ResilienceWrapper:
    """Runs callouts through a transport with retry and per-attempt logging."""

    def __init__(
        self,
        transport: Transport,
        *,
        recorder: Optional[CalloutRecorder] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.transport = transport
        self.recorder = recorder
        self.sleep = sleep or time.sleep

    def _invoke(
        self,
        request: CalloutRequest,
        attempt: int,
        correlation_id: Optional[str],
    ) -> CalloutOutcome:
        started = time.perf_counter()
        outcome = self.transport.send(request).with_attempt(attempt)
        duration = time.perf_counter() - started
        if self.recorder is not None:
            self.recorder.record(request, outcome, duration, correlation_id=correlation_id)
        return outcome

    def execute(
        self,
        request: CalloutRequest,
        policy: Optional[RetryPolicy] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> CalloutOutcome:
        """Run the callout until it succeeds, stops being retryable, or runs out of attempts.

        Args:
            request: The callout to perform
            policy: Retry policy (defaults to RetryPolicy.default())
            correlation_id: Optional id attached to log entries

        Returns:
            The final CalloutOutcome, stamped with the attempt that produced it

        Raises:
            ConfigurationError: Insecure or malformed request (first attempt, never retried)
        """
        policy = policy or RetryPolicy.default()
        attempts = 0

        def call() -> CalloutOutcome:
            nonlocal attempts
            attempts += 1
            return self._invoke(request, attempts, correlation_id)

        def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
            outcome = retry_state.outcome.result() if retry_state.outcome else None
            logger.warning(
                "%s %s attempt %d/%d returned %s. Retrying in %.1fs...",
                request.method,
                request.endpoint,
                retry_state.attempt_number,
                policy.max_attempts,
                _describe(outcome),
                retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        def exhausted_handler(retry_state: tenacity.RetryCallState) -> CalloutOutcome:
            last = retry_state.outcome.result() if retry_state.outcome else None
            logger.error(
                "%s %s failed after %d attempts. Last outcome: %s",
                request.method,
                request.endpoint,
                retry_state.attempt_number,
                _describe(last),
            )
            return last

        retryer = tenacity.Retrying(
            stop=tenacity.stop_after_attempt(policy.max_attempts),
            wait=_build_wait(policy),
            retry=tenacity.retry_if_result(policy.should_retry),
            before_sleep=before_sleep_handler,
            retry_error_callback=exhausted_handler,
            sleep=self.sleep,
        )
        return retryer(call)

    def attempt(
        self,
        request: CalloutRequest,
        policy: Optional[RetryPolicy] = None,
        attempt_number: int = 1,
        *,
        correlation_id: Optional[str] = None,
    ) -> AttemptResult:
        """Perform exactly one attempt of a logical callout.

        The caller owns the resumption: when the result is not ``done``, it
        must invoke ``attempt()`` again with ``next_attempt`` after ``delay``
        seconds. The attempt number carried between calls is what keeps the
        total within ``policy.max_attempts``.

        Args:
            request: The callout to perform
            policy: Retry policy (defaults to RetryPolicy.default())
            attempt_number: 1-based attempt to perform now
            correlation_id: Optional id attached to log entries

        Returns:
            AttemptResult with the outcome and, when another attempt is
            due, its number and delay

        Raises:
            ConfigurationError: If ``attempt_number`` is outside the budget
        """
        policy = policy or RetryPolicy.default()
        if attempt_number < 1 or attempt_number > policy.max_attempts:
            raise ConfigurationError(
                f"Attempt {attempt_number} is outside the budget of {policy.max_attempts}",
                endpoint=request.endpoint,
                field="attempt_number",
                value=attempt_number,
            )

        outcome = self._invoke(request, attempt_number, correlation_id)
        if not policy.should_retry(outcome):
            return AttemptResult(outcome)

        if attempt_number >= policy.max_attempts:
            logger.error(
                "%s %s failed after %d attempts. Last outcome: %s",
                request.method,
                request.endpoint,
                attempt_number,
                _describe(outcome),
            )
            return AttemptResult(outcome)

        delay = policy.delay_for(attempt_number, outcome)
        logger.warning(
            "%s %s attempt %d/%d returned %s. Next attempt due in %.1fs",
            request.method,
            request.endpoint,
            attempt_number,
            policy.max_attempts,
            _describe(outcome),
            delay,
        )
        return AttemptResult(outcome, next_attempt=attempt_number + 1, delay=delay)


def _describe(outcome: Optional[CalloutOutcome]) -> str:
    if outcome is None:
        return "nothing"
    if outcome.status_code is not None:
        return f"HTTP {outcome.status_code} ({outcome.error.value})"
    return outcome.error.value
