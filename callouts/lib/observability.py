"""Callout log: one durable entry per attempt.

Every attempt is recorded whether it succeeded or not. Bodies are truncated
to fit the downstream field-size limit. Recording is a side channel: a store
that fails or raises is reported to the diagnostics logger and the calling
operation carries on untouched.
"""

from __future__ import annotations

import logging
from typing import Optional

from callouts.lib.logging import get_diagnostics_logger
from callouts.lib.models import CalloutOutcome, CalloutRequest, LogEntry
from callouts.lib.store import RecordStore

logger = logging.getLogger(__name__)

__all__ = [
    "CalloutRecorder",
    "truncate_body",
    "MAX_BODY_LENGTH",
    "TRUNCATION_MARKER",
    "LOG_ENTITY",
]

MAX_BODY_LENGTH = 32000
TRUNCATION_MARKER = "..."
LOG_ENTITY = "callout_log"


def truncate_body(value: Optional[str], max_length: int = MAX_BODY_LENGTH) -> Optional[str]:
    """Cut ``value`` to ``max_length`` characters plus a marker when longer.

    Args:
        value: Request or response body, or None
        max_length: Characters kept before the marker

    Returns:
        The body unchanged when short enough, otherwise the truncated body
        followed by "..."
    """
    if value is None or len(value) <= max_length:
        return value
    return value[:max_length] + TRUNCATION_MARKER


class CalloutRecorder:
    """Persists a LogEntry for every callout attempt."""

    def __init__(
        self,
        store: RecordStore,
        *,
        max_body_length: int = MAX_BODY_LENGTH,
        entity: str = LOG_ENTITY,
    ) -> None:
        self.store = store
        self.max_body_length = max_body_length
        self.entity = entity
        self.failures = 0
        self._diagnostics = get_diagnostics_logger()

    def build_entry(
        self,
        request: CalloutRequest,
        outcome: CalloutOutcome,
        duration: float,
        correlation_id: Optional[str] = None,
    ) -> LogEntry:
        return LogEntry(
            endpoint=request.endpoint,
            method=request.method,
            request_body=truncate_body(request.body, self.max_body_length),
            status_code=outcome.status_code,
            response_body=truncate_body(outcome.body, self.max_body_length),
            error=outcome.error,
            success=outcome.success,
            duration=duration,
            attempt=outcome.attempt,
            error_message=outcome.error_message,
            correlation_id=correlation_id,
        )

    def record(
        self,
        request: CalloutRequest,
        outcome: CalloutOutcome,
        duration: float,
        *,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Persist one attempt. Never raises.

        Args:
            request: The request that was attempted
            outcome: Outcome of that attempt
            duration: Seconds the attempt took
            correlation_id: Optional id linking attempts of one logical callout
        """
        try:
            entry = self.build_entry(request, outcome, duration, correlation_id)
            result = self.store.insert(self.entity, entry.to_dict())
        except Exception as exc:  # Logging must never break the callout
            self.failures += 1
            self._diagnostics.error(
                "Failed to record callout %s %s: %s",
                request.method,
                request.endpoint,
                exc,
                exc_info=True,
            )
            return

        if not result.success:
            self.failures += 1
            self._diagnostics.error(
                "Callout log insert rejected for %s %s: %s",
                request.method,
                request.endpoint,
                result.error,
            )
            return

        logger.debug(
            "Recorded %s %s attempt %d (status=%s)",
            request.method,
            request.endpoint,
            outcome.attempt,
            outcome.status_code,
        )
