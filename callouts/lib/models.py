"""Data model for outbound callouts.

Every type here is immutable once constructed. Outcomes are created once per
attempt, batch jobs are re-created (never mutated) when a remainder is
re-enqueued, and log entries are written once.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from callouts.lib.errors import ConfigurationError, InsecureEndpointError

__all__ = [
    "ErrorClass",
    "CalloutRequest",
    "CalloutOutcome",
    "WorkItem",
    "BatchJob",
    "LogEntry",
    "classify_status",
    "require_https",
    "NAMED_CREDENTIAL_PREFIX",
    "SUPPORTED_METHODS",
]

NAMED_CREDENTIAL_PREFIX = "callout:"

SUPPORTED_METHODS = frozenset(
    {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}
)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ErrorClass(Enum):
    """Closed set of callout error classifications."""

    NONE = "none"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    TRANSPORT_FAILURE = "transport_failure"
    TIMEOUT = "timeout"


def require_https(url: str) -> None:
    """Raise unless ``url`` is an absolute https:// URL with a host.

    Raises:
        InsecureEndpointError: For http:// or any other plaintext scheme
        ConfigurationError: For relative or unparseable URLs
    """
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError(
            "Callout target must be an absolute URL or a callout:<name> reference",
            field="endpoint",
            value=url,
        )
    if parsed.scheme.lower() != "https":
        raise InsecureEndpointError(url)


def classify_status(status_code: int) -> ErrorClass:
    """Map an HTTP status code to its error classification."""
    if status_code == 429:
        return ErrorClass.RATE_LIMITED
    if 400 <= status_code < 500:
        return ErrorClass.CLIENT_ERROR
    if status_code >= 500:
        return ErrorClass.SERVER_ERROR
    return ErrorClass.NONE


@dataclass(frozen=True)
class CalloutRequest:
    """A single outbound HTTP request.

    The endpoint is either an absolute URL or a named reference of the form
    ``callout:<name>/<path>`` resolved by the transport at send time.

    Example:
        CalloutRequest("callout:orders_api/v1/orders", method="POST",
                       body='{"id": 42}', timeout=10)
    """

    endpoint: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not self.endpoint or not self.endpoint.strip():
            raise ConfigurationError("Callout endpoint is required", field="endpoint")

        method = (self.method or "").upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"Unsupported HTTP method: '{self.method}'",
                field="method",
                value=self.method,
                suggestion=f"Use one of {', '.join(sorted(SUPPORTED_METHODS))}",
            )
        object.__setattr__(self, "method", method)

        if self.timeout is None or self.timeout <= 0:
            raise ConfigurationError(
                "Callout timeout must be a positive number of seconds",
                field="timeout",
                value=self.timeout,
            )

        # Own copy; later mutation of the caller's dict must not leak in
        object.__setattr__(self, "headers", dict(self.headers or {}))

    @property
    def is_named(self) -> bool:
        """Whether the endpoint goes through a named credential."""
        return self.endpoint.startswith(NAMED_CREDENTIAL_PREFIX)


@dataclass(frozen=True)
class CalloutOutcome:
    """Normalized result of one transport attempt."""

    status_code: Optional[int]
    body: Optional[str]
    error: ErrorClass
    elapsed: float
    error_message: Optional[str] = None
    retry_after: Optional[float] = None
    attempt: int = 1

    @property
    def success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @classmethod
    def from_response(
        cls,
        status_code: int,
        body: Optional[str],
        elapsed: float,
        *,
        retry_after: Optional[float] = None,
        attempt: int = 1,
    ) -> "CalloutOutcome":
        """Build an outcome from a received HTTP response."""
        error = classify_status(status_code)
        message = None
        if error is not ErrorClass.NONE:
            message = f"HTTP {status_code}"
            if body:
                message = f"{message}: {body[:200]}"
        return cls(
            status_code=status_code,
            body=body,
            error=error,
            elapsed=elapsed,
            error_message=message,
            retry_after=retry_after,
            attempt=attempt,
        )

    @classmethod
    def transport_failure(
        cls, message: str, elapsed: float, *, attempt: int = 1
    ) -> "CalloutOutcome":
        """Outcome for a request that never received a response."""
        return cls(
            status_code=None,
            body=None,
            error=ErrorClass.TRANSPORT_FAILURE,
            elapsed=elapsed,
            error_message=message,
            attempt=attempt,
        )

    @classmethod
    def timeout(cls, message: str, elapsed: float, *, attempt: int = 1) -> "CalloutOutcome":
        """Outcome for a request that exceeded its timeout."""
        return cls(
            status_code=None,
            body=None,
            error=ErrorClass.TIMEOUT,
            elapsed=elapsed,
            error_message=message,
            attempt=attempt,
        )

    def with_attempt(self, attempt: int) -> "CalloutOutcome":
        """Copy of this outcome stamped with an attempt number."""
        return CalloutOutcome(
            status_code=self.status_code,
            body=self.body,
            error=self.error,
            elapsed=self.elapsed,
            error_message=self.error_message,
            retry_after=self.retry_after,
            attempt=attempt,
        )


@dataclass(frozen=True)
class WorkItem:
    """One callout bound to the external record it reports status for."""

    key: str
    request: CalloutRequest


@dataclass(frozen=True)
class BatchJob:
    """Ordered work items plus a cursor of how many have been processed.

    A job is owned by exactly one scheduling unit. Splitting never mutates
    the job; the remainder is a fresh BatchJob holding only unprocessed items.
    """

    items: Tuple[WorkItem, ...]
    cursor: int = 0
    submission_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    generation: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        if not 0 <= self.cursor <= len(self.items):
            raise ConfigurationError(
                "BatchJob cursor is out of range",
                field="cursor",
                value=self.cursor,
            )

    @property
    def remaining(self) -> Tuple[WorkItem, ...]:
        return self.items[self.cursor:]

    def split(self, batch_size: int) -> Tuple[Tuple[WorkItem, ...], Optional["BatchJob"]]:
        """Split into the items to run now and a remainder job (or None)."""
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be at least 1", field="batch_size", value=batch_size
            )
        pending = self.remaining
        inline = pending[:batch_size]
        rest = pending[batch_size:]
        if not rest:
            return inline, None
        remainder = BatchJob(
            items=rest,
            submission_id=self.submission_id,
            generation=self.generation + 1,
        )
        return inline, remainder


@dataclass(frozen=True)
class LogEntry:
    """Durable record of one callout attempt."""

    endpoint: str
    method: str
    request_body: Optional[str]
    status_code: Optional[int]
    response_body: Optional[str]
    error: ErrorClass
    success: bool
    duration: float
    attempt: int = 1
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None
    logged_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "endpoint": self.endpoint,
            "method": self.method,
            "request_body": self.request_body,
            "status_code": self.status_code,
            "response_body": self.response_body,
            "error": self.error.value,
            "success": self.success,
            "duration": self.duration,
            "attempt": self.attempt,
            "error_message": self.error_message,
            "correlation_id": self.correlation_id,
            "logged_at": self.logged_at,
        }
