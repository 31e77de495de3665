"""Deterministic transport for tests and dry runs.

Maps path patterns to canned outcomes so resilience and dispatch logic can
be exercised without network access. Substring routes are checked in the
order they were added; custom routes win over the defaults.

Example:
    transport = MockTransport()
    transport.add_route("/flaky", [MockTransport.status(503), MockTransport.status(200)])
    wrapper = ResilienceWrapper(transport, sleep=lambda _: None)
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

from callouts.lib.models import CalloutOutcome, CalloutRequest, require_https

logger = logging.getLogger(__name__)

__all__ = ["MockTransport", "OutcomeSpec"]

OutcomeSpec = Union[CalloutOutcome, Sequence[CalloutOutcome]]


class MockTransport:
    """Pattern-routed canned outcomes; records every request it sees."""

    def __init__(
        self,
        routes: Optional[Dict[str, OutcomeSpec]] = None,
        *,
        default: Optional[CalloutOutcome] = None,
        include_defaults: bool = True,
    ) -> None:
        self._routes: List[Tuple[str, List[CalloutOutcome]]] = []
        self._lock = threading.Lock()
        self.default = default or self.status(404, "No mock route matched")
        self.calls: List[CalloutRequest] = []

        if include_defaults:
            self.add_route("/success", self.status(200, '{"status": "ok"}'))
            self.add_route("/error", self.status(500, '{"error": "Internal Server Error"}'))
            self.add_route("/timeout", CalloutOutcome.timeout("Mock timeout", 0.0))
            self.add_route("/ratelimit", self.status(429, '{"error": "Too Many Requests"}'))
            self.add_route("/notfound", self.status(404, '{"error": "Not Found"}'))
        for pattern, spec in (routes or {}).items():
            self.add_route(pattern, spec)

    @staticmethod
    def status(
        status_code: int, body: str = "", *, retry_after: Optional[float] = None
    ) -> CalloutOutcome:
        """Canned outcome for a received response."""
        return CalloutOutcome.from_response(
            status_code, body, 0.0, retry_after=retry_after
        )

    def add_route(self, pattern: str, spec: OutcomeSpec) -> None:
        """Route requests whose path contains ``pattern``.

        A sequence is consumed one outcome per call; its last element repeats.
        """
        outcomes = [spec] if isinstance(spec, CalloutOutcome) else list(spec)
        if not outcomes:
            raise ValueError(f"Route '{pattern}' needs at least one outcome")
        with self._lock:
            # Newer custom routes take precedence over anything registered earlier
            self._routes.insert(0, (pattern, outcomes))

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def send(self, request: CalloutRequest) -> CalloutOutcome:
        path = request.endpoint
        if not request.is_named:
            require_https(request.endpoint)
            parsed = urlsplit(request.endpoint)
            path = parsed.path + (f"?{parsed.query}" if parsed.query else "")

        with self._lock:
            self.calls.append(request)
            for pattern, outcomes in self._routes:
                if pattern in path:
                    outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                    break
            else:
                outcome = self.default

        logger.debug("Mock %s %s -> %s", request.method, request.endpoint, outcome.status_code)
        return outcome
