"""Transport client: one HTTPS request in, one normalized outcome out.

The transport never raises for network trouble. Connection failures, TLS
errors and timeouts come back as CalloutOutcome data with no status code.
Only contract violations (plaintext target, malformed request, unknown named
credential) raise, and they raise before any network activity.

Example:
    with HttpTransport(named_credentials=registry) as transport:
        outcome = transport.send(CalloutRequest("callout:orders_api/v1/orders"))
        if not outcome.success:
            print(outcome.error, outcome.error_message)
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Protocol, Tuple

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent

from callouts.lib.errors import ConfigurationError
from callouts.lib.models import CalloutOutcome, CalloutRequest, require_https
from callouts.lib.named_credentials import NamedCredentialRegistry, parse_named_endpoint
from callouts.lib.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

__all__ = ["Transport", "HttpTransport", "parse_retry_after", "USER_AGENT"]

USER_AGENT = user_agent(
    "callout-foundry",
    "1.0.0",
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)


class Transport(Protocol):
    """Anything that can turn a CalloutRequest into a CalloutOutcome."""

    def send(self, request: CalloutRequest) -> CalloutOutcome:
        ...


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a delta-seconds Retry-After header (HTTP dates are ignored).

    Args:
        value: Raw header value, or None

    Returns:
        Seconds to wait, or None when absent or unparseable
    """
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


class HttpTransport:
    """httpx-backed transport with named-credential resolution."""

    def __init__(
        self,
        *,
        named_credentials: Optional[NamedCredentialRegistry] = None,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.Client] = None,
        user_agent_header: str = USER_AGENT,
        verify: bool = True,
    ) -> None:
        self.named_credentials = named_credentials
        self.rate_limiter = rate_limiter
        self.user_agent_header = user_agent_header
        self._owns_client = client is None
        self._client = client or httpx.Client(verify=verify)

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def resolve_url(self, request: CalloutRequest) -> str:
        """Resolve the final URL without touching the network."""
        if not request.is_named:
            return request.endpoint
        if self.named_credentials is None:
            raise ConfigurationError(
                "Named credential endpoint used but no registry is configured",
                endpoint=request.endpoint,
                field="named_credentials",
            )
        name, path = parse_named_endpoint(request.endpoint)
        try:
            return self.named_credentials.get(name).build_url(path)
        except KeyError as exc:
            raise ConfigurationError(
                f"Named credential '{name}' references an unset variable: {exc}",
                endpoint=request.endpoint,
            ) from exc

    def _build_headers(
        self, request: CalloutRequest
    ) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
        headers: Dict[str, str] = {
            "Accept": "application/json",
            "User-Agent": self.user_agent_header,
        }
        basic: Optional[Tuple[str, str]] = None
        if request.is_named and self.named_credentials is not None:
            name, _ = parse_named_endpoint(request.endpoint)
            try:
                credential_headers, basic = self.named_credentials.get(name).build_headers()
            except KeyError as exc:
                raise ConfigurationError(
                    f"Named credential '{name}' references an unset variable: {exc}",
                    endpoint=request.endpoint,
                ) from exc
            headers.update(credential_headers)
        headers.update(request.headers)
        return headers, basic

    def send(self, request: CalloutRequest) -> CalloutOutcome:
        """Send one request and normalize whatever happens into an outcome.

        Args:
            request: The callout to perform

        Returns:
            CalloutOutcome; timeouts, connection errors and failed token
            refreshes are returned here rather than raised

        Raises:
            InsecureEndpointError: If the resolved URL is not https://
            ConfigurationError: For unknown named credentials or unset
                credential variables
        """
        url = self.resolve_url(request)
        require_https(url)

        started = time.perf_counter()
        try:
            headers, basic = self._build_headers(request)
        except httpx.HTTPError as exc:
            # Token refresh is itself a network call
            elapsed = time.perf_counter() - started
            logger.warning("Token refresh for %s failed: %s", request.endpoint, exc)
            return CalloutOutcome.transport_failure(f"Token refresh failed: {exc}", elapsed)

        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        content = request.body.encode("utf-8") if request.body is not None else None

        logger.debug("%s %s", request.method, url)
        started = time.perf_counter()
        try:
            response = self._client.request(
                request.method,
                url,
                headers=headers,
                content=content,
                auth=basic,
                timeout=request.timeout,
            )
        except httpx.TimeoutException as exc:
            elapsed = time.perf_counter() - started
            logger.warning(
                "%s %s timed out after %.2fs", request.method, url, elapsed
            )
            return CalloutOutcome.timeout(
                f"Timed out after {request.timeout}s: {type(exc).__name__}", elapsed
            )
        except httpx.TransportError as exc:
            elapsed = time.perf_counter() - started
            logger.warning("%s %s failed: %s", request.method, url, exc)
            return CalloutOutcome.transport_failure(
                f"{type(exc).__name__}: {exc}", elapsed
            )
        elapsed = time.perf_counter() - started

        if response.status_code == 401 and request.is_named and self.named_credentials:
            self.named_credentials.invalidate_token(request.endpoint)

        logger.debug(
            "%s %s -> %d (%.3fs)", request.method, url, response.status_code, elapsed
        )
        return CalloutOutcome.from_response(
            response.status_code,
            response.text,
            elapsed,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
