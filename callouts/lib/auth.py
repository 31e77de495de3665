"""Callout authentication utilities.

Provides static authentication (bearer tokens, API keys, basic auth) and an
explicit credential cache for short-lived OAuth tokens. The cache is an
object injected into a named credential; there is no process-wide token.

All static credential values should use environment variable references
(${VAR_NAME}) which are expanded at send time using the env module.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import httpx

from callouts.lib.env import expand_env_vars
from callouts.lib.errors import ConfigurationError
from callouts.lib.models import require_https

logger = logging.getLogger(__name__)

__all__ = [
    "AuthType",
    "AuthConfig",
    "build_auth_headers",
    "CredentialCache",
    "TokenFetcher",
    "client_credentials_fetcher",
]

# (access_token, expires_in_seconds)
TokenFetcher = Callable[[], Tuple[str, float]]


class AuthType(Enum):
    """Supported static authentication methods."""

    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"


@dataclass
class AuthConfig:
    """Static authentication for a named credential.

    Examples:
        AuthConfig(auth_type=AuthType.BEARER, token="${ORDERS_TOKEN}")
        AuthConfig(auth_type=AuthType.API_KEY, api_key="${KEY}", api_key_header="X-Api-Key")
        AuthConfig(auth_type=AuthType.BASIC, username="${USER}", password="${PASS}")
    """

    auth_type: AuthType = AuthType.NONE

    token: Optional[str] = None

    api_key: Optional[str] = None
    api_key_header: str = "X-API-Key"

    username: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration based on auth type."""
        if self.auth_type == AuthType.BEARER and not self.token:
            raise ConfigurationError(
                "Bearer authentication requires 'token' to be set", field="token"
            )
        if self.auth_type == AuthType.API_KEY and not self.api_key:
            raise ConfigurationError(
                "API key authentication requires 'api_key' to be set", field="api_key"
            )
        if self.auth_type == AuthType.BASIC and not (self.username and self.password):
            raise ConfigurationError(
                "Basic authentication requires both 'username' and 'password'",
                field="username",
            )

    @classmethod
    def from_dict(cls, options: Dict[str, str]) -> "AuthConfig":
        """Build from an options dict (auth_type, token, api_key, ...)."""
        auth_type_str = str(options.get("auth_type", "none")).lower()
        try:
            auth_type = AuthType(auth_type_str)
        except ValueError:
            raise ConfigurationError(
                f"Unsupported auth_type: '{auth_type_str}'",
                field="auth_type",
                suggestion="Use 'bearer', 'api_key', 'basic', or 'none'",
            )
        return cls(
            auth_type=auth_type,
            token=options.get("token"),
            api_key=options.get("api_key"),
            api_key_header=options.get("api_key_header", "X-API-Key"),
            username=options.get("username"),
            password=options.get("password"),
        )


def build_auth_headers(
    config: Optional[AuthConfig],
) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
    """Build HTTP headers and basic-auth tuple from a static auth config.

    Args:
        config: Authentication configuration (None = no auth)

    Returns:
        Tuple of (headers dict, optional basic auth tuple)

    Raises:
        ConfigurationError: If a credential resolves to an empty value
        KeyError: If a referenced environment variable is not set
    """
    headers: Dict[str, str] = {}
    auth_tuple: Optional[Tuple[str, str]] = None

    if config is None or config.auth_type == AuthType.NONE:
        return headers, None

    if config.auth_type == AuthType.BEARER:
        token = expand_env_vars(config.token or "", strict=True)
        if not token:
            raise ConfigurationError("Bearer token resolved to empty string", field="token")
        headers["Authorization"] = f"Bearer {token}"

    elif config.auth_type == AuthType.API_KEY:
        api_key = expand_env_vars(config.api_key or "", strict=True)
        if not api_key:
            raise ConfigurationError("API key resolved to empty string", field="api_key")
        headers[config.api_key_header] = api_key

    elif config.auth_type == AuthType.BASIC:
        username = expand_env_vars(config.username or "", strict=True)
        password = expand_env_vars(config.password or "", strict=True)
        if not (username and password):
            raise ConfigurationError(
                "Basic auth username or password resolved to empty string",
                field="username",
            )
        auth_tuple = (username, password)

    return headers, auth_tuple


class CredentialCache:
    """Access token cache with an expiry timestamp.

    The token is fetched lazily and refetched once it is within
    ``skew_seconds`` of expiring, or after ``invalidate()``.

    Example:
        cache = CredentialCache(
            client_credentials_fetcher(
                "https://auth.example.com/oauth/token",
                client_id="${CLIENT_ID}",
                client_secret="${CLIENT_SECRET}",
            )
        )
        headers = {"Authorization": f"Bearer {cache.get_token()}"}
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        *,
        skew_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetcher = fetcher
        self._skew = skew_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def expires_at(self) -> Optional[float]:
        return self._expires_at

    def is_valid(self) -> bool:
        if self._token is None or self._expires_at is None:
            return False
        return self._clock() < self._expires_at - self._skew

    def get_token(self) -> str:
        """Return a valid token, fetching a new one when needed.

        Raises:
            httpx.HTTPError: If the token request fails or its response is unusable
            ConfigurationError: If the fetcher returns an empty token
        """
        with self._lock:
            if not self.is_valid():
                token, expires_in = self._fetcher()
                if not token:
                    raise ConfigurationError("Token endpoint returned an empty access token")
                self._token = token
                self._expires_at = self._clock() + float(expires_in)
                logger.debug("Fetched new access token (expires in %.0fs)", expires_in)
            assert self._token is not None
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next call refetches it."""
        with self._lock:
            self._token = None
            self._expires_at = None


def client_credentials_fetcher(
    token_url: str,
    *,
    client_id: str,
    client_secret: str,
    scope: Optional[str] = None,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> TokenFetcher:
    """Build a fetcher for the OAuth2 client-credentials grant.

    The token request itself is a plain POST. A failed request or an
    unusable response raises httpx.HTTPError to the caller of
    ``CredentialCache.get_token()``.

    Args:
        token_url: HTTPS URL of the token endpoint
        client_id: Client id, may be a ${VAR} reference
        client_secret: Client secret, may be a ${VAR} reference
        scope: Optional space-separated scopes
        client: Optional httpx client to reuse for token requests
        timeout: Token request timeout in seconds

    Returns:
        A fetcher returning ``(access_token, expires_in_seconds)``

    Raises:
        InsecureEndpointError: If ``token_url`` is not https://
    """
    # Client secrets never travel over plaintext
    require_https(token_url)

    def fetch() -> Tuple[str, float]:
        data = {
            "grant_type": "client_credentials",
            "client_id": expand_env_vars(client_id, strict=True),
            "client_secret": expand_env_vars(client_secret, strict=True),
        }
        if scope:
            data["scope"] = scope

        http = client or httpx.Client(timeout=timeout)
        try:
            response = http.post(token_url, data=data, timeout=timeout)
            response.raise_for_status()
            try:
                payload = response.json()
                token = payload["access_token"]
                expires_in = float(payload.get("expires_in", 3600))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise httpx.DecodingError(
                    f"Unusable token response from {token_url}: {type(exc).__name__}: {exc}",
                    request=response.request,
                ) from exc
            if not token:
                raise httpx.DecodingError(
                    f"Token endpoint {token_url} returned an empty access token",
                    request=response.request,
                )
        finally:
            if client is None:
                http.close()

        return token, expires_in

    return fetch
