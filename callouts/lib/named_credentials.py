"""Named credentials: the indirection layer between code and endpoints.

Callers address remote systems as ``callout:<name>/<path>``. The registry maps
the name to a base URL plus authentication, so URLs and secrets can rotate in
configuration without touching code.

Example:
    registry = NamedCredentialRegistry()
    registry.register(
        NamedCredential(
            name="orders_api",
            base_url="https://api.example.com",
            auth=AuthConfig(auth_type=AuthType.BEARER, token="${ORDERS_TOKEN}"),
        )
    )
    url, headers, basic = registry.resolve("callout:orders_api/v1/orders")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from callouts.lib.auth import (
    AuthConfig,
    CredentialCache,
    build_auth_headers,
    client_credentials_fetcher,
)
from callouts.lib.env import expand_env_vars
from callouts.lib.errors import ConfigurationError, NamedCredentialNotFound
from callouts.lib.models import NAMED_CREDENTIAL_PREFIX

logger = logging.getLogger(__name__)

__all__ = [
    "NamedCredential",
    "NamedCredentialRegistry",
    "ResolvedEndpoint",
    "parse_named_endpoint",
]

OAUTH2_AUTH_TYPE = "oauth2"

# (url, headers, basic auth tuple)
ResolvedEndpoint = Tuple[str, Dict[str, str], Optional[Tuple[str, str]]]


def parse_named_endpoint(endpoint: str) -> Tuple[str, str]:
    """Split ``callout:<name>/<path>`` into (name, path).

    The path keeps its leading slash and any query string; it is empty when
    the reference names only the credential.

    Args:
        endpoint: A ``callout:<name>/<path>`` reference

    Returns:
        Tuple of (name, path)

    Raises:
        ConfigurationError: If the reference is malformed
    """
    if not endpoint.startswith(NAMED_CREDENTIAL_PREFIX):
        raise ConfigurationError(
            "Not a named credential reference", field="endpoint", value=endpoint
        )
    rest = endpoint[len(NAMED_CREDENTIAL_PREFIX):]
    name, sep, path = rest.partition("/")
    if not name:
        raise ConfigurationError(
            "Named credential reference has no name", field="endpoint", value=endpoint
        )
    return name, f"/{path}" if sep else ""


@dataclass
class NamedCredential:
    """Base URL, static auth, optional token cache and default headers."""

    name: str
    base_url: str
    auth: Optional[AuthConfig] = None
    token_cache: Optional[CredentialCache] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Named credential requires a name", field="name")
        if not self.base_url:
            raise ConfigurationError(
                f"Named credential '{self.name}' requires a base_url", field="base_url"
            )

    def build_url(self, path: str) -> str:
        base = expand_env_vars(self.base_url, strict=True).rstrip("/")
        return f"{base}{path}"

    def build_headers(self) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
        headers = {k: expand_env_vars(v) for k, v in self.headers.items()}
        auth_headers, basic = build_auth_headers(self.auth)
        headers.update(auth_headers)
        if self.token_cache is not None:
            headers["Authorization"] = f"Bearer {self.token_cache.get_token()}"
        return headers, basic


class NamedCredentialRegistry:
    """Thread-safe lookup of named credentials."""

    def __init__(self, credentials: Optional[List[NamedCredential]] = None) -> None:
        self._credentials: Dict[str, NamedCredential] = {}
        self._lock = threading.Lock()
        for credential in credentials or []:
            self.register(credential)

    def register(self, credential: NamedCredential) -> None:
        with self._lock:
            if credential.name in self._credentials:
                logger.info("Replacing named credential '%s'", credential.name)
            self._credentials[credential.name] = credential

    def get(self, name: str) -> NamedCredential:
        with self._lock:
            credential = self._credentials.get(name)
        if credential is None:
            raise NamedCredentialNotFound(name)
        return credential

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._credentials)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._credentials

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)

    def resolve(self, endpoint: str) -> ResolvedEndpoint:
        """Resolve a ``callout:`` reference to a URL plus auth material.

        Args:
            endpoint: A ``callout:<name>/<path>`` reference

        Returns:
            Tuple of (url, headers, basic auth tuple or None)

        Raises:
            NamedCredentialNotFound: If the name is not registered
        """
        name, path = parse_named_endpoint(endpoint)
        credential = self.get(name)
        headers, basic = credential.build_headers()
        return credential.build_url(path), headers, basic

    def invalidate_token(self, endpoint: str) -> None:
        """Drop the cached token behind a ``callout:`` reference, if any."""
        name, _ = parse_named_endpoint(endpoint)
        credential = self.get(name)
        if credential.token_cache is not None:
            logger.info("Invalidating cached token for named credential '%s'", name)
            credential.token_cache.invalidate()

    @classmethod
    def from_dict(cls, config: Dict[str, Dict[str, Any]]) -> "NamedCredentialRegistry":
        """Build from the ``named_credentials`` section of a config file.

        ``auth_type: oauth2`` takes ``token_url``, ``client_id``,
        ``client_secret`` and an optional ``scope``; the token is fetched
        with the client-credentials grant and cached per credential.
        """
        registry = cls()
        for name, options in (config or {}).items():
            if not isinstance(options, dict):
                raise ConfigurationError(
                    f"named_credentials.{name} must be a mapping", field=name
                )
            auth = None
            token_cache = None
            auth_type = str(options.get("auth_type", "none")).lower()
            if auth_type == OAUTH2_AUTH_TYPE:
                token_cache = _oauth2_cache(name, options)
            elif auth_type != "none":
                auth = AuthConfig.from_dict(options)
            registry.register(
                NamedCredential(
                    name=name,
                    base_url=options.get("base_url", ""),
                    auth=auth,
                    token_cache=token_cache,
                    headers=dict(options.get("headers") or {}),
                )
            )
        return registry


def _oauth2_cache(name: str, options: Dict[str, Any]) -> CredentialCache:
    missing = [key for key in ("token_url", "client_id", "client_secret") if not options.get(key)]
    if missing:
        raise ConfigurationError(
            f"Named credential '{name}' uses oauth2 but is missing: {', '.join(missing)}",
            field=missing[0],
        )
    return CredentialCache(
        client_credentials_fetcher(
            options["token_url"],
            client_id=options["client_id"],
            client_secret=options["client_secret"],
            scope=options.get("scope"),
        ),
        skew_seconds=float(options.get("token_skew_seconds", 30.0)),
    )
