"""Unit tests for static auth headers and the OAuth credential cache.

Tests cover:
- AuthConfig validation and from_dict parsing
- Header construction for all auth types (bearer, api_key, basic)
- Environment variable expansion in credentials
- CredentialCache expiry, skew and invalidation
- client_credentials_fetcher against an httpx.MockTransport
"""

import httpx
import pytest

from callouts.lib.auth import (
    AuthConfig,
    AuthType,
    CredentialCache,
    build_auth_headers,
    client_credentials_fetcher,
)
from callouts.lib.errors import ConfigurationError, InsecureEndpointError


# ============================================================================
# AuthConfig Tests
# ============================================================================


class TestAuthConfigValidation:
    """Tests for AuthConfig dataclass validation."""

    def test_none_auth_requires_no_credentials(self):
        """NONE auth type should not require any credentials."""
        config = AuthConfig(auth_type=AuthType.NONE)
        assert config.auth_type == AuthType.NONE

    def test_bearer_requires_token(self):
        """Bearer auth should require token."""
        with pytest.raises(ConfigurationError, match="Bearer authentication requires 'token'"):
            AuthConfig(auth_type=AuthType.BEARER)

    def test_api_key_requires_key(self):
        """API key auth should require api_key."""
        with pytest.raises(ConfigurationError, match="API key authentication requires"):
            AuthConfig(auth_type=AuthType.API_KEY)

    def test_basic_requires_username_and_password(self):
        """Basic auth should require both username and password."""
        with pytest.raises(ConfigurationError, match="Basic authentication requires both"):
            AuthConfig(auth_type=AuthType.BASIC, username="user")

    def test_from_dict(self):
        """from_dict should parse auth_type case-insensitively."""
        config = AuthConfig.from_dict(
            {"auth_type": "API_KEY", "api_key": "k", "api_key_header": "X-Key"}
        )
        assert config.auth_type == AuthType.API_KEY
        assert config.api_key_header == "X-Key"

    def test_from_dict_unknown_type(self):
        """Unknown auth types should raise with a suggestion."""
        with pytest.raises(ConfigurationError, match="Unsupported auth_type") as exc_info:
            AuthConfig.from_dict({"auth_type": "kerberos"})
        assert "bearer" in exc_info.value.suggestion


# ============================================================================
# Header Construction Tests
# ============================================================================


class TestBuildAuthHeaders:
    """Tests for build_auth_headers()."""

    def test_none_config(self):
        assert build_auth_headers(None) == ({}, None)

    def test_bearer_header(self):
        headers, basic = build_auth_headers(
            AuthConfig(auth_type=AuthType.BEARER, token="my-token")
        )
        assert headers == {"Authorization": "Bearer my-token"}
        assert basic is None

    def test_api_key_header(self):
        headers, _ = build_auth_headers(
            AuthConfig(auth_type=AuthType.API_KEY, api_key="k", api_key_header="X-Api-Key")
        )
        assert headers == {"X-Api-Key": "k"}

    def test_basic_tuple(self):
        headers, basic = build_auth_headers(
            AuthConfig(auth_type=AuthType.BASIC, username="u", password="p")
        )
        assert headers == {}
        assert basic == ("u", "p")

    def test_env_var_expansion(self, monkeypatch):
        """Credential references are expanded at build time."""
        monkeypatch.setenv("ORDERS_TOKEN", "from-env")
        headers, _ = build_auth_headers(
            AuthConfig(auth_type=AuthType.BEARER, token="${ORDERS_TOKEN}")
        )
        assert headers["Authorization"] == "Bearer from-env"

    def test_missing_env_var_raises(self, monkeypatch):
        monkeypatch.delenv("ORDERS_TOKEN", raising=False)
        with pytest.raises(KeyError, match="ORDERS_TOKEN"):
            build_auth_headers(AuthConfig(auth_type=AuthType.BEARER, token="${ORDERS_TOKEN}"))

    def test_empty_env_var_raises(self, monkeypatch):
        monkeypatch.setenv("ORDERS_TOKEN", "")
        with pytest.raises(ConfigurationError, match="empty"):
            build_auth_headers(AuthConfig(auth_type=AuthType.BEARER, token="${ORDERS_TOKEN}"))


# ============================================================================
# CredentialCache Tests
# ============================================================================


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCredentialCache:
    """Tests for CredentialCache."""

    def test_fetches_lazily_and_caches(self):
        calls = []

        def fetcher():
            calls.append(1)
            return "tok-1", 3600

        clock = FakeClock()
        cache = CredentialCache(fetcher, clock=clock)
        assert cache.expires_at is None
        assert cache.is_valid() is False

        assert cache.get_token() == "tok-1"
        assert cache.get_token() == "tok-1"
        assert len(calls) == 1
        assert cache.expires_at == 1000.0 + 3600

    def test_refetches_within_skew_of_expiry(self):
        tokens = iter([("tok-1", 100), ("tok-2", 100)])
        clock = FakeClock()
        cache = CredentialCache(lambda: next(tokens), skew_seconds=30, clock=clock)

        assert cache.get_token() == "tok-1"
        clock.now += 69
        assert cache.get_token() == "tok-1"
        clock.now += 2
        assert cache.get_token() == "tok-2"

    def test_invalidate_forces_refetch(self):
        tokens = iter([("tok-1", 3600), ("tok-2", 3600)])
        cache = CredentialCache(lambda: next(tokens), clock=FakeClock())

        assert cache.get_token() == "tok-1"
        cache.invalidate()
        assert cache.expires_at is None
        assert cache.get_token() == "tok-2"

    def test_empty_token_raises(self):
        cache = CredentialCache(lambda: ("", 3600), clock=FakeClock())
        with pytest.raises(ConfigurationError, match="empty access token"):
            cache.get_token()

    def test_separate_caches_do_not_share_tokens(self):
        first = CredentialCache(lambda: ("a", 3600), clock=FakeClock())
        second = CredentialCache(lambda: ("b", 3600), clock=FakeClock())
        assert first.get_token() == "a"
        assert second.get_token() == "b"


class TestClientCredentialsFetcher:
    """Tests for the OAuth2 client-credentials grant."""

    def test_posts_form_and_parses_token(self, monkeypatch):
        monkeypatch.setenv("CLIENT_SECRET", "s3cret")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"access_token": "abc", "expires_in": 120})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        fetch = client_credentials_fetcher(
            "https://auth.example.com/oauth/token",
            client_id="my-client",
            client_secret="${CLIENT_SECRET}",
            scope="orders.read",
            client=client,
        )

        token, expires_in = fetch()
        assert token == "abc"
        assert expires_in == 120.0
        assert seen["method"] == "POST"
        assert seen["url"] == "https://auth.example.com/oauth/token"
        assert "grant_type=client_credentials" in seen["body"]
        assert "client_secret=s3cret" in seen["body"]
        assert "scope=orders.read" in seen["body"]

    def test_default_expiry(self):
        client = httpx.Client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"access_token": "abc"})
            )
        )
        fetch = client_credentials_fetcher(
            "https://auth.example.com/token", client_id="c", client_secret="s", client=client
        )
        assert fetch() == ("abc", 3600.0)

    def test_error_status_raises_http_error(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(401))
        )
        fetch = client_credentials_fetcher(
            "https://auth.example.com/token", client_id="c", client_secret="s", client=client
        )
        with pytest.raises(httpx.HTTPStatusError):
            fetch()

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>proxy login</html>"),
            httpx.Response(200, json={"token_type": "bearer"}),
            httpx.Response(200, json=["not", "an", "object"]),
            httpx.Response(200, json={"access_token": "abc", "expires_in": "soon"}),
            httpx.Response(200, json={"access_token": ""}),
        ],
    )
    def test_unusable_payload_raises_decoding_error(self, response):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
        fetch = client_credentials_fetcher(
            "https://auth.example.com/token", client_id="c", client_secret="s", client=client
        )
        with pytest.raises(httpx.DecodingError, match="auth.example.com/token"):
            fetch()

    def test_plaintext_token_url_rejected_at_build_time(self):
        with pytest.raises(InsecureEndpointError):
            client_credentials_fetcher(
                "http://auth.example.com/token", client_id="c", client_secret="s"
            )
