"""Tests for named credential parsing, resolution and registry construction."""

import pytest

from callouts.lib.auth import AuthConfig, AuthType, CredentialCache
from callouts.lib.errors import ConfigurationError, InsecureEndpointError, NamedCredentialNotFound
from callouts.lib.named_credentials import (
    NamedCredential,
    NamedCredentialRegistry,
    parse_named_endpoint,
)


@pytest.fixture
def registry():
    return NamedCredentialRegistry(
        [
            NamedCredential(
                name="orders_api",
                base_url="https://api.example.com/",
                auth=AuthConfig(auth_type=AuthType.BEARER, token="static-token"),
                headers={"X-Tenant": "acme"},
            )
        ]
    )


class TestParseNamedEndpoint:
    """Tests for parse_named_endpoint()."""

    def test_name_and_path(self):
        assert parse_named_endpoint("callout:orders_api/v1/orders?limit=5") == (
            "orders_api",
            "/v1/orders?limit=5",
        )

    def test_name_only(self):
        assert parse_named_endpoint("callout:orders_api") == ("orders_api", "")

    def test_missing_name(self):
        with pytest.raises(ConfigurationError, match="no name"):
            parse_named_endpoint("callout:/v1")

    def test_not_a_reference(self):
        with pytest.raises(ConfigurationError, match="Not a named credential"):
            parse_named_endpoint("https://api.example.com")


class TestNamedCredential:
    """Tests for NamedCredential."""

    def test_requires_base_url(self):
        with pytest.raises(ConfigurationError, match="requires a base_url"):
            NamedCredential(name="x", base_url="")

    def test_build_url_expands_env(self, monkeypatch):
        monkeypatch.setenv("ORDERS_HOST", "orders.example.com")
        credential = NamedCredential(name="x", base_url="https://${ORDERS_HOST}/")
        assert credential.build_url("/v1") == "https://orders.example.com/v1"

    def test_token_cache_overrides_static_authorization(self):
        credential = NamedCredential(
            name="x",
            base_url="https://api.example.com",
            auth=AuthConfig(auth_type=AuthType.BEARER, token="static"),
            token_cache=CredentialCache(lambda: ("dynamic", 3600)),
        )
        headers, _ = credential.build_headers()
        assert headers["Authorization"] == "Bearer dynamic"


class TestNamedCredentialRegistry:
    """Tests for NamedCredentialRegistry."""

    def test_resolve(self, registry):
        url, headers, basic = registry.resolve("callout:orders_api/v1/orders")
        assert url == "https://api.example.com/v1/orders"
        assert headers == {"X-Tenant": "acme", "Authorization": "Bearer static-token"}
        assert basic is None

    def test_unknown_name(self, registry):
        with pytest.raises(NamedCredentialNotFound, match="billing"):
            registry.resolve("callout:billing/v1")

    def test_membership_and_names(self, registry):
        assert "orders_api" in registry
        assert "billing" not in registry
        assert len(registry) == 1
        assert registry.names() == ["orders_api"]

    def test_register_replaces(self, registry):
        registry.register(NamedCredential(name="orders_api", base_url="https://new.example.com"))
        assert registry.get("orders_api").base_url == "https://new.example.com"
        assert len(registry) == 1

    def test_invalidate_token(self):
        tokens = iter([("tok-1", 3600), ("tok-2", 3600)])
        registry = NamedCredentialRegistry(
            [
                NamedCredential(
                    name="oauth_api",
                    base_url="https://api.example.com",
                    token_cache=CredentialCache(lambda: next(tokens)),
                )
            ]
        )
        _, headers, _ = registry.resolve("callout:oauth_api/v1")
        assert headers["Authorization"] == "Bearer tok-1"

        registry.invalidate_token("callout:oauth_api/v1")
        _, headers, _ = registry.resolve("callout:oauth_api/v1")
        assert headers["Authorization"] == "Bearer tok-2"

    def test_invalidate_without_cache_is_noop(self, registry):
        registry.invalidate_token("callout:orders_api/v1")


class TestRegistryFromDict:
    """Tests for building a registry from config."""

    def test_static_auth_entries(self):
        registry = NamedCredentialRegistry.from_dict(
            {
                "orders_api": {
                    "base_url": "https://api.example.com",
                    "auth_type": "bearer",
                    "token": "t",
                },
                "public_api": {"base_url": "https://public.example.com"},
            }
        )
        assert registry.names() == ["orders_api", "public_api"]
        assert registry.get("orders_api").auth.auth_type == AuthType.BEARER
        assert registry.get("public_api").auth is None

    def test_oauth2_entry_gets_token_cache(self):
        registry = NamedCredentialRegistry.from_dict(
            {
                "oauth_api": {
                    "base_url": "https://api.example.com",
                    "auth_type": "oauth2",
                    "token_url": "https://auth.example.com/token",
                    "client_id": "${CLIENT_ID}",
                    "client_secret": "${CLIENT_SECRET}",
                }
            }
        )
        credential = registry.get("oauth_api")
        assert credential.auth is None
        assert isinstance(credential.token_cache, CredentialCache)

    def test_oauth2_entry_missing_fields(self):
        with pytest.raises(ConfigurationError, match="client_secret"):
            NamedCredentialRegistry.from_dict(
                {
                    "oauth_api": {
                        "base_url": "https://api.example.com",
                        "auth_type": "oauth2",
                        "token_url": "https://auth.example.com/token",
                        "client_id": "c",
                    }
                }
            )

    def test_oauth2_plaintext_token_url(self):
        with pytest.raises(InsecureEndpointError):
            NamedCredentialRegistry.from_dict(
                {
                    "oauth_api": {
                        "base_url": "https://api.example.com",
                        "auth_type": "oauth2",
                        "token_url": "http://auth.example.com/token",
                        "client_id": "c",
                        "client_secret": "s",
                    }
                }
            )

    def test_entry_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            NamedCredentialRegistry.from_dict({"orders_api": "https://api.example.com"})

    def test_missing_base_url(self):
        with pytest.raises(ConfigurationError, match="base_url"):
            NamedCredentialRegistry.from_dict({"orders_api": {"auth_type": "none"}})
