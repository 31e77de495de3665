"""Structured exception hierarchy for callouts.

Only programmer-contract violations are raised: insecure or malformed
targets, unknown named credentials, invalid configuration. Everything that
goes wrong on the wire is returned as a CalloutOutcome instead.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "CalloutError",
    "ConfigurationError",
    "InsecureEndpointError",
    "NamedCredentialNotFound",
    "YAMLConfigError",
]


class CalloutError(Exception):
    """Base exception for all callout errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.endpoint = endpoint
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if endpoint:
            parts.insert(0, f"[{endpoint}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self.args[0]) if self.args else "",
            "endpoint": self.endpoint,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(CalloutError):
    """Invalid configuration or malformed request.

    Raised synchronously and never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class InsecureEndpointError(ConfigurationError):
    """Callout target does not use an encrypted transport."""

    def __init__(self, url: str, **kwargs: Any) -> None:
        self.url = url
        suggestion = kwargs.pop("suggestion", None) or (
            "Use an https:// URL or a named credential whose base_url is https."
        )
        super().__init__(
            "Refusing to send a callout over a plaintext connection",
            field="endpoint",
            value=url,
            suggestion=suggestion,
            **kwargs,
        )


class NamedCredentialNotFound(ConfigurationError):
    """A callout:<name> reference points at an unregistered credential."""

    def __init__(self, name: str, **kwargs: Any) -> None:
        self.name = name
        suggestion = kwargs.pop("suggestion", None) or (
            "Register the credential or add it under named_credentials in the config file."
        )
        super().__init__(
            f"Unknown named credential: '{name}'",
            field="named_credential",
            value=name,
            suggestion=suggestion,
            **kwargs,
        )


class YAMLConfigError(ConfigurationError):
    """Error in a YAML configuration file."""

    pass
