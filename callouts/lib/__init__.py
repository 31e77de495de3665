"""Callout library modules.

This package contains the building blocks for resilient outbound HTTPS
callouts: transport, retry, asynchronous dispatch and attempt logging.
"""

from callouts.lib.auth import (
    AuthConfig,
    AuthType,
    CredentialCache,
    build_auth_headers,
    client_credentials_fetcher,
)
from callouts.lib.config_loader import CalloutSettings, load_settings, settings_from_dict
from callouts.lib.dispatcher import (
    DEFAULT_BATCH_SIZE,
    STATUS_ERROR,
    STATUS_SYNCED,
    AsyncDispatcher,
    DispatchResult,
    record_status_callback,
)
from callouts.lib.env import expand_env_vars, is_test_harness, load_env_file
from callouts.lib.errors import (
    CalloutError,
    ConfigurationError,
    InsecureEndpointError,
    NamedCredentialNotFound,
    YAMLConfigError,
)
from callouts.lib.logging import (
    JSONFormatter,
    get_context_logger,
    get_diagnostics_logger,
    setup_logging,
)
from callouts.lib.mock_transport import MockTransport
from callouts.lib.models import (
    BatchJob,
    CalloutOutcome,
    CalloutRequest,
    ErrorClass,
    LogEntry,
    WorkItem,
    classify_status,
    require_https,
)
from callouts.lib.named_credentials import NamedCredential, NamedCredentialRegistry
from callouts.lib.observability import CalloutRecorder, truncate_body
from callouts.lib.rate_limiter import RateLimiter
from callouts.lib.resilience import (
    AttemptResult,
    ResilienceWrapper,
    RetryPolicy,
    default_retryable,
)
from callouts.lib.scheduler import ManualScheduler, ThreadPoolScheduler
from callouts.lib.store import DmlFailure, DmlResult, InMemoryRecordStore, JsonlRecordStore
from callouts.lib.transport import HttpTransport, Transport

__all__ = [
    # Models
    "BatchJob",
    "CalloutOutcome",
    "CalloutRequest",
    "ErrorClass",
    "LogEntry",
    "WorkItem",
    "classify_status",
    "require_https",
    # Transport
    "HttpTransport",
    "MockTransport",
    "Transport",
    # Resilience
    "AttemptResult",
    "ResilienceWrapper",
    "RetryPolicy",
    "default_retryable",
    # Dispatch
    "AsyncDispatcher",
    "DispatchResult",
    "DEFAULT_BATCH_SIZE",
    "STATUS_ERROR",
    "STATUS_SYNCED",
    "ManualScheduler",
    "ThreadPoolScheduler",
    "record_status_callback",
    # Observability
    "CalloutRecorder",
    "JSONFormatter",
    "get_context_logger",
    "get_diagnostics_logger",
    "setup_logging",
    "truncate_body",
    # Persistence
    "DmlFailure",
    "DmlResult",
    "InMemoryRecordStore",
    "JsonlRecordStore",
    # Auth and named credentials
    "AuthConfig",
    "AuthType",
    "CredentialCache",
    "NamedCredential",
    "NamedCredentialRegistry",
    "build_auth_headers",
    "client_credentials_fetcher",
    # Config
    "CalloutSettings",
    "expand_env_vars",
    "is_test_harness",
    "load_env_file",
    "load_settings",
    "settings_from_dict",
    "RateLimiter",
    # Errors
    "CalloutError",
    "ConfigurationError",
    "InsecureEndpointError",
    "NamedCredentialNotFound",
    "YAMLConfigError",
]
