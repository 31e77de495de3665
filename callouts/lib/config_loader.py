"""YAML configuration for callouts.

Example YAML (callouts.yaml):
    timeout: 30
    retry:
      max_attempts: 3
      base_delay: 1.0
    dispatch:
      batch_size: 50
      max_workers: 4
    logging:
      log_path: ./callout_log.jsonl
    rate_limit:
      requests_per_second: 10
      burst_size: 5
    named_credentials:
      orders_api:
        base_url: https://api.example.com
        auth_type: bearer
        token: ${ORDERS_API_TOKEN}

Usage:
    from callouts.lib.config_loader import load_settings
    settings = load_settings("./callouts.yaml")
    transport = HttpTransport(
        named_credentials=settings.build_registry(),
        rate_limiter=settings.build_rate_limiter(),
    )
    dispatcher = settings.build_dispatcher(ResilienceWrapper(transport))

Credential values are kept as ${VAR} references and expanded at send time,
so secrets never sit in the parsed settings object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from callouts.lib.dispatcher import DEFAULT_BATCH_SIZE, AsyncDispatcher, StatusCallback
from callouts.lib.env import expand_env_vars, load_env_file
from callouts.lib.errors import ConfigurationError, YAMLConfigError
from callouts.lib.named_credentials import NamedCredentialRegistry
from callouts.lib.observability import MAX_BODY_LENGTH
from callouts.lib.rate_limiter import RateLimiter
from callouts.lib.resilience import ResilienceWrapper, RetryPolicy
from callouts.lib.scheduler import Scheduler, ThreadPoolScheduler

logger = logging.getLogger(__name__)

__all__ = ["CalloutSettings", "load_settings", "settings_from_dict"]

DEFAULT_TIMEOUT = 30.0

_KNOWN_SECTIONS = {"timeout", "retry", "dispatch", "logging", "rate_limit", "named_credentials"}


@dataclass
class CalloutSettings:
    """Parsed callout configuration."""

    timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: Optional[float] = None
    honor_retry_after: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int = 4
    defer_retries: bool = False
    log_path: Optional[str] = None
    max_body_length: int = MAX_BODY_LENGTH
    requests_per_second: Optional[float] = None
    burst_size: Optional[int] = None
    named_credentials: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            honor_retry_after=self.honor_retry_after,
        )

    def build_registry(self) -> NamedCredentialRegistry:
        return NamedCredentialRegistry.from_dict(self.named_credentials)

    def build_rate_limiter(self) -> Optional[RateLimiter]:
        if not self.requests_per_second:
            return None
        return RateLimiter(self.requests_per_second, burst_size=self.burst_size)

    def build_scheduler(self) -> ThreadPoolScheduler:
        return ThreadPoolScheduler(max_workers=self.max_workers)

    def build_dispatcher(
        self,
        wrapper: ResilienceWrapper,
        *,
        scheduler: Optional[Scheduler] = None,
        on_result: Optional[StatusCallback] = None,
    ) -> AsyncDispatcher:
        """Dispatcher configured from the ``dispatch`` and ``retry`` sections.

        Args:
            wrapper: Resilience wrapper around the transport to use
            scheduler: Scheduler for units; a ThreadPoolScheduler sized by
                ``max_workers`` is built when omitted
            on_result: Optional status callback run after each item

        Returns:
            AsyncDispatcher using this batch size, retry policy and
            ``defer_retries`` setting
        """
        return AsyncDispatcher(
            wrapper,
            scheduler if scheduler is not None else self.build_scheduler(),
            policy=self.retry_policy(),
            on_result=on_result,
            batch_size=self.batch_size,
            defer_retries=self.defer_retries,
        )


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise YAMLConfigError(f"'{name}' must be a mapping", field=name)
    return value


def _number(section: Dict[str, Any], key: str, default: Any, kind: type, where: str) -> Any:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, str):
        value = expand_env_vars(value)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise YAMLConfigError(
            f"{where}.{key} must be a {kind.__name__}", field=f"{where}.{key}", value=value
        )


def settings_from_dict(config: Dict[str, Any]) -> CalloutSettings:
    """Build settings from an already-parsed config mapping.

    Raises:
        YAMLConfigError: If a section or value is invalid
    """
    if not isinstance(config, dict):
        raise YAMLConfigError("Configuration root must be a mapping")

    unknown = set(config) - _KNOWN_SECTIONS
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(sorted(unknown)))

    retry = _section(config, "retry")
    dispatch = _section(config, "dispatch")
    log_cfg = _section(config, "logging")
    rate = _section(config, "rate_limit")
    named = _section(config, "named_credentials")

    settings = CalloutSettings(
        timeout=_number(config, "timeout", DEFAULT_TIMEOUT, float, "root"),
        max_attempts=_number(retry, "max_attempts", 3, int, "retry"),
        base_delay=_number(retry, "base_delay", 1.0, float, "retry"),
        max_delay=_number(retry, "max_delay", None, float, "retry"),
        honor_retry_after=bool(retry.get("honor_retry_after", False)),
        batch_size=_number(dispatch, "batch_size", DEFAULT_BATCH_SIZE, int, "dispatch"),
        max_workers=_number(dispatch, "max_workers", 4, int, "dispatch"),
        defer_retries=bool(dispatch.get("defer_retries", False)),
        log_path=log_cfg.get("log_path"),
        max_body_length=_number(log_cfg, "max_body_length", MAX_BODY_LENGTH, int, "logging"),
        requests_per_second=_number(rate, "requests_per_second", None, float, "rate_limit"),
        burst_size=_number(rate, "burst_size", None, int, "rate_limit"),
        named_credentials=named,
    )

    if settings.timeout <= 0:
        raise YAMLConfigError("timeout must be positive", field="timeout", value=settings.timeout)
    if settings.batch_size < 1:
        raise YAMLConfigError(
            "dispatch.batch_size must be at least 1",
            field="dispatch.batch_size",
            value=settings.batch_size,
        )
    if settings.max_workers < 1:
        raise YAMLConfigError(
            "dispatch.max_workers must be at least 1",
            field="dispatch.max_workers",
            value=settings.max_workers,
        )

    try:
        # Fail fast on bad retry values and malformed credentials
        settings.retry_policy()
        settings.build_registry()
    except YAMLConfigError:
        raise
    except ConfigurationError as exc:
        raise YAMLConfigError(f"Invalid configuration: {exc}") from exc

    return settings


def load_settings(
    path: Union[str, Path],
    *,
    env_file: Optional[Union[str, Path]] = None,
) -> CalloutSettings:
    """Load settings from a YAML file, after loading .env variables.

    Relative ``log_path`` values are resolved against the config file's
    directory.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise YAMLConfigError(f"Config file not found: {config_path}", field="path")

    load_env_file(env_file)

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise YAMLConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    settings = settings_from_dict(config)
    if settings.log_path and settings.log_path.startswith(("./", "../")):
        settings.log_path = str(config_path.parent / settings.log_path)

    logger.debug(
        "Loaded callout settings from %s (%d named credentials)",
        config_path,
        len(settings.named_credentials),
    )
    return settings
