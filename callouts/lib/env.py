"""Environment variable utilities.

Provides expansion of ${VAR_NAME} patterns in credential and configuration
values, and loading of .env files.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "load_env_file", "TEST_HARNESS_ENV_VAR", "is_test_harness"]

# Pattern for ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

# Set by test suites so dispatchers keep work synchronous and deterministic
TEST_HARNESS_ENV_VAR = "CALLOUTS_TEST_HARNESS"

_TRUTHY = {"1", "true", "yes", "on"}


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in current
              directory and parent directories.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Supports both ${VAR_NAME} and $VAR_NAME syntax.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for missing variables

    Returns:
        String with environment variables expanded

    Raises:
        KeyError: If strict and a referenced variable is not set

    Example:
        >>> os.environ["ORDERS_HOST"] = "api.example.com"
        >>> expand_env_vars("https://${ORDERS_HOST}/v1")
        'https://api.example.com/v1'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def is_test_harness() -> bool:
    """Whether the process is running under the test harness marker.

    Returns:
        True when CALLOUTS_TEST_HARNESS is set to 1, true, yes or on
    """
    return os.environ.get(TEST_HARNESS_ENV_VAR, "").strip().lower() in _TRUTHY
