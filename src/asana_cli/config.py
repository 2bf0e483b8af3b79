"""Centralised, injectable configuration for the Asana CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Self

from dotenv import load_dotenv

from .config_file import AsanaConfigFile
from .domain.tasks import DEFAULT_SUBTASK_CONCURRENCY, MAX_SUBTASK_CONCURRENCY
from .exceptions import AsanaCliError
from .infrastructure.http import DEFAULT_API_BASE_URL


def _default_cache_dir() -> str:
    base = os.getenv("XDG_CACHE_HOME", "").strip() or str(Path.home() / ".cache")
    return str(Path(base) / "asana-cli")


class PositiveIntegerEnvVarError(AsanaCliError, ValueError):
    """Raised when an environment variable must be a positive integer."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a positive integer.")


class NonNegativeNumberEnvVarError(AsanaCliError, ValueError):
    """Raised when an environment variable must be a non-negative number."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a non-negative number.")


class BooleanEnvVarError(AsanaCliError, ValueError):
    """Raised when an environment variable must be a supported boolean."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a boolean value (true/false, 1/0, yes/no, on/off).")


@dataclass(frozen=True)
class AsanaConfig:
    """Immutable configuration object for the CLI and the API access layer.

    Load from environment with `AsanaConfig.from_env()` or construct directly for
    testing. Also serves as the provider of default listing scope values.
    """

    # Credentials and endpoint
    personal_access_token: str = field(default="", repr=False)
    base_url: str = DEFAULT_API_BASE_URL

    # Default scope
    default_workspace: str | None = None
    default_project: str | None = None
    default_assignee: str | None = None

    # Transport
    timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.5
    backoff_max_seconds: float = 60.0
    backoff_jitter_seconds: float = 0.1

    # Cache
    cache_dir: str = field(default_factory=_default_cache_dir)
    cache_ttl_seconds: float = 300.0
    offline: bool = False

    # Task listing
    subtask_concurrency: int = DEFAULT_SUBTASK_CONCURRENCY

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> Self:
        """Load configuration from environment variables.

        Args:
            dotenv_path: Optional path to .env file. If None, uses default .env discovery.

        Returns:
            AsanaConfig instance populated from environment.
        """
        load_dotenv(dotenv_path)

        return cls(
            personal_access_token=os.getenv("ASANA_PAT", "").strip(),
            base_url=os.getenv("ASANA_BASE_URL", "").strip() or DEFAULT_API_BASE_URL,
            default_workspace=_parse_optional_text(os.getenv("ASANA_WORKSPACE", "")),
            default_project=_parse_optional_text(os.getenv("ASANA_PROJECT", "")),
            default_assignee=_parse_optional_text(os.getenv("ASANA_ASSIGNEE", "")),
            timeout_seconds=_parse_non_negative_float(
                os.getenv("ASANA_TIMEOUT_SECONDS", "30"), env_name="ASANA_TIMEOUT_SECONDS"
            ),
            connect_timeout_seconds=_parse_non_negative_float(
                os.getenv("ASANA_CONNECT_TIMEOUT_SECONDS", "10"),
                env_name="ASANA_CONNECT_TIMEOUT_SECONDS",
            ),
            max_retries=_parse_non_negative_int(
                os.getenv("ASANA_MAX_RETRIES", "3"), env_name="ASANA_MAX_RETRIES"
            ),
            backoff_factor=_parse_non_negative_float(
                os.getenv("ASANA_BACKOFF_FACTOR", "0.5"), env_name="ASANA_BACKOFF_FACTOR"
            ),
            backoff_max_seconds=_parse_non_negative_float(
                os.getenv("ASANA_BACKOFF_MAX_SECONDS", "60"), env_name="ASANA_BACKOFF_MAX_SECONDS"
            ),
            backoff_jitter_seconds=_parse_non_negative_float(
                os.getenv("ASANA_BACKOFF_JITTER_SECONDS", "0.1"),
                env_name="ASANA_BACKOFF_JITTER_SECONDS",
            ),
            cache_dir=os.getenv("ASANA_CLI_CACHE_DIR", "").strip() or _default_cache_dir(),
            cache_ttl_seconds=_parse_non_negative_float(
                os.getenv("ASANA_CACHE_TTL_SECONDS", "300"), env_name="ASANA_CACHE_TTL_SECONDS"
            ),
            offline=_parse_optional_bool(os.getenv("ASANA_OFFLINE", ""), env_name="ASANA_OFFLINE")
            or False,
            subtask_concurrency=_parse_concurrency(
                os.getenv("ASANA_SUBTASK_CONCURRENCY", ""), env_name="ASANA_SUBTASK_CONCURRENCY"
            ),
        )

    def with_overrides(
        self,
        *,
        offline: bool | None = None,
        cache_ttl_seconds: float | None = None,
        subtask_concurrency: int | None = None,
    ) -> Self:
        """Return a new config with specified overrides (for CLI options)."""
        return replace(
            self,
            offline=self.offline if offline is None else offline,
            cache_ttl_seconds=self.cache_ttl_seconds
            if cache_ttl_seconds is None
            else cache_ttl_seconds,
            subtask_concurrency=self.subtask_concurrency
            if subtask_concurrency is None
            else min(subtask_concurrency, MAX_SUBTASK_CONCURRENCY),
        )

    def with_file_overrides(self, file_config: AsanaConfigFile) -> Self:
        """Return a new config with config-file values overriding env/default values."""
        return replace(
            self,
            base_url=self.base_url if file_config.base_url is None else file_config.base_url,
            default_workspace=self.default_workspace
            if file_config.default_workspace is None
            else file_config.default_workspace,
            default_project=self.default_project
            if file_config.default_project is None
            else file_config.default_project,
            default_assignee=self.default_assignee
            if file_config.default_assignee is None
            else file_config.default_assignee,
            cache_dir=self.cache_dir if file_config.cache_dir is None else file_config.cache_dir,
            cache_ttl_seconds=self.cache_ttl_seconds
            if file_config.cache_ttl_seconds is None
            else file_config.cache_ttl_seconds,
            max_retries=self.max_retries
            if file_config.max_retries is None
            else file_config.max_retries,
            subtask_concurrency=self.subtask_concurrency
            if file_config.subtask_concurrency is None
            else file_config.subtask_concurrency,
        )


def _parse_optional_text(value: str) -> str | None:
    text = value.strip()
    return text or None


def _parse_non_negative_float(value: str, *, env_name: str) -> float:
    try:
        parsed = float(value.strip())
    except ValueError as exc:
        raise NonNegativeNumberEnvVarError(env_name) from exc
    if parsed < 0:
        raise NonNegativeNumberEnvVarError(env_name)
    return parsed


def _parse_non_negative_int(value: str, *, env_name: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise NonNegativeNumberEnvVarError(env_name) from exc
    if parsed < 0:
        raise NonNegativeNumberEnvVarError(env_name)
    return parsed


def _parse_concurrency(value: str, *, env_name: str) -> int:
    """Parse the subtask fan-out cap, clamped to MAX_SUBTASK_CONCURRENCY."""
    text = value.strip()
    if not text:
        return DEFAULT_SUBTASK_CONCURRENCY
    try:
        parsed = int(text)
    except ValueError as exc:
        raise PositiveIntegerEnvVarError(env_name) from exc
    if parsed < 1:
        raise PositiveIntegerEnvVarError(env_name)
    return min(parsed, MAX_SUBTASK_CONCURRENCY)


def _parse_optional_bool(value: str, *, env_name: str) -> bool | None:
    """Parse an optional boolean from an environment variable."""
    text = value.strip().lower()
    if not text:
        return None
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    raise BooleanEnvVarError(env_name)
