"""Typed parsing and validation for asana-cli config files."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .domain.tasks import MAX_SUBTASK_CONCURRENCY
from .exceptions import ConfigFileNotFoundError, ConfigFileParseError, ConfigFileValidationError

_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class AsanaConfigFile:
    """Validated config values loaded from a TOML file."""

    base_url: str | None = None
    default_workspace: str | None = None
    default_project: str | None = None
    default_assignee: str | None = None
    cache_dir: str | None = None
    cache_ttl_seconds: float | None = None
    max_retries: int | None = None
    subtask_concurrency: int | None = None


class _AsanaSectionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str | None = None
    default_workspace: str | None = None
    default_project: str | None = None
    default_assignee: str | None = None
    cache_dir: str | None = None
    cache_ttl_seconds: float | None = None
    max_retries: int | None = None
    subtask_concurrency: int | None = None

    @field_validator(
        "base_url",
        "default_workspace",
        "default_project",
        "default_assignee",
        "cache_dir",
    )
    @classmethod
    def _validate_non_empty_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError
        return text

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not value.startswith(("http://", "https://")):
            raise ValueError
        return value.rstrip("/")

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _validate_ttl(cls, value: float | None) -> float | None:
        if value is None:
            return None
        if value < 0:
            raise ValueError
        return value

    @field_validator("max_retries")
    @classmethod
    def _validate_retries(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if value < 0:
            raise ValueError
        return value

    @field_validator("subtask_concurrency")
    @classmethod
    def _validate_concurrency(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if value < 1 or value > MAX_SUBTASK_CONCURRENCY:
            raise ValueError
        return value


class _ConfigFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    asana: _AsanaSectionModel

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError
        return value


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def load_config_file(*, path: Path) -> AsanaConfigFile:
    """Load and validate an asana-cli TOML config file."""
    if not path.exists():
        raise ConfigFileNotFoundError(str(path))

    raw_payload = path.read_text(encoding="utf-8")
    try:
        payload: object = tomllib.loads(raw_payload)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileParseError(str(path), str(exc)) from exc

    try:
        model = _ConfigFileModel.model_validate(payload)
    except ValidationError as exc:
        raise ConfigFileValidationError(str(path), _format_validation_error(exc)) from exc

    section = model.asana
    return AsanaConfigFile(
        base_url=section.base_url,
        default_workspace=section.default_workspace,
        default_project=section.default_project,
        default_assignee=section.default_assignee,
        cache_dir=section.cache_dir,
        cache_ttl_seconds=section.cache_ttl_seconds,
        max_retries=section.max_retries,
        subtask_concurrency=section.subtask_concurrency,
    )
