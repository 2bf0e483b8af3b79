"""Tests for config-file schema parsing and fail-fast validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from asana_cli.config_file import load_config_file
from asana_cli.exceptions import (
    ConfigFileNotFoundError,
    ConfigFileParseError,
    ConfigFileValidationError,
)


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "asana.toml"
    path.write_text(content.strip(), encoding="utf-8")
    return path


def test_load_config_file_parses_valid_toml(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
schema_version = 1

[asana]
base_url = "https://asana.example/api/1.0/"
default_workspace = " 111 "
default_project = "222"
default_assignee = "me"
cache_dir = "~/.cache/asana-cli"
cache_ttl_seconds = 120
max_retries = 5
subtask_concurrency = 8
""",
    )

    parsed = load_config_file(path=path)

    assert parsed.base_url == "https://asana.example/api/1.0"
    assert parsed.default_workspace == "111"
    assert parsed.default_project == "222"
    assert parsed.default_assignee == "me"
    assert parsed.cache_dir == "~/.cache/asana-cli"
    assert parsed.cache_ttl_seconds == 120.0
    assert parsed.max_retries == 5
    assert parsed.subtask_concurrency == 8


def test_load_config_file_allows_empty_section(tmp_path: Path) -> None:
    path = _write(tmp_path, "schema_version = 1\n\n[asana]\n")

    parsed = load_config_file(path=path)

    assert parsed.default_project is None
    assert parsed.cache_ttl_seconds is None


def test_load_config_file_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileNotFoundError):
        load_config_file(path=tmp_path / "missing.toml")


def test_load_config_file_invalid_toml(tmp_path: Path) -> None:
    path = _write(tmp_path, "schema_version = \n[asana")

    with pytest.raises(ConfigFileParseError):
        load_config_file(path=path)


@pytest.mark.parametrize(
    ("body", "fragment"),
    [
        ("schema_version = 2\n[asana]\n", "schema_version"),
        ("schema_version = 1\n[asana]\nunknown_key = 1\n", "unknown_key"),
        ('schema_version = 1\n[asana]\nbase_url = "ftp://example"\n', "base_url"),
        ('schema_version = 1\n[asana]\ndefault_project = "  "\n', "default_project"),
        ("schema_version = 1\n[asana]\ncache_ttl_seconds = -5\n", "cache_ttl_seconds"),
        ("schema_version = 1\n[asana]\nmax_retries = -1\n", "max_retries"),
        ("schema_version = 1\n[asana]\nsubtask_concurrency = 17\n", "subtask_concurrency"),
        ("schema_version = 1\n", "asana"),
    ],
)
def test_load_config_file_rejects_invalid_values(
    tmp_path: Path, body: str, fragment: str
) -> None:
    path = _write(tmp_path, body)

    with pytest.raises(ConfigFileValidationError) as exc_info:
        load_config_file(path=path)

    assert fragment in str(exc_info.value)
