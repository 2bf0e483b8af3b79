"""Tests for CLI wiring, output and error reporting."""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from asana_cli import cli
from asana_cli.cli import CliDependencies
from asana_cli.config import AsanaConfig
from asana_cli.exceptions import AuthenticationError, MissingTokenError, TransportError
from asana_cli.infrastructure import CancellationToken, RateLimitState, ResponseCache
from asana_cli.types import RequestDescriptor
from tests.fakes import FakeTransport, list_page

runner = CliRunner()
_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")


def _strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE_RE.sub("", text)


@dataclass
class RecordingBuilder:
    """Dependencies builder that hands out one shared fake transport."""

    transport: FakeTransport
    cache: ResponseCache = field(default_factory=ResponseCache)
    configs: list[AsanaConfig] = field(default_factory=list)
    authenticated: list[bool] = field(default_factory=list)
    rate_limit: RateLimitState = field(default_factory=RateLimitState)

    def __call__(self, *, config: AsanaConfig, authenticated: bool) -> CliDependencies:
        self.configs.append(config)
        self.authenticated.append(authenticated)
        return CliDependencies(
            cache=self.cache,
            cancellation=CancellationToken(),
            transport=self.transport if authenticated else None,
            principal="p1",
            rate_limit=self.rate_limit,
        )


def _app(builder: RecordingBuilder) -> typer.Typer:
    return cli.create_app(builder)


def _tasks_route(items: list[dict[str, object]]):
    def handler(request: RequestDescriptor) -> dict[str, object]:
        if request.method == "POST":
            data = dict((request.body or {})["data"])  # type: ignore[arg-type]
            return {"data": {"gid": "99", **data}}
        return list_page(items)

    return handler


_PRIMARY = [
    {"gid": "1", "name": "Parent", "num_subtasks": 1, "due_on": "2024-03-01"},
    {"gid": "2", "name": "Done", "completed": True, "num_subtasks": 0},
]


def test_task_list_outputs_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASANA_PROJECT", "1200")
    transport = FakeTransport(routes={"/tasks": _tasks_route(_PRIMARY)})
    builder = RecordingBuilder(transport)

    result = runner.invoke(_app(builder), ["task", "list", "-o", "json"])

    assert result.exit_code == 0, result.output
    records = json.loads(result.stdout)
    assert [record["gid"] for record in records] == ["1", "2"]
    assert records[0]["due_on"] == "2024-03-01"
    assert transport.calls[0].query_value("project") == "1200"
    assert transport.calls[0].principal == "p1"


def test_task_list_expands_subtasks_and_filters() -> None:
    transport = FakeTransport(
        routes={
            "/tasks": _tasks_route(_PRIMARY),
            "/tasks/1/subtasks": list_page([{"gid": "11", "name": "Child"}]),
        }
    )
    builder = RecordingBuilder(transport)

    result = runner.invoke(
        _app(builder),
        ["task", "list", "-p", "1200", "--subtasks", "--incomplete", "-o", "csv"],
    )

    assert result.exit_code == 0, result.output
    lines = result.stdout.splitlines()
    assert lines[0].startswith("gid,name,completed")
    assert [line.split(",")[0] for line in lines[1:]] == ["1", "11"]


def test_task_list_carries_extra_fields_into_json_and_csv() -> None:
    items = [{"gid": "1", "name": "Tagged", "tags": [{"name": "urgent"}]}, {"gid": "2"}]
    transport = FakeTransport(routes={"/tasks": _tasks_route(items)})
    builder = RecordingBuilder(transport)

    as_json = runner.invoke(
        _app(builder), ["task", "list", "-p", "1", "-f", "tags.name", "-o", "json"]
    )
    as_csv = runner.invoke(
        _app(builder), ["task", "list", "-p", "1", "-f", "tags.name", "-o", "csv"]
    )

    assert as_json.exit_code == 0, as_json.output
    records = json.loads(as_json.stdout)
    assert records[0]["tags"] == [{"name": "urgent"}]
    assert "tags" not in records[1]
    assert "tags.name" in (transport.calls[0].query_value("opt_fields") or "")
    assert as_csv.exit_code == 0, as_csv.output
    header, first, second = as_csv.stdout.splitlines()
    assert header.endswith(",permalink_url,tags")
    assert first.endswith(',"[{""name"":""urgent""}]"')
    assert second.endswith(",")


def test_task_list_renders_table() -> None:
    transport = FakeTransport(routes={"/tasks": _tasks_route(_PRIMARY)})

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "list", "-p", "1200"])

    assert result.exit_code == 0, result.output
    output = _strip_ansi(result.output)
    assert "Tasks (2)" in output
    assert "Parent" in output


def test_task_list_without_scope_reports_error() -> None:
    transport = FakeTransport()

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "list"])

    assert result.exit_code == 1
    output = _strip_ansi(result.output)
    assert "Error:" in output
    assert "Task listing needs a workspace" in output
    assert transport.calls == []


def test_task_list_reports_subtask_failure() -> None:
    def fail(request: RequestDescriptor) -> dict[str, object]:
        raise TransportError(request.path, "timed out")

    transport = FakeTransport(routes={"/tasks": _tasks_route(_PRIMARY), "/tasks/1/subtasks": fail})

    result = runner.invoke(
        _app(RecordingBuilder(transport)), ["task", "list", "-p", "1200", "--subtasks"]
    )

    assert result.exit_code == 1
    assert "Failed to fetch subtasks" in _strip_ansi(result.output)


def test_task_list_interrupt_exits_with_cancelled_code() -> None:
    def interrupt(request: RequestDescriptor) -> dict[str, object]:
        raise KeyboardInterrupt

    transport = FakeTransport(routes={"/tasks": interrupt})

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "list", "-p", "1200"])

    assert result.exit_code == cli.EXIT_CANCELLED
    assert "cancelled" in _strip_ansi(result.output).lower()


@pytest.mark.parametrize(
    "args",
    [
        ["--due-before", "next week"],
        ["--completed", "--incomplete"],
        ["--sort", "priority"],
        ["--limit", "0"],
    ],
)
def test_task_list_rejects_bad_options(args: list[str]) -> None:
    transport = FakeTransport()

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "list", "-p", "1", *args])

    assert result.exit_code == 2
    assert transport.calls == []


def test_global_options_override_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASANA_CACHE_TTL_SECONDS", "600")
    transport = FakeTransport(routes={"/tasks": _tasks_route([])})
    builder = RecordingBuilder(transport)

    result = runner.invoke(
        _app(builder),
        ["--offline", "--cache-ttl", "5", "task", "list", "-p", "1", "--concurrency", "99"],
    )

    assert result.exit_code == 0, result.output
    config = builder.configs[0]
    assert config.offline is True
    assert config.cache_ttl_seconds == 5.0
    assert config.subtask_concurrency == 16


def test_config_file_supplies_default_scope(tmp_path: Path) -> None:
    config_path = tmp_path / "asana.toml"
    config_path.write_text('schema_version = 1\n\n[asana]\ndefault_project = "777"\n')
    transport = FakeTransport(routes={"/tasks": _tasks_route([])})

    result = runner.invoke(
        _app(RecordingBuilder(transport)),
        ["--config", str(config_path), "task", "list", "-o", "json"],
    )

    assert result.exit_code == 0, result.output
    assert transport.calls[0].query_value("project") == "777"


def test_missing_config_file_reports_error(tmp_path: Path) -> None:
    result = runner.invoke(
        _app(RecordingBuilder(FakeTransport())),
        ["--config", str(tmp_path / "missing.toml"), "task", "list"],
    )

    assert result.exit_code == 1
    assert "Error:" in _strip_ansi(result.output)


def test_missing_token_reports_error() -> None:
    def builder(*, config: AsanaConfig, authenticated: bool) -> CliDependencies:
        raise MissingTokenError()

    result = runner.invoke(cli.create_app(builder), ["task", "show", "1"])

    assert result.exit_code == 1
    assert "ASANA_PAT" in _strip_ansi(result.output)


def test_task_show_outputs_json() -> None:
    transport = FakeTransport(
        routes={"/tasks/42": {"data": {"gid": "42", "name": "Report", "notes": "Numbers"}}}
    )

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "show", "42", "-o", "json"])

    assert result.exit_code == 0, result.output
    record = json.loads(result.stdout)
    assert record["name"] == "Report"
    assert record["notes"] == "Numbers"


def test_task_subtasks_lists_children() -> None:
    transport = FakeTransport(
        routes={"/tasks/1/subtasks": list_page([{"gid": "11", "name": "Child"}])}
    )

    result = runner.invoke(
        _app(RecordingBuilder(transport)), ["task", "subtasks", "1", "-o", "json"]
    )

    assert result.exit_code == 0, result.output
    assert [record["gid"] for record in json.loads(result.stdout)] == ["11"]


def test_task_create_uses_default_project(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASANA_PROJECT", "1200")
    transport = FakeTransport(routes={"/tasks": _tasks_route([])})

    result = runner.invoke(
        _app(RecordingBuilder(transport)),
        ["task", "create", "--name", "New", "--due-on", "2024-05-01"],
    )

    assert result.exit_code == 0, result.output
    request = transport.calls[0]
    assert request.method == "POST"
    assert request.body == {"data": {"name": "New", "projects": ["1200"], "due_on": "2024-05-01"}}
    assert "Created task" in _strip_ansi(result.output)


def test_task_create_as_subtask() -> None:
    transport = FakeTransport(routes={"/tasks": _tasks_route([])})

    result = runner.invoke(
        _app(RecordingBuilder(transport)), ["task", "create", "--name", "Child", "--parent", "1"]
    )

    assert result.exit_code == 0, result.output
    assert transport.calls[0].body == {"data": {"name": "Child", "parent": "1"}}


def test_task_create_without_scope_is_rejected() -> None:
    transport = FakeTransport()

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "create", "--name", "New"])

    assert result.exit_code == 2
    assert transport.calls == []


def test_task_update_sends_changes() -> None:
    def handler(request: RequestDescriptor) -> dict[str, object]:
        return {"data": {"gid": "42", "name": "Renamed", "completed": True}}

    transport = FakeTransport(routes={"/tasks/42": handler})

    result = runner.invoke(
        _app(RecordingBuilder(transport)),
        ["task", "update", "42", "--name", "Renamed", "--complete"],
    )

    assert result.exit_code == 0, result.output
    request = transport.calls[0]
    assert request.method == "PUT"
    assert request.body == {"data": {"name": "Renamed", "completed": True}}


@pytest.mark.parametrize("args", [[], ["--complete", "--reopen"], ["--due-on", "soon"]])
def test_task_update_rejects_bad_input(args: list[str]) -> None:
    transport = FakeTransport()

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "update", "42", *args])

    assert result.exit_code == 2
    assert transport.calls == []


def test_task_delete() -> None:
    transport = FakeTransport(routes={"/tasks/42": {"data": {}}})

    result = runner.invoke(_app(RecordingBuilder(transport)), ["task", "delete", "42"])

    assert result.exit_code == 0, result.output
    assert transport.calls[0].method == "DELETE"
    assert "Deleted task" in _strip_ansi(result.output)


def test_cache_clear_does_not_need_credentials() -> None:
    builder = RecordingBuilder(FakeTransport())
    builder.cache.get_or_fetch(RequestDescriptor.get("/tasks/1"), lambda: {"data": {}})

    result = runner.invoke(_app(builder), ["cache", "clear"])

    assert result.exit_code == 0, result.output
    assert builder.authenticated == [False]
    assert "Cleared 1 cached responses" in _strip_ansi(result.output)


def test_doctor_reports_user_cache_dir_and_rate_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASANA_CLI_CACHE_DIR", "/tmp/asana-doctor-cache")
    me = {"data": {"gid": "7", "name": "Sam Rivera", "workspaces": [{"gid": "1", "name": "Acme"}]}}
    builder = RecordingBuilder(FakeTransport(routes={"/users/me": me}))
    builder.rate_limit.update_from_headers({"X-RateLimit-Limit": "1500"})

    result = runner.invoke(_app(builder), ["--offline", "doctor"])

    assert result.exit_code == 0, result.output
    output = _strip_ansi(result.output)
    assert "Sam Rivera (7)" in output
    assert "Acme" in output
    assert "/tmp/asana-doctor-cache" in output
    assert "Rate limit limit" in output
    assert "1500" in output
    assert "Connected to Asana" in output
    assert builder.configs[0].offline is False
    assert builder.transport.calls[0].cacheable is False


def test_doctor_reports_rejected_token() -> None:
    def reject(request: RequestDescriptor) -> dict[str, object]:
        raise AuthenticationError(401, "Not Authorized")

    builder = RecordingBuilder(FakeTransport(routes={"/users/me": reject}))

    result = runner.invoke(_app(builder), ["doctor"])

    assert result.exit_code == 1
    assert "Authentication failed" in _strip_ansi(result.output)
