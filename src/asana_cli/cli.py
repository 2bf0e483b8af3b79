"""CLI for asana-cli.

Commands:
- task list: List tasks of a project, section or workspace (optionally with subtasks)
- task show: Show one task
- task subtasks: List the direct subtasks of a task
- task create / update / delete: Modify tasks
- cache clear: Drop every cached API response
- doctor: Check the token against the API and show cache and rate-limit state
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Annotated, Any, Protocol

import typer
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from .application.doctor import check_connection
from .application.list_tasks import TaskListOptions, list_tasks
from .application.tasks import create_task, delete_task, get_task, list_subtasks, update_task
from .config import AsanaConfig
from .config_file import load_config_file
from .domain.tasks import TaskDateError, TaskFilter, TaskScope, parse_date, parse_sort
from .exceptions import AsanaCliError, OperationCancelledError
from .infrastructure.cache import ResponseCache
from .infrastructure.resilience import CancellationToken, RateLimitState
from .observability import set_level
from .output import (
    OutputFormat,
    build_task_detail_table,
    build_task_table,
    task_to_json,
    tasks_to_csv,
    tasks_to_json,
)
from .protocols import Transport

EXIT_CANCELLED = 130


class DependenciesBuilder(Protocol):
    """Protocol for constructing CLI dependencies."""

    def __call__(self, *, config: AsanaConfig, authenticated: bool) -> CliDependencies:
        """Build dependencies for CLI commands."""
        ...


@dataclass(frozen=True)
class CliDependencies:
    """Concrete dependencies required by the CLI.

    `transport` is None when the command was built without credentials.
    """

    cache: ResponseCache
    cancellation: CancellationToken
    transport: Transport | None = None
    principal: str = ""
    rate_limit: RateLimitState | None = None


@dataclass(frozen=True)
class CliContext:
    """Runtime CLI context for a single command invocation."""

    config: AsanaConfig
    deps_builder: DependenciesBuilder

    def build_dependencies(
        self,
        *,
        authenticated: bool = True,
        config: AsanaConfig | None = None,
    ) -> CliDependencies:
        """Return dependencies using the configured builder."""
        return self.deps_builder(config=config or self.config, authenticated=authenticated)


class CliContextNotInitialisedError(typer.BadParameter):
    """Raised when CLI context is missing."""

    def __init__(self) -> None:
        super().__init__("CLI context is not initialised. Use the asana-cli entry point.")


class InvalidDateOptionError(typer.BadParameter):
    """Raised when a date option is not YYYY-MM-DD."""

    def __init__(self, option: str, value: str) -> None:
        super().__init__(f"{option} expects a YYYY-MM-DD date, got '{value}'.")


class CreateScopeError(typer.BadParameter):
    """Raised when a task would be created without a home."""

    def __init__(self) -> None:
        super().__init__(
            "Either --workspace, --project or --parent must be provided to create a task."
        )


class ConflictingFlagsError(typer.BadParameter):
    """Raised when two mutually exclusive flags are both given."""

    def __init__(self, first: str, second: str) -> None:
        super().__init__(f"{first} and {second} cannot be combined.")


class EmptyUpdateError(typer.BadParameter):
    """Raised when `task update` is given nothing to change."""

    def __init__(self) -> None:
        super().__init__("No fields were updated.")


def _get_context(ctx: typer.Context) -> CliContext:
    if not isinstance(ctx.obj, CliContext):
        raise CliContextNotInitialisedError()
    return ctx.obj


def _optional_date(option: str, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return parse_date(value)
    except TaskDateError as exc:
        raise InvalidDateOptionError(option, value) from exc


def _completion_filter(
    done: bool,
    not_done: bool,
    *,
    options: tuple[str, str] = ("--completed", "--incomplete"),
) -> bool | None:
    if done and not_done:
        raise ConflictingFlagsError(*options)
    if done:
        return True
    if not_done:
        return False
    return None


def _require_transport(deps: CliDependencies) -> Transport:
    if deps.transport is None:
        raise CliContextNotInitialisedError()
    return deps.transport


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Turn asana-cli errors into a red message and a non-zero exit code."""
    try:
        yield
    except OperationCancelledError as exc:
        rprint(f"[yellow]{escape(str(exc))}[/yellow]")
        raise typer.Exit(EXIT_CANCELLED) from exc
    except KeyboardInterrupt as exc:
        rprint("[yellow]Operation cancelled.[/yellow]")
        raise typer.Exit(EXIT_CANCELLED) from exc
    except AsanaCliError as exc:
        rprint(f"[red]Error:[/red] {escape(str(exc))}")
        for note in getattr(exc, "__notes__", ()):
            rprint(f"[dim]  {escape(note)}[/dim]")
        raise typer.Exit(1) from exc


def create_app(deps_builder: DependenciesBuilder) -> typer.Typer:
    """Create a Typer app wired with the provided dependencies builder."""
    app = typer.Typer(add_completion=False, help="Command-line client for the Asana REST API.")
    task_app = typer.Typer(help="List, inspect and modify tasks.")
    cache_app = typer.Typer(help="Manage the local API response cache.")
    app.add_typer(task_app, name="task")
    app.add_typer(cache_app, name="cache")

    @app.callback()
    def main(
        ctx: typer.Context,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to a TOML config file"),
        ] = None,
        offline: Annotated[
            bool,
            typer.Option("--offline", help="Serve reads from the cache only (or ASANA_OFFLINE)"),
        ] = False,
        cache_ttl: Annotated[
            float | None,
            typer.Option("--cache-ttl", min=0, help="Cache TTL in seconds"),
        ] = None,
        verbose: Annotated[
            bool,
            typer.Option("--verbose", "-v", help="Log requests, retries and cache hits"),
        ] = False,
    ) -> None:
        """Initialise CLI context."""
        if verbose:
            set_level(logging.DEBUG)
        with _reporting_errors():
            config = AsanaConfig.from_env()
            if config_path is not None:
                config = config.with_file_overrides(load_config_file(path=config_path))
        config = config.with_overrides(offline=offline or None, cache_ttl_seconds=cache_ttl)
        ctx.obj = CliContext(config=config, deps_builder=deps_builder)

    @task_app.command(name="list")
    def task_list(
        ctx: typer.Context,
        workspace: Annotated[
            str | None, typer.Option("--workspace", "-w", help="Workspace gid")
        ] = None,
        project: Annotated[str | None, typer.Option("--project", "-p", help="Project gid")] = None,
        section: Annotated[str | None, typer.Option("--section", help="Section gid")] = None,
        assignee: Annotated[
            str | None,
            typer.Option("--assignee", "-a", help="Assignee gid, email or 'me'"),
        ] = None,
        completed: Annotated[
            bool, typer.Option("--completed", help="Only completed tasks")
        ] = False,
        incomplete: Annotated[
            bool, typer.Option("--incomplete", help="Only incomplete tasks")
        ] = False,
        due_before: Annotated[
            str | None,
            typer.Option("--due-before", help="Keep tasks due on or before YYYY-MM-DD"),
        ] = None,
        due_after: Annotated[
            str | None,
            typer.Option("--due-after", help="Keep tasks due on or after YYYY-MM-DD"),
        ] = None,
        due_on: Annotated[
            str | None, typer.Option("--due-on", help="Server-side due date filter")
        ] = None,
        completed_since: Annotated[
            str | None,
            typer.Option("--completed-since", help="Only tasks incomplete or completed since"),
        ] = None,
        modified_since: Annotated[
            str | None,
            typer.Option("--modified-since", help="Only tasks modified since this time"),
        ] = None,
        subtasks: Annotated[
            bool,
            typer.Option("--subtasks/--no-subtasks", help="Expand one level of subtasks"),
        ] = False,
        limit: Annotated[
            int | None,
            typer.Option("--limit", "-n", min=1, help="Maximum number of primary tasks"),
        ] = None,
        field: Annotated[
            list[str] | None,
            typer.Option("--field", "-f", help="Extra opt_fields to request (repeatable)"),
        ] = None,
        sort: Annotated[
            str | None,
            typer.Option(
                "--sort", help="Sort by name, due_on, created_at, modified_at or assignee"
            ),
        ] = None,
        concurrency: Annotated[
            int | None,
            typer.Option("--concurrency", min=1, help="Parallel subtask fetches (max 16)"),
        ] = None,
        output: Annotated[
            OutputFormat, typer.Option("--output", "-o", help="Output format")
        ] = OutputFormat.TABLE,
    ) -> None:
        """List tasks, optionally expanded by one level of subtasks."""
        state = _get_context(ctx)
        config = state.config.with_overrides(subtask_concurrency=concurrency)
        try:
            order = parse_sort(sort)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--sort") from exc
        criteria = TaskFilter(
            assignee=assignee,
            completed_since=completed_since,
            modified_since=modified_since,
            due_on=due_on,
            completed=_completion_filter(completed, incomplete),
            due_before=_optional_date("--due-before", due_before),
            due_after=_optional_date("--due-after", due_after),
        )
        options = TaskListOptions(
            scope=TaskScope(workspace=workspace, project=project, section=section),
            include_subtasks=subtasks,
            limit=limit,
            fields=tuple(field or ()),
            sort=order,
            max_concurrency=config.subtask_concurrency,
        )
        with _reporting_errors():
            deps = state.build_dependencies(config=config)
            with deps.cache:
                tasks = list_tasks(
                    _require_transport(deps),
                    criteria,
                    options,
                    defaults=config,
                    principal=deps.principal,
                    cancellation=deps.cancellation,
                )
        match output:
            case OutputFormat.JSON:
                typer.echo(tasks_to_json(tasks))
            case OutputFormat.CSV:
                typer.echo(tasks_to_csv(tasks), nl=False)
            case OutputFormat.TABLE:
                rprint(build_task_table(tasks, title=f"Tasks ({len(tasks)})"))

    @task_app.command(name="show")
    def task_show(
        ctx: typer.Context,
        gid: Annotated[str, typer.Argument(help="Task gid")],
        field: Annotated[
            list[str] | None,
            typer.Option("--field", "-f", help="Extra opt_fields to request (repeatable)"),
        ] = None,
        output: Annotated[
            OutputFormat, typer.Option("--output", "-o", help="Output format")
        ] = OutputFormat.TABLE,
    ) -> None:
        """Show one task."""
        state = _get_context(ctx)
        with _reporting_errors():
            deps = state.build_dependencies()
            with deps.cache:
                task = get_task(
                    _require_transport(deps), gid, tuple(field or ()), principal=deps.principal
                )
        match output:
            case OutputFormat.JSON:
                typer.echo(task_to_json(task))
            case OutputFormat.CSV:
                typer.echo(tasks_to_csv([task]), nl=False)
            case OutputFormat.TABLE:
                rprint(build_task_detail_table(task))

    @task_app.command(name="subtasks")
    def task_subtasks(
        ctx: typer.Context,
        gid: Annotated[str, typer.Argument(help="Parent task gid")],
        field: Annotated[
            list[str] | None,
            typer.Option("--field", "-f", help="opt_fields to request (repeatable)"),
        ] = None,
        output: Annotated[
            OutputFormat, typer.Option("--output", "-o", help="Output format")
        ] = OutputFormat.TABLE,
    ) -> None:
        """List the direct subtasks of a task."""
        state = _get_context(ctx)
        with _reporting_errors():
            deps = state.build_dependencies()
            with deps.cache:
                tasks = list_subtasks(
                    _require_transport(deps), gid, tuple(field or ()), principal=deps.principal
                )
        match output:
            case OutputFormat.JSON:
                typer.echo(tasks_to_json(tasks))
            case OutputFormat.CSV:
                typer.echo(tasks_to_csv(tasks), nl=False)
            case OutputFormat.TABLE:
                rprint(build_task_table(tasks, title=f"Subtasks of {gid} ({len(tasks)})"))

    @task_app.command(name="create")
    def task_create(
        ctx: typer.Context,
        name: Annotated[str, typer.Option("--name", help="Task name")],
        workspace: Annotated[
            str | None, typer.Option("--workspace", "-w", help="Workspace gid")
        ] = None,
        project: Annotated[
            list[str] | None,
            typer.Option("--project", "-p", help="Project gid (repeatable)"),
        ] = None,
        parent: Annotated[
            str | None, typer.Option("--parent", help="Create as a subtask of this task")
        ] = None,
        assignee: Annotated[
            str | None, typer.Option("--assignee", "-a", help="Assignee gid, email or 'me'")
        ] = None,
        due_on: Annotated[str | None, typer.Option("--due-on", help="Due date YYYY-MM-DD")] = None,
        notes: Annotated[str | None, typer.Option("--notes", help="Task description")] = None,
    ) -> None:
        """Create a task (or a subtask with --parent)."""
        state = _get_context(ctx)
        config = state.config
        payload: dict[str, Any] = {"name": name}
        if parent:
            payload["parent"] = parent
        else:
            projects = list(project or ())
            if not projects and not workspace and config.default_project:
                projects = [config.default_project]
            if projects:
                payload["projects"] = projects
            if workspace or (not projects and config.default_workspace):
                payload["workspace"] = workspace or config.default_workspace
            if "projects" not in payload and "workspace" not in payload:
                raise CreateScopeError()
        if assignee:
            payload["assignee"] = assignee
        parsed_due = _optional_date("--due-on", due_on)
        if parsed_due is not None:
            payload["due_on"] = parsed_due.isoformat()
        if notes is not None:
            payload["notes"] = notes

        with _reporting_errors():
            deps = state.build_dependencies()
            with deps.cache:
                task = create_task(_require_transport(deps), payload, principal=deps.principal)
        rprint(f"[green]✓ Created task:[/green] {escape(task.name)} ({task.gid})")
        if task.permalink_url:
            rprint(f"  {task.permalink_url}")

    @task_app.command(name="update")
    def task_update(
        ctx: typer.Context,
        gid: Annotated[str, typer.Argument(help="Task gid")],
        name: Annotated[str | None, typer.Option("--name", help="New task name")] = None,
        assignee: Annotated[
            str | None, typer.Option("--assignee", "-a", help="Assignee gid, email or 'me'")
        ] = None,
        due_on: Annotated[str | None, typer.Option("--due-on", help="Due date YYYY-MM-DD")] = None,
        notes: Annotated[str | None, typer.Option("--notes", help="Task description")] = None,
        complete: Annotated[
            bool, typer.Option("--complete", help="Mark the task complete")
        ] = False,
        reopen: Annotated[
            bool, typer.Option("--reopen", help="Mark the task incomplete")
        ] = False,
    ) -> None:
        """Update fields of a task."""
        state = _get_context(ctx)
        payload: dict[str, Any] = {}
        if name is not None:
            payload["name"] = name
        if assignee is not None:
            payload["assignee"] = assignee
        parsed_due = _optional_date("--due-on", due_on)
        if parsed_due is not None:
            payload["due_on"] = parsed_due.isoformat()
        if notes is not None:
            payload["notes"] = notes
        completion = _completion_filter(complete, reopen, options=("--complete", "--reopen"))
        if completion is not None:
            payload["completed"] = completion
        if not payload:
            raise EmptyUpdateError()

        with _reporting_errors():
            deps = state.build_dependencies()
            with deps.cache:
                task = update_task(
                    _require_transport(deps), gid, payload, principal=deps.principal
                )
        rprint(f"[green]✓ Updated task:[/green] {escape(task.name)} ({task.gid})")

    @task_app.command(name="delete")
    def task_delete(
        ctx: typer.Context,
        gid: Annotated[str, typer.Argument(help="Task gid")],
    ) -> None:
        """Delete a task."""
        state = _get_context(ctx)
        with _reporting_errors():
            deps = state.build_dependencies()
            with deps.cache:
                delete_task(_require_transport(deps), gid, principal=deps.principal)
        rprint(f"[green]✓ Deleted task[/green] {gid}")

    @cache_app.command(name="clear")
    def cache_clear(ctx: typer.Context) -> None:
        """Remove every cached API response."""
        state = _get_context(ctx)
        with _reporting_errors():
            deps = state.build_dependencies(authenticated=False)
            with deps.cache as cache:
                removed = cache.clear()
        rprint(f"[green]✓ Cleared {removed} cached responses[/green]")

    @app.command(name="doctor")
    def doctor(ctx: typer.Context) -> None:
        """Check the token against the API and show cache and rate-limit state."""
        state = _get_context(ctx)
        config = state.config.with_overrides(offline=False)
        with _reporting_errors():
            deps = state.build_dependencies(config=config)
            with deps.cache:
                report = check_connection(_require_transport(deps), principal=deps.principal)

        table = Table(title="asana-cli doctor", show_header=False)
        table.add_column("Check", style="cyan", no_wrap=True)
        table.add_column("Value", style="white")
        table.add_row("Principal", deps.principal or "-")
        table.add_row("Base URL", config.base_url)
        table.add_row("Cache dir", config.cache_dir)
        table.add_row("User", f"{report.user_name} ({report.user_gid})")
        table.add_row("Email", report.email or "-")
        table.add_row("Workspaces", ", ".join(report.workspaces) or "-")
        if deps.rate_limit is not None:
            for key, value in deps.rate_limit.snapshot().items():
                table.add_row(f"Rate limit {key}", "-" if value is None else str(value))
        rprint(table)
        rprint("[green]✓ Connected to Asana[/green]")

    _ = (
        main,
        task_list,
        task_show,
        task_subtasks,
        task_create,
        task_update,
        task_delete,
        cache_clear,
        doctor,
    )

    return app
