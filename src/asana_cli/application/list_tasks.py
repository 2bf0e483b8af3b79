"""Task listing: primary fetch, subtask expansion, merge and post-filters.

The pipeline runs its stages strictly in order:

    FetchPrimary -> ExpandSubtasks (optional) -> Merge -> ApplyPostFilters -> Sort (optional)

Any failure aborts the whole listing; a partially expanded or partially filtered
result is never returned. Errors keep their type and carry a note naming the
stage (and the task id, where one is involved).

Usage example:
    from asana_cli.application.list_tasks import TaskListOptions, list_tasks
    from asana_cli.domain.tasks import TaskFilter, TaskScope

    tasks = list_tasks(
        transport,
        TaskFilter(completed=False),
        TaskListOptions(scope=TaskScope(project="1200"), include_subtasks=True),
        defaults=config,
        principal=token_provider.principal,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import StrEnum

from ..domain.tasks import (
    DEFAULT_SUBTASK_CONCURRENCY,
    LIST_DEFAULT_FIELDS,
    MAX_SUBTASK_CONCURRENCY,
    Task,
    TaskFilter,
    TaskScope,
    TaskSort,
    apply_post_filters,
    merge_fields,
    sort_tasks,
)
from ..exceptions import MissingScopeError, OperationCancelledError, SubtaskFetchFailed
from ..infrastructure.pagination import paginate
from ..infrastructure.resilience import CancellationToken
from ..observability import get_logger
from ..protocols import ScopeDefaults, Transport
from ..types import RequestDescriptor
from .tasks import subtasks_request, task_from_item

logger = get_logger("asana_cli.application.list_tasks")


class PipelineStage(StrEnum):
    FETCH_PRIMARY = "fetch-primary"
    EXPAND_SUBTASKS = "expand-subtasks"
    MERGE = "merge"
    APPLY_POST_FILTERS = "apply-post-filters"
    SORT = "sort"
    DONE = "done"


@dataclass(frozen=True)
class TaskListOptions:
    """How a listing is fetched and shaped (as opposed to which tasks match)."""

    scope: TaskScope = field(default_factory=TaskScope)
    include_subtasks: bool = False
    limit: int | None = None
    fields: tuple[str, ...] = ()
    sort: TaskSort | None = None
    max_concurrency: int = DEFAULT_SUBTASK_CONCURRENCY


def resolve_scope_query(
    scope: TaskScope,
    criteria: TaskFilter,
    defaults: ScopeDefaults,
) -> dict[str, str]:
    """Build the scope and server-side filter parameters of the primary query.

    An explicit scope wins over configured defaults. A workspace-only scope needs
    an assignee; it falls back to the configured default assignee, then `me`.

    Raises:
        MissingScopeError: If neither the options nor the defaults name a scope.
    """
    if scope.is_empty:
        scope = TaskScope(workspace=defaults.default_workspace, project=defaults.default_project)

    query = criteria.to_query()
    if scope.section:
        query["section"] = scope.section
    elif scope.project:
        query["project"] = scope.project
    elif scope.workspace:
        query["workspace"] = scope.workspace
        if "assignee" not in query or query["assignee"].lower() == "me":
            query["assignee"] = defaults.default_assignee or "me"
    else:
        raise MissingScopeError()
    return query


def _annotate(exc: BaseException, stage: PipelineStage, task_gid: str | None = None) -> None:
    note = f"while running task listing stage '{stage}'"
    if task_gid is not None:
        note += f" for task {task_gid}"
    exc.add_note(note)


class TaskListPipeline:
    """Runs one task listing against an injected transport.

    The transport decides caching and retry behaviour; the pipeline only owns
    stage ordering, subtask fan-out and result assembly.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        defaults: ScopeDefaults,
        principal: str = "",
        cancellation: CancellationToken | None = None,
    ) -> None:
        self.transport = transport
        self.defaults = defaults
        self.principal = principal
        self.cancellation = cancellation or CancellationToken()
        self.stage = PipelineStage.FETCH_PRIMARY

    def run(self, criteria: TaskFilter, options: TaskListOptions) -> list[Task]:
        """Run every stage and return the final task list.

        Raises:
            OperationCancelledError: If interrupted; nothing accumulated is returned.
        """
        try:
            return self._run(criteria, options)
        except KeyboardInterrupt:
            self.cancellation.cancel()
            logger.warning("Task listing interrupted during %s", self.stage)
            raise OperationCancelledError() from None

    def _enter(self, stage: PipelineStage) -> None:
        self.cancellation.raise_if_cancelled()
        self.stage = stage
        logger.debug("Task listing stage: %s", stage)

    def _run(self, criteria: TaskFilter, options: TaskListOptions) -> list[Task]:
        opt_fields = merge_fields(LIST_DEFAULT_FIELDS, options.fields)

        self._enter(PipelineStage.FETCH_PRIMARY)
        try:
            primary = self.fetch_primary(criteria, options, opt_fields)
        except Exception as exc:
            _annotate(exc, PipelineStage.FETCH_PRIMARY)
            raise

        groups: list[list[Task]] = []
        if options.include_subtasks:
            self._enter(PipelineStage.EXPAND_SUBTASKS)
            groups = self.expand_subtasks(primary, opt_fields, options.max_concurrency)

        self._enter(PipelineStage.MERGE)
        merged = merge(primary, groups)

        self._enter(PipelineStage.APPLY_POST_FILTERS)
        result = merged
        if criteria.has_post_filters:
            result = apply_post_filters(merged, criteria)
            logger.debug("Post-filters kept %d of %d tasks", len(result), len(merged))

        if options.sort is not None:
            self._enter(PipelineStage.SORT)
            result = sort_tasks(result, options.sort)

        self._enter(PipelineStage.DONE)
        return result

    def fetch_primary(
        self,
        criteria: TaskFilter,
        options: TaskListOptions,
        opt_fields: str,
    ) -> list[Task]:
        query = resolve_scope_query(options.scope, criteria, self.defaults)
        query["opt_fields"] = opt_fields
        request = RequestDescriptor.get("/tasks", query, principal=self.principal)
        tasks = [
            task_from_item(request.path, item)
            for item in paginate(self.transport, request, options.limit)
        ]
        logger.debug("Primary fetch returned %d tasks", len(tasks))
        return tasks

    def _fetch_children(self, parent: Task, opt_fields: str) -> list[Task]:
        self.cancellation.raise_if_cancelled()
        request = subtasks_request(parent.gid, opt_fields, principal=self.principal)
        return [task_from_item(request.path, item) for item in paginate(self.transport, request)]

    def expand_subtasks(
        self,
        primary: Sequence[Task],
        opt_fields: str,
        max_concurrency: int = DEFAULT_SUBTASK_CONCURRENCY,
    ) -> list[list[Task]]:
        """Fetch one level of subtasks for every primary task that reports any.

        Returns one group per qualifying parent, in primary order. Tasks with a
        zero or missing subtask count are never queried.

        Raises:
            SubtaskFetchFailed: If any fetch fails; pending fetches are cancelled.
            OperationCancelledError: If cancelled while fetching (never wrapped).
        """
        parents = [task for task in primary if task.has_subtasks]
        if not parents:
            return []

        workers = max(1, min(max_concurrency, MAX_SUBTASK_CONCURRENCY, len(parents)))
        logger.debug("Expanding subtasks of %d parents with %d workers", len(parents), workers)
        slots: list[list[Task] | None] = [None] * len(parents)

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asana-subtasks")
        try:
            futures: dict[Future[list[Task]], int] = {
                executor.submit(self._fetch_children, parent, opt_fields): index
                for index, parent in enumerate(parents)
            }
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failures = sorted(
                (futures[f], error)
                for f in done
                if not f.cancelled() and (error := f.exception()) is not None
            )
            if failures:
                index, error = failures[0]
                parent_gid = parents[index].gid
                _annotate(error, PipelineStage.EXPAND_SUBTASKS, parent_gid)
                if isinstance(error, OperationCancelledError):
                    raise error
                raise SubtaskFetchFailed(parent_gid, error) from error
            for future, index in futures.items():
                slots[index] = future.result()
        except KeyboardInterrupt:
            self.cancellation.cancel()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        return [slot or [] for slot in slots]


def merge(primary: Sequence[Task], groups: Sequence[Sequence[Task]]) -> list[Task]:
    """Concatenate primary tasks and subtask groups; duplicates are kept."""
    merged = list(primary)
    for group in groups:
        merged.extend(group)
    return merged


def list_tasks(
    transport: Transport,
    criteria: TaskFilter,
    options: TaskListOptions,
    *,
    defaults: ScopeDefaults,
    principal: str = "",
    cancellation: CancellationToken | None = None,
) -> list[Task]:
    """List tasks matching `criteria`, optionally expanded by one level of subtasks."""
    pipeline = TaskListPipeline(
        transport,
        defaults=defaults,
        principal=principal,
        cancellation=cancellation,
    )
    return pipeline.run(criteria, options)
