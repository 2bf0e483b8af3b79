"""Task domain model, listing criteria and client-side post-filters.

Usage example:
    from datetime import date

    from asana_cli.domain.tasks import TaskFilter, apply_post_filters

    criteria = TaskFilter(completed=False, due_before=date(2024, 6, 30))
    open_tasks = apply_post_filters(tasks, criteria)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Self, TypedDict

from ..infrastructure.validation import IncomingDataError, validate_as

SUBTASK_COUNT_FIELD = "num_subtasks"

DEFAULT_SUBTASK_CONCURRENCY = 4
MAX_SUBTASK_CONCURRENCY = 16

LIST_DEFAULT_FIELDS: tuple[str, ...] = (
    "gid",
    "name",
    "completed",
    "completed_at",
    "due_on",
    "due_at",
    "start_on",
    "assignee.name",
    "assignee.gid",
    "created_at",
    "modified_at",
    "parent.gid",
    "permalink_url",
    SUBTASK_COUNT_FIELD,
)

DETAIL_DEFAULT_FIELDS: tuple[str, ...] = LIST_DEFAULT_FIELDS + (
    "notes",
    "projects.name",
    "projects.gid",
    "workspace.gid",
    "workspace.name",
)


class TaskDateError(ValueError):
    """Raised when a task date is not an ISO calendar date."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid date '{value}': expected YYYY-MM-DD.")


class ReferenceIO(TypedDict, total=False):
    gid: str
    name: str | None


class TaskIO(TypedDict, total=False):
    """Inbound task payload shape (only the fields the CLI reads)."""

    gid: str
    name: str | None
    completed: bool | None
    completed_at: str | None
    due_on: str | None
    due_at: str | None
    start_on: str | None
    created_at: str | None
    modified_at: str | None
    assignee: ReferenceIO | None
    parent: ReferenceIO | None
    permalink_url: str | None
    notes: str | None
    num_subtasks: int | None


_KNOWN_TASK_FIELDS = frozenset(TaskIO.__annotations__) | {"resource_type"}


def _extra_fields(payload: object) -> dict[str, object]:
    """Return response fields the model has no attribute for (extra `opt_fields`)."""
    if not isinstance(payload, Mapping):
        return {}
    return {key: value for key, value in payload.items() if key not in _KNOWN_TASK_FIELDS}


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date (CLI input and API `due_on`)."""
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise TaskDateError(value) from exc


@dataclass(frozen=True)
class Task:
    """A task as returned by one response; discarded after the command completes."""

    gid: str
    name: str = ""
    completed: bool = False
    due_on: date | None = None
    due_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
    modified_at: str | None = None
    assignee: str | None = None
    parent_gid: str | None = None
    permalink_url: str | None = None
    notes: str | None = None
    num_subtasks: int | None = None
    extra: Mapping[str, object] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: object) -> Self:
        """Build a Task from an API payload.

        Raises:
            IncomingDataError: If the payload is not a task object.
        """
        data = validate_as(TaskIO, payload)
        if "gid" not in data:
            raise IncomingDataError("Task payload is missing `gid`.")
        assignee = data.get("assignee") or {}
        parent = data.get("parent") or {}
        due_on = data.get("due_on")
        return cls(
            gid=data["gid"],
            name=data.get("name") or "",
            completed=bool(data.get("completed")),
            due_on=parse_date(due_on) if due_on else None,
            due_at=data.get("due_at"),
            completed_at=data.get("completed_at"),
            created_at=data.get("created_at"),
            modified_at=data.get("modified_at"),
            assignee=assignee.get("name") or assignee.get("gid"),
            parent_gid=parent.get("gid"),
            permalink_url=data.get("permalink_url"),
            notes=data.get("notes"),
            num_subtasks=data.get("num_subtasks"),
            extra=_extra_fields(payload),
        )

    @property
    def has_subtasks(self) -> bool:
        return (self.num_subtasks or 0) > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "gid": self.gid,
            "name": self.name,
            "completed": self.completed,
            "due_on": self.due_on.isoformat() if self.due_on else None,
            "due_at": self.due_at,
            "assignee": self.assignee,
            "parent": self.parent_gid,
            "num_subtasks": self.num_subtasks,
            "permalink_url": self.permalink_url,
            **self.extra,
        }


@dataclass(frozen=True)
class TaskScope:
    """Where a listing looks: a project, a section, or a workspace (with an assignee)."""

    workspace: str | None = None
    project: str | None = None
    section: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.workspace or self.project or self.section)


@dataclass(frozen=True)
class TaskFilter:
    """Listing criteria.

    Server-side fields become query parameters; `completed`, `due_before` and
    `due_after` cannot be expressed as Asana query parameters and are applied
    client-side after all data has been fetched.
    """

    assignee: str | None = None
    completed_since: str | None = None
    modified_since: str | None = None
    due_on: str | None = None
    completed: bool | None = None
    due_before: date | None = None
    due_after: date | None = None

    def to_query(self) -> dict[str, str]:
        query: dict[str, str] = {}
        if self.assignee:
            query["assignee"] = self.assignee
        if self.completed_since:
            query["completed_since"] = self.completed_since
        if self.modified_since:
            query["modified_since"] = self.modified_since
        if self.due_on:
            query["due_on"] = self.due_on
        return query

    @property
    def has_post_filters(self) -> bool:
        return (
            self.completed is not None or self.due_before is not None or self.due_after is not None
        )

    def matches(self, task: Task) -> bool:
        """Apply the post-filters to a single task, independent of its parent or children."""
        if self.completed is not None and task.completed != self.completed:
            return False
        if self.due_before is not None and (task.due_on is None or task.due_on > self.due_before):
            return False
        if self.due_after is not None and (task.due_on is None or task.due_on < self.due_after):
            return False
        return True


def apply_post_filters(tasks: Iterable[Task], criteria: TaskFilter) -> list[Task]:
    return [task for task in tasks if criteria.matches(task)]


class TaskSort(StrEnum):
    """Client-side sort orders for task listings."""

    NAME = "name"
    DUE_ON = "due_on"
    CREATED_AT = "created_at"
    MODIFIED_AT = "modified_at"
    ASSIGNEE = "assignee"


class UnsupportedSortError(ValueError):
    """Raised when a sort field is not supported."""

    def __init__(self, value: str) -> None:
        supported = ", ".join(s.value for s in TaskSort)
        super().__init__(f"Unsupported sort field '{value}'; supported values: {supported}")


_SORT_ALIASES = {
    "due": TaskSort.DUE_ON,
    "created": TaskSort.CREATED_AT,
    "modified": TaskSort.MODIFIED_AT,
}


def parse_sort(value: str | None) -> TaskSort | None:
    if value is None:
        return None
    normalised = value.strip().lower()
    if not normalised:
        return None
    if normalised in _SORT_ALIASES:
        return _SORT_ALIASES[normalised]
    try:
        return TaskSort(normalised)
    except ValueError as exc:
        raise UnsupportedSortError(value) from exc


def sort_tasks(tasks: Sequence[Task], order: TaskSort) -> list[Task]:
    """Stable sort; tasks missing the sort key go last."""
    match order:
        case TaskSort.NAME:
            return sorted(tasks, key=lambda t: t.name.lower())
        case TaskSort.DUE_ON:
            return sorted(
                tasks, key=lambda t: (t.due_on is None, t.due_on or date.min, t.due_at or "")
            )
        case TaskSort.CREATED_AT:
            return sorted(tasks, key=lambda t: (t.created_at is None, t.created_at or ""))
        case TaskSort.MODIFIED_AT:
            return sorted(tasks, key=lambda t: (t.modified_at is None, t.modified_at or ""))
        case TaskSort.ASSIGNEE:
            return sorted(tasks, key=lambda t: (t.assignee is None, (t.assignee or "").lower()))


def merge_fields(*groups: Iterable[str]) -> str:
    """Return a sorted, de-duplicated `opt_fields` value that always carries the subtask count."""
    fields = {SUBTASK_COUNT_FIELD}
    for group in groups:
        fields.update(f.strip() for f in group if f.strip())
    return ",".join(sorted(fields))
