"""Domain models for tasks and listing criteria."""

from .tasks import (
    DETAIL_DEFAULT_FIELDS,
    LIST_DEFAULT_FIELDS,
    SUBTASK_COUNT_FIELD,
    Task,
    TaskFilter,
    TaskScope,
    TaskSort,
    apply_post_filters,
    merge_fields,
    parse_date,
    parse_sort,
    sort_tasks,
)

__all__ = [
    "DETAIL_DEFAULT_FIELDS",
    "LIST_DEFAULT_FIELDS",
    "SUBTASK_COUNT_FIELD",
    "Task",
    "TaskFilter",
    "TaskScope",
    "TaskSort",
    "apply_post_filters",
    "merge_fields",
    "parse_date",
    "parse_sort",
    "sort_tasks",
]
