"""Rendering of tasks as a Rich table, JSON or CSV."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from enum import StrEnum

from rich.table import Table

from .domain.tasks import Task

TASK_COLUMNS: tuple[str, ...] = (
    "gid",
    "name",
    "completed",
    "due_on",
    "due_at",
    "assignee",
    "parent",
    "num_subtasks",
    "permalink_url",
)


class OutputFormat(StrEnum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


def tasks_to_json(tasks: Sequence[Task]) -> str:
    return json.dumps([task.to_dict() for task in tasks], indent=2, ensure_ascii=False)


def task_to_json(task: Task) -> str:
    record = task.to_dict()
    record["notes"] = task.notes
    record["completed_at"] = task.completed_at
    record["created_at"] = task.created_at
    record["modified_at"] = task.modified_at
    return json.dumps(record, indent=2, ensure_ascii=False)


def tasks_to_csv(tasks: Sequence[Task]) -> str:
    """Render tasks as CSV; extra requested fields follow the standard columns."""
    columns = list(TASK_COLUMNS)
    for task in tasks:
        columns.extend(key for key in task.extra if key not in columns)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for task in tasks:
        record = task.to_dict()
        writer.writerow({column: _csv_value(record.get(column)) for column in columns})
    return buffer.getvalue()


def _csv_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def build_task_table(tasks: Sequence[Task], *, title: str | None = None) -> Table:
    """Build a compact listing table; subtasks are marked with their parent id."""
    table = Table(title=title)
    table.add_column("GID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Done", justify="center")
    table.add_column("Due", style="magenta")
    table.add_column("Assignee", style="green")
    table.add_column("Parent", style="dim")
    for task in tasks:
        table.add_row(
            task.gid,
            task.name,
            "✓" if task.completed else "",
            task.due_on.isoformat() if task.due_on else (task.due_at or ""),
            task.assignee or "",
            task.parent_gid or "",
        )
    return table


def build_task_detail_table(task: Task) -> Table:
    table = Table(title=task.name or task.gid, show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    rows = (
        ("GID", task.gid),
        ("Completed", "yes" if task.completed else "no"),
        ("Completed at", task.completed_at),
        ("Due", task.due_on.isoformat() if task.due_on else task.due_at),
        ("Assignee", task.assignee),
        ("Parent", task.parent_gid),
        ("Subtasks", None if task.num_subtasks is None else str(task.num_subtasks)),
        ("Created", task.created_at),
        ("Modified", task.modified_at),
        ("Link", task.permalink_url),
        ("Notes", task.notes),
    )
    for label, value in rows:
        if value:
            table.add_row(label, value)
    return table
