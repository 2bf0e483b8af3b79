"""Single-task operations built on the transport and pagination engine."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..domain.tasks import DETAIL_DEFAULT_FIELDS, Task, TaskDateError, merge_fields
from ..exceptions import InvalidResponseError
from ..infrastructure.pagination import paginate
from ..infrastructure.validation import IncomingDataError
from ..protocols import Transport
from ..types import RequestDescriptor

SUBTASK_DEFAULT_FIELDS: tuple[str, ...] = ("gid", "name", "completed", "assignee.name", "due_on")


def task_from_item(path: str, item: object) -> Task:
    """Convert one response item into a Task, reporting malformed items against `path`."""
    try:
        return Task.from_payload(item)
    except (IncomingDataError, TaskDateError) as exc:
        raise InvalidResponseError(path, str(exc)) from exc


def _single_task(path: str, payload: Mapping[str, object]) -> Task:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidResponseError(path, "expected a task object in `data`")
    return task_from_item(path, data)


def subtasks_request(parent_gid: str, opt_fields: str, *, principal: str = "") -> RequestDescriptor:
    return RequestDescriptor.get(
        f"/tasks/{parent_gid}/subtasks", {"opt_fields": opt_fields}, principal=principal
    )


def get_task(
    transport: Transport,
    gid: str,
    fields: Iterable[str] = (),
    *,
    principal: str = "",
) -> Task:
    request = RequestDescriptor.get(
        f"/tasks/{gid}",
        {"opt_fields": merge_fields(DETAIL_DEFAULT_FIELDS, fields)},
        principal=principal,
    )
    return _single_task(request.path, transport.send(request).payload)


def list_subtasks(
    transport: Transport,
    parent_gid: str,
    fields: Iterable[str] = (),
    *,
    principal: str = "",
) -> list[Task]:
    """List the direct subtasks of one task (one level, every page)."""
    requested = tuple(fields) or SUBTASK_DEFAULT_FIELDS
    request = subtasks_request(parent_gid, merge_fields(requested), principal=principal)
    return [task_from_item(request.path, item) for item in paginate(transport, request)]


def create_task(
    transport: Transport,
    payload: Mapping[str, Any],
    *,
    principal: str = "",
) -> Task:
    """Create a task (or a subtask when `parent` is set)."""
    request = RequestDescriptor(
        method="POST", path="/tasks", principal=principal, body={"data": dict(payload)}
    )
    return _single_task(request.path, transport.send(request).payload)


def update_task(
    transport: Transport,
    gid: str,
    payload: Mapping[str, Any],
    *,
    principal: str = "",
) -> Task:
    request = RequestDescriptor(
        method="PUT", path=f"/tasks/{gid}", principal=principal, body={"data": dict(payload)}
    )
    return _single_task(request.path, transport.send(request).payload)


def delete_task(transport: Transport, gid: str, *, principal: str = "") -> None:
    transport.send(RequestDescriptor(method="DELETE", path=f"/tasks/{gid}", principal=principal))
