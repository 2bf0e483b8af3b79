"""Application services: task listing, single-task operations and the connection check."""

from .doctor import ConnectionReport, check_connection
from .list_tasks import PipelineStage, TaskListOptions, TaskListPipeline, list_tasks
from .tasks import create_task, delete_task, get_task, list_subtasks, update_task

__all__ = [
    "ConnectionReport",
    "PipelineStage",
    "TaskListOptions",
    "TaskListPipeline",
    "check_connection",
    "create_task",
    "delete_task",
    "get_task",
    "list_subtasks",
    "list_tasks",
    "update_task",
]
