"""Task subsystem — the task record and the ordered run queue.

Re-exports public symbols so callers can write::

    from py_tasksim.tasks import Task, TaskRegistry
"""

from py_tasksim.tasks.registry import DEFAULT_CAPACITY, TaskRegistry
from py_tasksim.tasks.task import (
    MAX_PRIORITY,
    MAX_REMAINING_TIME,
    MIN_PRIORITY,
    MIN_REMAINING_TIME,
    Task,
    TaskInfo,
)

__all__ = [
    "DEFAULT_CAPACITY",
    "MAX_PRIORITY",
    "MAX_REMAINING_TIME",
    "MIN_PRIORITY",
    "MIN_REMAINING_TIME",
    "Task",
    "TaskInfo",
    "TaskRegistry",
]
