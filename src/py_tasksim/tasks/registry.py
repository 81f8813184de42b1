"""Task registry — the ordered run queue.

The registry is an ordered list of tasks with a fixed capacity.  Its
order *is* the dispatch order: FCFS leaves it alone, Round-Robin
rotates it, Priority sorts it.  Removal shifts later entries down so
survivors keep their relative order.

Concurrency:
    One re-entrant lock guards the list.  Every method takes it, so a
    display read never sees a half-shifted queue.  Callers that need a
    compound operation (look up an index, stop the task, remove it)
    wrap the whole sequence in ``with registry.locked():`` — the lock is
    re-entrant, so the inner calls still work.
"""

from __future__ import annotations

from contextlib import contextmanager
from threading import RLock
from typing import TYPE_CHECKING

from py_tasksim.errors import CapacityExceededError, InvalidIndexError
from py_tasksim.tasks.task import Task, TaskInfo

if TYPE_CHECKING:
    from collections.abc import Generator, Iterator

    from py_tasksim.execution import ExecutionHandle

DEFAULT_CAPACITY = 50


class TaskRegistry:
    """Bounded, ordered collection of running tasks."""

    def __init__(self, *, capacity: int = DEFAULT_CAPACITY) -> None:
        """Create an empty registry.

        Args:
            capacity: Maximum number of tasks held at once.

        Raises:
            ValueError: If capacity is not positive.

        """
        if capacity < 1:
            msg = f"Registry capacity must be at least 1, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._tasks: list[Task] = []
        self._lock = RLock()

    @property
    def capacity(self) -> int:
        """Return the maximum number of tasks."""
        return self._capacity

    @property
    def is_full(self) -> bool:
        """Return True when no more tasks can be appended."""
        with self._lock:
            return len(self._tasks) >= self._capacity

    def __len__(self) -> int:
        """Return the number of registered tasks."""
        with self._lock:
            return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        """Iterate over a copy of the queue, front to back."""
        with self._lock:
            return iter(list(self._tasks))

    @contextmanager
    def locked(self) -> Generator[None]:
        """Hold the registry lock for a compound operation."""
        with self._lock:
            yield

    def append(self, task: Task) -> int:
        """Add *task* at the back of the queue.

        Returns:
            The index the task was stored at.

        Raises:
            CapacityExceededError: If the registry is already full.

        """
        with self._lock:
            if len(self._tasks) >= self._capacity:
                msg = f"Maximum number of tasks reached ({self._capacity})"
                raise CapacityExceededError(msg)
            self._tasks.append(task)
            return len(self._tasks) - 1

    def get(self, index: int) -> Task:
        """Return the task at *index*.

        Raises:
            InvalidIndexError: If the index is outside ``[0, len)``.

        """
        with self._lock:
            if not 0 <= index < len(self._tasks):
                msg = f"Invalid task index {index} (have {len(self._tasks)} tasks)"
                raise InvalidIndexError(msg)
            return self._tasks[index]

    def running_at(self, index: int) -> Task:
        """Return the task at *index*, which must also be running.

        Raises:
            InvalidIndexError: If the index is invalid or the task is not running.

        """
        with self._lock:
            task = self.get(index)
            if not task.is_running:
                msg = f"Task at index {index} is not running"
                raise InvalidIndexError(msg)
            return task

    def remove_at(self, index: int) -> Task:
        """Remove and return the running task at *index*.

        Later entries shift down by one, so survivors keep their order.

        Raises:
            InvalidIndexError: If the index is invalid or the task is not running.

        """
        with self._lock:
            task = self.running_at(index)
            del self._tasks[index]
            return task

    def index_of(self, task: Task) -> int | None:
        """Return the current position of *task*, or None if absent."""
        with self._lock:
            for i, candidate in enumerate(self._tasks):
                if candidate is task:
                    return i
            return None

    def find_by_handle(self, handle: ExecutionHandle) -> int | None:
        """Return the index of the task owning *handle*, or None."""
        with self._lock:
            for i, task in enumerate(self._tasks):
                if task.handle == handle:
                    return i
            return None

    def last(self) -> Task | None:
        """Return the task at the back of the queue, or None if empty."""
        with self._lock:
            return self._tasks[-1] if self._tasks else None

    def rotate_left(self) -> None:
        """Move the front task to the back; everyone else moves up one."""
        with self._lock:
            if len(self._tasks) > 1:
                self._tasks.append(self._tasks.pop(0))

    def sort_descending_by_priority(self) -> None:
        """Order by priority, highest first.

        ``list.sort`` is stable even with ``reverse=True``, so tasks
        with equal priority keep their current relative order.
        """
        with self._lock:
            self._tasks.sort(key=lambda t: t.priority, reverse=True)

    def snapshot(self, *, now: float) -> list[TaskInfo]:
        """Return read-only copies of every task, front to back."""
        with self._lock:
            return [TaskInfo.of(t, index=i, now=now) for i, t in enumerate(self._tasks)]
