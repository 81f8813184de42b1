"""Task — the simulator's unit of scheduling.

A task is one running application as the scheduler sees it: a name, a
fixed resource footprint, two display flags, and the two numbers the
scheduling policies look at:

- **priority** (1–5, higher runs first under Priority scheduling).
- **remaining_time** (1–10 quantum units, consumed by Round-Robin; the
  task is evicted once it reaches zero or below).

Both are drawn at random when the task is admitted.  The footprint and
priority never change afterwards; only ``remaining_time`` and the two
flags are mutated, and only through the methods below.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import count
from typing import TYPE_CHECKING

from py_tasksim.resources import Footprint

if TYPE_CHECKING:
    from py_tasksim.execution import ExecutionHandle

MAX_NAME_LENGTH = 50
MIN_PRIORITY = 1
MAX_PRIORITY = 5
MIN_REMAINING_TIME = 1
MAX_REMAINING_TIME = 10

_tid_counter = count(start=1)


class Task:
    """A registered task (the simulator's process control block).

    Tasks are identified two ways: by their position in the registry
    (which the scheduling policies change) and by ``tid``, a stable
    number that never changes.
    """

    def __init__(
        self,
        *,
        name: str,
        footprint: Footprint,
        priority: int,
        remaining_time: int,
        start_time: float,
        handle: ExecutionHandle | None = None,
    ) -> None:
        """Create a running, non-minimized task.

        Args:
            name: Application name (at most 50 characters).
            footprint: Resources reserved for the task.
            priority: Scheduling priority in [1, 5].
            remaining_time: Round-Robin budget in [1, 10].
            start_time: Clock reading at registration.
            handle: The spawned execution, or None if nothing was spawned.

        Raises:
            ValueError: If any argument is outside its range.

        """
        if not name or len(name) > MAX_NAME_LENGTH:
            msg = f"Task name must be 1-{MAX_NAME_LENGTH} characters, got {name!r}"
            raise ValueError(msg)
        if min(footprint.ram, footprint.hdd, footprint.cpu) < 0:
            msg = f"Footprint must be non-negative, got {footprint}"
            raise ValueError(msg)
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            msg = f"Priority must be in [{MIN_PRIORITY}, {MAX_PRIORITY}], got {priority}"
            raise ValueError(msg)
        if not MIN_REMAINING_TIME <= remaining_time <= MAX_REMAINING_TIME:
            msg = (
                f"Remaining time must be in [{MIN_REMAINING_TIME}, {MAX_REMAINING_TIME}],"
                f" got {remaining_time}"
            )
            raise ValueError(msg)

        self._tid: int = next(_tid_counter)
        self._name = name
        self._footprint = footprint
        self._priority = priority
        self._remaining_time = remaining_time
        self._start_time = start_time
        self._handle = handle
        self._is_running = True
        self._is_minimized = False

    @property
    def tid(self) -> int:
        """Return the stable task id."""
        return self._tid

    @property
    def name(self) -> str:
        """Return the application name."""
        return self._name

    @property
    def footprint(self) -> Footprint:
        """Return the reserved resources."""
        return self._footprint

    @property
    def ram_usage(self) -> int:
        """Return reserved memory in MB."""
        return self._footprint.ram

    @property
    def hdd_usage(self) -> int:
        """Return reserved storage in MB."""
        return self._footprint.hdd

    @property
    def cpu_usage(self) -> int:
        """Return reserved cores."""
        return self._footprint.cpu

    @property
    def priority(self) -> int:
        """Return the static scheduling priority."""
        return self._priority

    @property
    def remaining_time(self) -> int:
        """Return the Round-Robin budget left."""
        return self._remaining_time

    @property
    def start_time(self) -> float:
        """Return the clock reading at registration."""
        return self._start_time

    @property
    def handle(self) -> ExecutionHandle | None:
        """Return the spawned execution, if any."""
        return self._handle

    @property
    def pid(self) -> int | None:
        """Return the execution's PID (-1 when simulated), or None."""
        return self._handle.pid if self._handle is not None else None

    @property
    def is_running(self) -> bool:
        """Return False only while (or after) the task is torn down."""
        return self._is_running

    @property
    def is_minimized(self) -> bool:
        """Return the minimized display flag."""
        return self._is_minimized

    def elapsed(self, now: float) -> float:
        """Return seconds since registration, never negative."""
        return max(0.0, now - self._start_time)

    def consume(self, quantum: int) -> int:
        """Charge one Round-Robin quantum and return what is left."""
        self._remaining_time -= quantum
        return self._remaining_time

    def attach(self, handle: ExecutionHandle) -> None:
        """Bind the detached execution spawned for this task.

        Raises:
            RuntimeError: If an execution is already attached.

        """
        if self._handle is not None:
            msg = f"Task {self._tid} already has an execution attached"
            raise RuntimeError(msg)
        self._handle = handle

    def minimize(self) -> None:
        """Set the minimized flag."""
        self._is_minimized = True

    def restore(self) -> None:
        """Clear the minimized flag."""
        self._is_minimized = False

    def mark_stopped(self) -> None:
        """Clear the running flag (teardown only)."""
        self._is_running = False

    def __repr__(self) -> str:
        """Return a debug-friendly representation."""
        return (
            f"Task(tid={self._tid}, name={self._name!r}, priority={self._priority},"
            f" remaining={self._remaining_time})"
        )


@dataclass(frozen=True)
class TaskInfo:
    """Read-only copy of one task, as shown by the views."""

    index: int
    tid: int
    name: str
    ram_usage: int
    hdd_usage: int
    cpu_usage: int
    is_running: bool
    is_minimized: bool
    elapsed: float
    priority: int
    remaining_time: int
    pid: int | None

    @property
    def status(self) -> str:
        """Return ``Minimized`` or ``Running``."""
        return "Minimized" if self.is_minimized else "Running"

    @classmethod
    def of(cls, task: Task, *, index: int, now: float) -> TaskInfo:
        """Snapshot *task* at queue position *index*."""
        return cls(
            index=index,
            tid=task.tid,
            name=task.name,
            ram_usage=task.ram_usage,
            hdd_usage=task.hdd_usage,
            cpu_usage=task.cpu_usage,
            is_running=task.is_running,
            is_minimized=task.is_minimized,
            elapsed=task.elapsed(now),
            priority=task.priority,
            remaining_time=task.remaining_time,
            pid=task.pid,
        )
