"""Task lifecycle controller — admission, termination, and display flags.

The controller is the only component outside the core that menu
actions, applications, and the scheduling engine call to create or
destroy tasks.  It keeps one invariant above all others:

    A task is in the registry **iff** its footprint is reserved in the
    resource pool.

Admission (reserve → register → optionally spawn)::

    try_reserve ──fail──▶ InsufficientResourcesError   (nothing changed)
         │ ok
    append ─────full───▶ release, CapacityExceededError
         │ ok
    spawn ──OSError/RuntimeError─▶ remove, release, SpawnFailedError   (detach only)
         │ ok
       Task

Termination (validate → stop → reap → deregister → release)::

    running_at ──bad───▶ InvalidIndexError  (nothing changed)
    signal_stop, reap ──▶ ReapFailedError   (task stays accounted for)
    remove_at, release

The whole termination sequence holds the registry lock, so an index
cannot shift under it between validation and removal.  The reap is
bounded by ``reap_timeout``; it never blocks indefinitely.
"""

from __future__ import annotations

import random
from time import monotonic
from typing import TYPE_CHECKING

from py_tasksim.errors import (
    CapacityExceededError,
    InsufficientResourcesError,
    SpawnFailedError,
    TerminationError,
)
from py_tasksim.execution import DEFAULT_REAP_TIMEOUT
from py_tasksim.logging import Logger, LogLevel
from py_tasksim.resources import Footprint
from py_tasksim.tasks import (
    MAX_PRIORITY,
    MAX_REMAINING_TIME,
    MIN_PRIORITY,
    MIN_REMAINING_TIME,
    Task,
    TaskInfo,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_tasksim.execution import ExecutionBackend, ExecutionHandle
    from py_tasksim.resources import PoolSnapshot, ResourcePool
    from py_tasksim.tasks import TaskRegistry


class TaskLifecycleController:
    """Orchestrate the pool, the registry, and the execution backend."""

    def __init__(
        self,
        *,
        pool: ResourcePool,
        registry: TaskRegistry,
        backend: ExecutionBackend,
        logger: Logger | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = monotonic,
        reap_timeout: float = DEFAULT_REAP_TIMEOUT,
    ) -> None:
        """Create a controller.

        Args:
            pool: The resource pool to reserve from.
            registry: The run queue to register tasks in.
            backend: Starts and stops detached executions.
            logger: Audit log, or None to stay silent.
            rng: Source of priority and remaining-time draws.
            clock: Returns the current time in seconds.
            reap_timeout: Upper bound on each reap wait.

        """
        self._pool = pool
        self._registry = registry
        self._backend = backend
        self._logger = logger
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock
        self._reap_timeout = reap_timeout

    @property
    def pool(self) -> ResourcePool:
        """Return the resource pool."""
        return self._pool

    @property
    def registry(self) -> TaskRegistry:
        """Return the run queue."""
        return self._registry

    @property
    def backend(self) -> ExecutionBackend:
        """Return the execution backend."""
        return self._backend

    # -- Admission --------------------------------------------------------

    def admit(self, name: str, ram: int, hdd: int, cpu: int, *, detach: bool = False) -> Task:
        """Reserve resources and register a new task.

        Args:
            name: Application name.
            ram: Memory in MB.
            hdd: Storage in MB.
            cpu: Cores.
            detach: Also spawn a detached execution through the backend.

        Returns:
            The registered task.

        Raises:
            InsufficientResourcesError: If the footprint does not fit.
            CapacityExceededError: If the registry is full.
            SpawnFailedError: If the detached execution could not start.

        """
        footprint = Footprint(ram=ram, hdd=hdd, cpu=cpu)
        if not self._pool.try_reserve(ram, hdd, cpu):
            self._log(LogLevel.WARNING, f"Denied {name}: not enough resources for {footprint}")
            msg = f"Not enough resources to start {name} ({footprint})"
            raise InsufficientResourcesError(msg)

        # Held until the handle is attached, so a background execution that
        # finishes instantly cannot report completion for an unknown handle.
        with self._registry.locked():
            try:
                task = Task(
                    name=name,
                    footprint=footprint,
                    priority=self._rng.randint(MIN_PRIORITY, MAX_PRIORITY),
                    remaining_time=self._rng.randint(MIN_REMAINING_TIME, MAX_REMAINING_TIME),
                    start_time=self._clock(),
                )
                index = self._registry.append(task)
            except ValueError:
                self._pool.release(ram, hdd, cpu)
                raise
            except CapacityExceededError:
                self._pool.release(ram, hdd, cpu)
                self._log(LogLevel.WARNING, f"Denied {name}: task registry is full")
                raise

            if detach:
                try:
                    task.attach(self._backend.spawn(name))
                except (OSError, RuntimeError) as e:
                    self._deregister(index, task)
                    self._log(LogLevel.ERROR, f"Could not spawn {name}: {e}")
                    msg = f"Could not start {name}: {e}"
                    raise SpawnFailedError(msg) from e

        mode = "background" if detach else "foreground"
        self._log(
            LogLevel.INFO,
            f"Admitted {name} (tid {task.tid}, index {index}, {mode},"
            f" priority {task.priority}, remaining {task.remaining_time})",
        )
        return task

    # -- Termination ------------------------------------------------------

    def terminate(self, index: int) -> TaskInfo:
        """Stop the task at *index*, deregister it, and release its resources.

        Returns:
            A snapshot of the task taken just before removal.

        Raises:
            InvalidIndexError: If the index is invalid or the task is not
                running.  Nothing is changed.
            ReapFailedError: If the execution did not stop in time.  The
                task stays registered and its resources stay reserved.

        """
        with self._registry.locked():
            task = self._registry.running_at(index)
            if task.handle is not None:
                self._backend.signal_stop(task.handle)
                try:
                    self._backend.reap(task.handle, timeout=self._reap_timeout)
                except TerminationError as e:
                    self._log(LogLevel.ERROR, f"Could not reap {task.name} (tid {task.tid}): {e}")
                    raise
            info = TaskInfo.of(task, index=index, now=self._clock())
            self._deregister(index, task)
        self._log(LogLevel.INFO, f"Terminated {task.name} (tid {task.tid})")
        return info

    def report_completion(self, handle: ExecutionHandle) -> bool:
        """Handle a detached execution finishing on its own.

        This is the asynchronous event a background execution raises
        when its work is done.  The execution has already stopped, so
        there is nothing to signal or reap.

        Returns:
            True if a task was deregistered, False if it was already gone.

        """
        with self._registry.locked():
            index = self._registry.find_by_handle(handle)
            if index is None:
                return False
            task = self._registry.get(index)
            if not task.is_running:
                return False
            self._deregister(index, task)
        self._log(LogLevel.INFO, f"Completed {task.name} (tid {task.tid})")
        return True

    def collect_exited(self) -> int:
        """Deregister tasks whose executions exited without being stopped.

        Returns:
            How many tasks were deregistered.

        """
        return sum(self.report_completion(h) for h in self._backend.collect_exited())

    def complete(self, task: Task) -> bool:
        """Deregister a foreground task whose program has returned.

        Returns:
            True if the task was deregistered, False if it was already gone.

        """
        with self._registry.locked():
            index = self._registry.index_of(task)
            if index is None or not task.is_running:
                return False
            self._deregister(index, task)
        self._log(LogLevel.DEBUG, f"Finished {task.name} (tid {task.tid})")
        return True

    def _deregister(self, index: int, task: Task) -> None:
        """Remove and release as one step (caller holds the registry lock)."""
        self._registry.remove_at(index)
        task.mark_stopped()
        fp = task.footprint
        self._pool.release(fp.ram, fp.hdd, fp.cpu)

    def shutdown_all(self) -> list[TerminationError]:
        """Terminate every running task, continuing past failures.

        Returns:
            The errors of the terminations that failed, in queue order.

        """
        failures: list[TerminationError] = []
        for task in list(self._registry):
            index = self._registry.index_of(task)
            if index is None or not task.is_running:
                continue
            try:
                self.terminate(index)
            except TerminationError as e:
                failures.append(e)
        if failures:
            self._log(LogLevel.WARNING, f"Shutdown left {len(failures)} task(s) unreaped")
        return failures

    # -- Display flags ----------------------------------------------------

    def minimize(self, index: int) -> TaskInfo:
        """Set the minimized flag of the task at *index*.

        Raises:
            InvalidIndexError: If the index is invalid or the task is not running.

        """
        with self._registry.locked():
            task = self._registry.running_at(index)
            task.minimize()
            return TaskInfo.of(task, index=index, now=self._clock())

    def restore(self, index: int) -> TaskInfo:
        """Clear the minimized flag of the task at *index*.

        Raises:
            InvalidIndexError: If the index is invalid or the task is not running.

        """
        with self._registry.locked():
            task = self._registry.running_at(index)
            task.restore()
            return TaskInfo.of(task, index=index, now=self._clock())

    # -- Snapshots --------------------------------------------------------

    def tasks(self) -> list[TaskInfo]:
        """Return a snapshot of the run queue."""
        return self._registry.snapshot(now=self._clock())

    def resources(self) -> PoolSnapshot:
        """Return a snapshot of the resource pool."""
        return self._pool.snapshot()

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="lifecycle")
