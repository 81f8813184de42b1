"""The scheduler context — one simulator instance, with a lifecycle.

The context owns every core component and wires them together at boot.
It mirrors a kernel's explicit state machine:

    SHUTDOWN  →  BOOTING  →  RUNNING  →  SHUTTING_DOWN  →  SHUTDOWN

Boot sequence (order matters):
    0. Logger — capture events from the start.
    1. Resource pool — admission needs totals.
    2. Task registry — the run queue.
    3. Execution backend — starts and stops detached work.
    4. Lifecycle controller — joins pool, registry and backend.
    5. Scheduling engine — evicts through the controller.

Shutdown terminates every task (best effort) before the state goes
back to SHUTDOWN.  Two contexts never share state: each one builds its
own pool, registry, and random source.
"""

from __future__ import annotations

import random
from enum import StrEnum
from pathlib import Path
from time import monotonic
from typing import TYPE_CHECKING

from py_tasksim.errors import KernelModeError, SimulatorError
from py_tasksim.execution import DEFAULT_REAP_TIMEOUT, ThreadBackend, create_backend
from py_tasksim.lifecycle import TaskLifecycleController
from py_tasksim.logging import Logger, LogLevel
from py_tasksim.resources import ResourcePool
from py_tasksim.scheduler import TIME_QUANTUM, PolicyName, SchedulingEngine
from py_tasksim.tasks import DEFAULT_CAPACITY, TaskRegistry

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_tasksim.errors import TerminationError
    from py_tasksim.execution import ExecutionBackend
    from py_tasksim.resources import PoolSnapshot
    from py_tasksim.scheduler import TickResult
    from py_tasksim.tasks import Task, TaskInfo


class ContextState(StrEnum):
    """Represent the lifecycle phases of a scheduler context."""

    SHUTDOWN = "shutdown"
    BOOTING = "booting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class ExecutionMode(StrEnum):
    """Represent the menu privilege level.

    USER mode runs applications; KERNEL mode can also close, minimize
    and restore tasks and inspect the scheduler.
    """

    USER = "user"
    KERNEL = "kernel"


class SchedulerContext:
    """Own and coordinate the core components of one simulator."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        total_ram: int,
        total_hdd: int,
        total_cores: int,
        policy: PolicyName | str = PolicyName.FCFS,
        capacity: int = DEFAULT_CAPACITY,
        quantum: int = TIME_QUANTUM,
        backend: ExecutionBackend | str = "simulated",
        seed: int | None = None,
        reap_timeout: float = DEFAULT_REAP_TIMEOUT,
        workdir: Path | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Create a context in the SHUTDOWN state.

        Args:
            total_ram: Memory in MB.
            total_hdd: Storage in MB.
            total_cores: CPU cores.
            policy: Scheduling policy active after boot.
            capacity: Maximum number of registered tasks.
            quantum: Round-Robin quantum.
            backend: A backend instance, or its name
                (``simulated``, ``thread``, ``subprocess``).
            seed: Seed for priority, remaining-time and game draws.
            reap_timeout: Upper bound on each reap wait, in seconds.
            workdir: Directory the file applications work in.
                Defaults to the current directory.
            clock: Returns the current time in seconds.

        """
        self._state: ContextState = ContextState.SHUTDOWN
        self._execution_mode: ExecutionMode = ExecutionMode.USER
        self._totals = (total_ram, total_hdd, total_cores)
        self._initial_policy = policy
        self._capacity = capacity
        self._quantum = quantum
        self._backend_spec = backend
        self._seed = seed
        self._reap_timeout = reap_timeout
        self._workdir = workdir or Path.cwd()
        self._clock = clock
        self._boot_time: float | None = None
        self._boot_log: list[str] = []

        self._logger: Logger | None = None
        self._pool: ResourcePool | None = None
        self._registry: TaskRegistry | None = None
        self._backend: ExecutionBackend | None = None
        self._controller: TaskLifecycleController | None = None
        self._engine: SchedulingEngine | None = None
        self._rng: random.Random | None = None

    # -- State ------------------------------------------------------------

    @property
    def state(self) -> ContextState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def execution_mode(self) -> ExecutionMode:
        """Return the current menu mode."""
        return self._execution_mode

    @property
    def uptime(self) -> float:
        """Return seconds since boot, or 0.0 if not running."""
        if self._boot_time is None:
            return 0.0
        return self._clock() - self._boot_time

    @property
    def workdir(self) -> Path:
        """Return the directory the file applications work in."""
        return self._workdir

    @property
    def logger(self) -> Logger | None:
        """Return the audit logger (None before the first boot)."""
        return self._logger

    @property
    def controller(self) -> TaskLifecycleController:
        """Return the lifecycle controller."""
        self._require_running()
        assert self._controller is not None  # noqa: S101
        return self._controller

    @property
    def engine(self) -> SchedulingEngine:
        """Return the scheduling engine."""
        self._require_running()
        assert self._engine is not None  # noqa: S101
        return self._engine

    @property
    def backend(self) -> ExecutionBackend:
        """Return the execution backend."""
        self._require_running()
        assert self._backend is not None  # noqa: S101
        return self._backend

    @property
    def rng(self) -> random.Random:
        """Return the context's random source."""
        self._require_running()
        assert self._rng is not None  # noqa: S101
        return self._rng

    def dmesg(self) -> list[str]:
        """Return the boot log, one line per initialised component."""
        return list(self._boot_log)

    def _require_running(self) -> None:
        """Raise if the context is not in the RUNNING state."""
        if self._state is not ContextState.RUNNING:
            msg = f"Scheduler context is not running (state: {self._state})"
            raise RuntimeError(msg)

    def require_kernel_mode(self) -> None:
        """Raise ``KernelModeError`` unless the context is in KERNEL mode."""
        if self._execution_mode is not ExecutionMode.KERNEL:
            msg = "This operation is only available in kernel mode (use 'mode')"
            raise KernelModeError(msg)

    # -- Lifecycle --------------------------------------------------------

    def boot(self) -> None:
        """Transition SHUTDOWN → RUNNING, building every component.

        Raises:
            RuntimeError: If the context is not shut down.
            InvalidConfigError: If a resource total is negative.
            ValueError: If the policy, backend or quantum is unknown or invalid.

        """
        if self._state is not ContextState.SHUTDOWN:
            msg = f"Cannot boot: context is {self._state}, expected shutdown"
            raise RuntimeError(msg)

        self._state = ContextState.BOOTING
        self._boot_log.clear()
        try:
            self._boot_components()
        except (SimulatorError, ValueError):
            self._state = ContextState.SHUTDOWN
            raise

        self._boot_time = self._clock()
        self._execution_mode = ExecutionMode.USER
        self._state = ContextState.RUNNING
        self._log(LogLevel.INFO, "Simulator boot complete")

    def _boot_components(self) -> None:
        # 0. Logger
        self._logger = Logger()
        self._boot_log.append("[OK] Logger")

        # 1. Resource pool
        ram, hdd, cores = self._totals
        self._pool = ResourcePool(total_ram=ram, total_hdd=hdd, total_cores=cores)
        self._boot_log.append(f"[OK] Resource pool (RAM {ram} MB, HDD {hdd} MB, {cores} cores)")

        # 2. Task registry
        self._registry = TaskRegistry(capacity=self._capacity)
        self._boot_log.append(f"[OK] Task registry (capacity {self._capacity})")

        # 3. Execution backend
        backend = self._backend_spec
        self._backend = create_backend(backend) if isinstance(backend, str) else backend
        self._boot_log.append(f"[OK] Execution backend ({type(self._backend).__name__})")

        # 4. Lifecycle controller
        self._rng = random.Random(self._seed)  # noqa: S311
        self._controller = TaskLifecycleController(
            pool=self._pool,
            registry=self._registry,
            backend=self._backend,
            logger=self._logger,
            rng=self._rng,
            clock=self._clock,
            reap_timeout=self._reap_timeout,
        )
        if isinstance(self._backend, ThreadBackend):
            self._backend.on_complete = self._controller.report_completion
        self._boot_log.append("[OK] Lifecycle controller")

        # 5. Scheduling engine
        self._engine = SchedulingEngine(
            registry=self._registry,
            evict=self._controller.terminate,
            logger=self._logger,
            policy=self._initial_policy,
            quantum=self._quantum,
        )
        self._boot_log.append(f"[OK] Scheduler ({self._engine.policy_name.label})")

    def shutdown(self) -> list[TerminationError]:
        """Transition RUNNING → SHUTDOWN, terminating every task.

        Returns:
            The terminations that failed (their tasks could not be reaped).

        Raises:
            RuntimeError: If the context is not running.

        """
        self._require_running()
        assert self._controller is not None  # noqa: S101

        self._state = ContextState.SHUTTING_DOWN
        failures = self._controller.shutdown_all()
        for failure in failures:
            self._log(LogLevel.ERROR, f"Shutdown could not reap a task: {failure}")

        self._engine = None
        self._controller = None
        self._backend = None
        self._registry = None
        self._pool = None
        self._rng = None
        self._boot_time = None
        self._execution_mode = ExecutionMode.USER
        self._state = ContextState.SHUTDOWN
        self._log(LogLevel.INFO, "Simulator shut down")
        return failures

    # -- Operations -------------------------------------------------------

    def switch_mode(self) -> ExecutionMode:
        """Toggle between USER and KERNEL mode and return the new mode."""
        self._require_running()
        self._execution_mode = (
            ExecutionMode.USER
            if self._execution_mode is ExecutionMode.KERNEL
            else ExecutionMode.KERNEL
        )
        self._log(LogLevel.INFO, f"Switched to {self._execution_mode} mode")
        return self._execution_mode

    def admit(self, name: str, ram: int, hdd: int, cpu: int, *, detach: bool = False) -> Task:
        """Admit a task through the lifecycle controller."""
        return self.controller.admit(name, ram, hdd, cpu, detach=detach)

    def complete(self, task: Task) -> bool:
        """Deregister a foreground task whose program returned."""
        return self.controller.complete(task)

    def terminate(self, index: int) -> TaskInfo:
        """Terminate the task at *index*."""
        return self.controller.terminate(index)

    def minimize(self, index: int) -> TaskInfo:
        """Minimize the task at *index*."""
        return self.controller.minimize(index)

    def restore(self, index: int) -> TaskInfo:
        """Restore the task at *index*."""
        return self.controller.restore(index)

    def set_policy(self, name: PolicyName | str) -> PolicyName:
        """Switch the scheduling policy from the next tick on."""
        return self.engine.set_policy(name)

    def tick(self) -> TickResult:
        """Collect executions that ended by themselves, then run one scheduling tick."""
        self.controller.collect_exited()
        return self.engine.tick()

    def tasks(self) -> list[TaskInfo]:
        """Return a snapshot of the run queue."""
        return self.controller.tasks()

    def resources(self) -> PoolSnapshot:
        """Return a snapshot of the resource pool."""
        return self.controller.resources()

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="context")
