"""Scheduling engine — reorders the run queue once per user action.

The simulator has no clock.  Each completed menu action triggers one
``tick()``, and the active policy decides what that tick does to the
queue:

- **FCFSPolicy** (First Come, First Served): nothing.  The queue stays
  in arrival order.
- **RoundRobinPolicy**: rotate the queue left by one, so the front task
  moves to the back, then charge that task one quantum (2 units).  A
  task whose budget drops to zero or below is evicted.  Exactly one
  task is charged per tick — a tick models one quantum elapsing.
- **PriorityPolicy**: stable sort by priority, highest first.  Equal
  priorities keep their current relative order.

Design: Strategy pattern
    The engine is the *context*; ``SchedulingPolicy`` is the *strategy*.
    A policy only reorders and nominates an eviction candidate.  The
    eviction itself (stop, reap, release, deregister) is delegated to
    the lifecycle controller through the ``evict`` callable, so there
    is exactly one teardown path in the system.

The whole tick runs under the registry lock: nobody can observe a
half-rotated or half-sorted queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from py_tasksim.errors import TerminationError
from py_tasksim.logging import Logger, LogLevel

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_tasksim.tasks import Task, TaskRegistry
    from py_tasksim.tasks.task import TaskInfo

TIME_QUANTUM = 2


class PolicyName(StrEnum):
    """The three scheduling policies."""

    FCFS = "fcfs"
    ROUND_ROBIN = "rr"
    PRIORITY = "priority"

    @property
    def label(self) -> str:
        """Return the long display name."""
        return _LABELS[self]


_LABELS: dict[PolicyName, str] = {
    PolicyName.FCFS: "First-Come-First-Serve",
    PolicyName.ROUND_ROBIN: "Round Robin",
    PolicyName.PRIORITY: "Priority",
}


class SchedulingPolicy(Protocol):
    """Interface that every scheduling algorithm must satisfy."""

    @property
    def name(self) -> PolicyName:
        """Return the policy's name."""
        ...  # pragma: no cover

    def reorder(self, registry: TaskRegistry) -> Task | None:
        """Reorder the queue in place and return a task to evict, or None."""
        ...  # pragma: no cover


class FCFSPolicy:
    """First Come, First Served — the queue is left in arrival order."""

    @property
    def name(self) -> PolicyName:
        """Return ``PolicyName.FCFS``."""
        return PolicyName.FCFS

    def reorder(self, registry: TaskRegistry) -> Task | None:  # noqa: ARG002
        """Do nothing."""
        return None


class RoundRobinPolicy:
    """Round Robin — rotate, then charge the task that just moved to the back."""

    def __init__(self, *, quantum: int = TIME_QUANTUM) -> None:
        """Create a Round Robin policy.

        Args:
            quantum: Budget charged per tick.

        Raises:
            ValueError: If the quantum is not positive.

        """
        if quantum < 1:
            msg = f"Quantum must be at least 1, got {quantum}"
            raise ValueError(msg)
        self._quantum = quantum

    @property
    def name(self) -> PolicyName:
        """Return ``PolicyName.ROUND_ROBIN``."""
        return PolicyName.ROUND_ROBIN

    @property
    def quantum(self) -> int:
        """Return the time quantum."""
        return self._quantum

    def reorder(self, registry: TaskRegistry) -> Task | None:
        """Rotate left by one and charge the new last task.

        Returns:
            The new last task if its budget is exhausted, else None.

        """
        registry.rotate_left()
        last = registry.last()
        if last is None:
            return None
        if last.consume(self._quantum) <= 0:
            return last
        return None


class PriorityPolicy:
    """Static priority — stable sort, highest priority first."""

    @property
    def name(self) -> PolicyName:
        """Return ``PolicyName.PRIORITY``."""
        return PolicyName.PRIORITY

    def reorder(self, registry: TaskRegistry) -> Task | None:
        """Sort the queue by descending priority."""
        registry.sort_descending_by_priority()
        return None


def make_policy(name: PolicyName | str, *, quantum: int = TIME_QUANTUM) -> SchedulingPolicy:
    """Build a policy object from its name.

    Raises:
        ValueError: If *name* is not a known policy.

    """
    match PolicyName(name):
        case PolicyName.FCFS:
            return FCFSPolicy()
        case PolicyName.ROUND_ROBIN:
            return RoundRobinPolicy(quantum=quantum)
        case PolicyName.PRIORITY:
            return PriorityPolicy()


@dataclass(frozen=True)
class TickResult:
    """What one tick did.

    Attributes:
        policy: The policy that was applied.
        queue_length: Tasks in the queue after the tick.
        evicted: The task removed by quantum exhaustion, if any.
        failure: Why a nominated eviction could not complete, if it failed.

    """

    policy: PolicyName
    queue_length: int
    evicted: TaskInfo | None = None
    failure: str | None = None


class SchedulingEngine:
    """Apply the active policy to the run queue, one tick at a time."""

    def __init__(
        self,
        *,
        registry: TaskRegistry,
        evict: Callable[[int], TaskInfo],
        logger: Logger | None = None,
        policy: PolicyName | str = PolicyName.FCFS,
        quantum: int = TIME_QUANTUM,
    ) -> None:
        """Create an engine.

        Args:
            registry: The run queue to reorder.
            evict: Tear down the task at an index and return its snapshot
                (the lifecycle controller's ``terminate``).
            logger: Audit log, or None to stay silent.
            policy: Initial policy.
            quantum: Round-Robin quantum.

        """
        self._registry = registry
        self._evict = evict
        self._logger = logger
        self._quantum = quantum
        self._policy = make_policy(policy, quantum=quantum)
        self._ticks = 0
        self._evictions = 0

    @property
    def policy(self) -> SchedulingPolicy:
        """Return the active policy object."""
        return self._policy

    @property
    def policy_name(self) -> PolicyName:
        """Return the active policy's name."""
        return self._policy.name

    @property
    def quantum(self) -> int:
        """Return the Round-Robin quantum."""
        return self._quantum

    @property
    def ticks(self) -> int:
        """Return how many non-empty ticks have run."""
        return self._ticks

    @property
    def evictions(self) -> int:
        """Return how many tasks quantum exhaustion has evicted."""
        return self._evictions

    def set_policy(self, name: PolicyName | str) -> PolicyName:
        """Switch policy, effective from the next tick.

        Existing tasks are not touched.

        Raises:
            ValueError: If *name* is not a known policy.

        """
        self._policy = make_policy(name, quantum=self._quantum)
        self._log(LogLevel.INFO, f"Scheduling policy set to {self._policy.name.label}")
        return self._policy.name

    def tick(self) -> TickResult:
        """Apply the active policy once.

        A no-op on an empty queue.  Under Round-Robin, an exhausted task
        is handed to ``evict``; if the teardown fails the task stays
        registered and the reason is reported in ``TickResult.failure``.
        """
        with self._registry.locked():
            name = self._policy.name
            if len(self._registry) == 0:
                return TickResult(policy=name, queue_length=0)
            self._ticks += 1
            candidate = self._policy.reorder(self._registry)
            if candidate is None:
                return TickResult(policy=name, queue_length=len(self._registry))

            index = self._registry.index_of(candidate)
            assert index is not None  # noqa: S101
            try:
                evicted = self._evict(index)
            except TerminationError as e:
                self._log(LogLevel.ERROR, f"Eviction of {candidate.name} failed: {e}")
                return TickResult(policy=name, queue_length=len(self._registry), failure=str(e))

            self._evictions += 1
            self._log(
                LogLevel.INFO, f"Quantum exhausted: evicted {evicted.name} (tid {evicted.tid})"
            )
            return TickResult(policy=name, queue_length=len(self._registry), evicted=evicted)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source="scheduler")
