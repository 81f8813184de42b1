"""Execution backends — the process-management collaborator.

The lifecycle controller never starts or stops anything itself.  It
asks an **execution backend** to do four things:

- ``spawn(name)`` — start a detached execution and return a handle.
- ``signal_stop(handle)`` — ask that execution to stop.
- ``reap(handle, timeout=)`` — wait (bounded) until it has actually
  stopped, or raise ``ReapFailedError``.
- ``collect_exited()`` — hand back executions that ended without
  being asked to, so their tasks can be deregistered.

Three backends ship:

- **SimulatedBackend**: pure bookkeeping.  Handles carry ``pid == -1``
  ("not a real OS process") and both signal and reap are no-ops, so a
  simulated background entry can always be closed cleanly.
- **ThreadBackend**: the task's simulated work runs on a daemon thread
  that watches a stop event.  When the work finishes on its own, the
  backend fires an ``on_complete`` callback — the one asynchronous
  lifecycle event the core must tolerate.
- **SubprocessBackend**: a real child process (``subprocess.Popen``).
  Stop is SIGTERM via ``Popen.terminate``; reap is ``Popen.wait`` with
  a timeout.

Design: Strategy pattern again — the controller is written against the
``ExecutionBackend`` protocol and the backend is picked at boot.
"""

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass
from enum import StrEnum
from itertools import count
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING, Protocol

from py_tasksim.errors import ReapFailedError

if TYPE_CHECKING:
    from collections.abc import Callable

SIMULATED_PID = -1
"""PID placeholder for executions that are not real OS processes."""

DEFAULT_REAP_TIMEOUT = 2.0

_handle_counter = count(start=1)


class BackendName(StrEnum):
    """Names accepted by the ``backend`` boot setting."""

    SIMULATED = "simulated"
    THREAD = "thread"
    SUBPROCESS = "subprocess"


@dataclass(frozen=True)
class ExecutionHandle:
    """Opaque reference to one spawned execution.

    Attributes:
        hid: Backend-independent unique id.
        name: The application name the execution was spawned for.
        pid: OS process id, or ``SIMULATED_PID`` for simulated work.

    """

    hid: int
    name: str
    pid: int = SIMULATED_PID

    @property
    def is_os_process(self) -> bool:
        """Return True if the handle names a real OS process."""
        return self.pid != SIMULATED_PID


class ExecutionBackend(Protocol):
    """Interface the lifecycle controller relies on."""

    def spawn(self, name: str) -> ExecutionHandle:
        """Start a detached execution for *name*."""
        ...  # pragma: no cover

    def signal_stop(self, handle: ExecutionHandle) -> None:
        """Ask the execution behind *handle* to stop."""
        ...  # pragma: no cover

    def reap(self, handle: ExecutionHandle, *, timeout: float = DEFAULT_REAP_TIMEOUT) -> None:
        """Wait until the execution has stopped, or raise ``ReapFailedError``."""
        ...  # pragma: no cover

    def collect_exited(self) -> list[ExecutionHandle]:
        """Forget executions that ended on their own and return their handles."""
        ...  # pragma: no cover


def _new_handle(name: str, pid: int = SIMULATED_PID) -> ExecutionHandle:
    return ExecutionHandle(hid=next(_handle_counter), name=name, pid=pid)


class SimulatedBackend:
    """Bookkeeping-only backend: nothing runs, everything is reapable."""

    def __init__(self) -> None:
        """Create a backend with no live entries."""
        self._live: set[int] = set()
        self._lock = Lock()

    @property
    def live_count(self) -> int:
        """Return the number of spawned, not yet reaped entries."""
        with self._lock:
            return len(self._live)

    def spawn(self, name: str) -> ExecutionHandle:
        """Record a simulated background entry."""
        handle = _new_handle(name)
        with self._lock:
            self._live.add(handle.hid)
        return handle

    def signal_stop(self, handle: ExecutionHandle) -> None:
        """Do nothing — there is no execution to signal."""

    def reap(
        self,
        handle: ExecutionHandle,
        *,
        timeout: float = DEFAULT_REAP_TIMEOUT,  # noqa: ARG002
    ) -> None:
        """Forget the entry; a simulated execution is always stopped."""
        with self._lock:
            self._live.discard(handle.hid)

    def collect_exited(self) -> list[ExecutionHandle]:
        """Return nothing; simulated entries never end by themselves."""
        return []


def _idle_until_stopped(_name: str, stop: Event) -> None:
    """Default thread work: stay busy until asked to stop."""
    stop.wait()


@dataclass
class _ThreadEntry:
    thread: Thread
    stop: Event
    done: Event


class ThreadBackend:
    """Run each execution's simulated work on a daemon thread.

    The work callable receives the application name and a stop event;
    well-behaved work returns promptly once the event is set.  A
    naturally completed entry is dropped before ``on_complete`` fires,
    so ``live_count`` only counts work still running or awaiting a reap.
    The ``done`` event is set *before* ``on_complete`` fires, so a reap in
    progress on the main thread is released even while the completion
    callback waits for the registry lock.
    """

    def __init__(
        self,
        *,
        work: Callable[[str, Event], None] | None = None,
        on_complete: Callable[[ExecutionHandle], object] | None = None,
    ) -> None:
        """Create a thread backend.

        Args:
            work: Simulated work, called as ``work(name, stop_event)``.
                Defaults to waiting on the stop event forever.
            on_complete: Called with the handle when work finishes
                without having been asked to stop.

        """
        self._work = work or _idle_until_stopped
        self._on_complete = on_complete
        self._entries: dict[int, _ThreadEntry] = {}
        self._failures: dict[int, BaseException] = {}
        self._lock = Lock()

    @property
    def on_complete(self) -> Callable[[ExecutionHandle], object] | None:
        """Return the natural-completion callback."""
        return self._on_complete

    @on_complete.setter
    def on_complete(self, callback: Callable[[ExecutionHandle], object] | None) -> None:
        """Install the natural-completion callback."""
        self._on_complete = callback

    @property
    def live_count(self) -> int:
        """Return the number of spawned, not yet reaped threads."""
        with self._lock:
            return len(self._entries)

    def failure(self, handle: ExecutionHandle) -> BaseException | None:
        """Return the exception the work raised, if any.

        A failure is kept until the entry is reaped, or until the
        ``on_complete`` callback of a natural completion returns.
        """
        with self._lock:
            return self._failures.get(handle.hid)

    def spawn(self, name: str) -> ExecutionHandle:
        """Start the work for *name* on a new daemon thread.

        Raises:
            RuntimeError: If the thread could not be started.

        """
        handle = _new_handle(name)
        stop = Event()
        done = Event()
        thread = Thread(
            target=self._run,
            args=(handle, stop, done),
            name=f"task-{handle.hid}-{name}",
            daemon=True,
        )
        with self._lock:
            self._entries[handle.hid] = _ThreadEntry(thread=thread, stop=stop, done=done)
        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._entries.pop(handle.hid, None)
            raise
        return handle

    def signal_stop(self, handle: ExecutionHandle) -> None:
        """Set the execution's stop event."""
        with self._lock:
            entry = self._entries.get(handle.hid)
        if entry is not None:
            entry.stop.set()

    def reap(self, handle: ExecutionHandle, *, timeout: float = DEFAULT_REAP_TIMEOUT) -> None:
        """Wait up to *timeout* seconds for the work to finish.

        Raises:
            ReapFailedError: If the work is still running after the wait.

        """
        with self._lock:
            entry = self._entries.get(handle.hid)
        if entry is None:
            return
        if not entry.done.wait(timeout):
            msg = f"Execution {handle.hid} ({handle.name}) did not stop within {timeout}s"
            raise ReapFailedError(msg)
        with self._lock:
            self._entries.pop(handle.hid, None)
            self._failures.pop(handle.hid, None)

    def collect_exited(self) -> list[ExecutionHandle]:
        """Return nothing; finished threads report through ``on_complete``."""
        return []

    def _run(self, handle: ExecutionHandle, stop: Event, done: Event) -> None:
        """Thread body: run the work, then report natural completion."""
        try:
            self._work(handle.name, stop)
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._failures[handle.hid] = exc
        finally:
            done.set()
        if stop.is_set():
            # A terminate is reaping this entry.
            return
        with self._lock:
            self._entries.pop(handle.hid, None)
        try:
            callback = self._on_complete
            if callback is not None:
                callback(handle)
        finally:
            with self._lock:
                self._failures.pop(handle.hid, None)


def default_worker_argv(name: str) -> list[str]:
    """Return the command line that runs the bundled worker for *name*."""
    return [sys.executable, "-m", "py_tasksim.worker", name]


class SubprocessBackend:
    """Run each execution as a real child process.

    A child can also exit by itself (a worker started with
    ``--duration``, or one that crashed).  Nothing signals that, so the
    owner polls ``collect_exited`` and reports those handles as natural
    completions.
    """

    def __init__(self, *, argv_for: Callable[[str], list[str]] | None = None) -> None:
        """Create a subprocess backend.

        Args:
            argv_for: Build the child's command line from the app name.
                Defaults to ``python -m py_tasksim.worker <name>``.

        """
        self._argv_for = argv_for or default_worker_argv
        self._children: dict[int, subprocess.Popen[bytes]] = {}
        self._handles: dict[int, ExecutionHandle] = {}
        self._stopping: set[int] = set()
        self._lock = Lock()

    @property
    def live_count(self) -> int:
        """Return the number of spawned, not yet reaped children."""
        with self._lock:
            return len(self._children)

    def spawn(self, name: str) -> ExecutionHandle:
        """Start a child process.

        Raises:
            OSError: If the process could not be started.

        """
        child = subprocess.Popen(  # noqa: S603
            self._argv_for(name),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        handle = _new_handle(name, pid=child.pid)
        with self._lock:
            self._children[handle.hid] = child
            self._handles[handle.hid] = handle
        return handle

    def signal_stop(self, handle: ExecutionHandle) -> None:
        """Send SIGTERM if the child is still running."""
        with self._lock:
            child = self._children.get(handle.hid)
            if child is not None:
                self._stopping.add(handle.hid)
        if child is not None and child.poll() is None:
            child.terminate()

    def reap(self, handle: ExecutionHandle, *, timeout: float = DEFAULT_REAP_TIMEOUT) -> None:
        """Wait up to *timeout* seconds for the child to exit.

        Raises:
            ReapFailedError: If the child is still alive after the wait.

        """
        with self._lock:
            child = self._children.get(handle.hid)
        if child is None:
            return
        try:
            child.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            msg = f"Process {handle.pid} ({handle.name}) did not exit within {timeout}s"
            raise ReapFailedError(msg) from e
        with self._lock:
            self._forget(handle.hid)

    def collect_exited(self) -> list[ExecutionHandle]:
        """Forget children that exited without being stopped.

        Returns:
            Their handles, in spawn order.

        """
        with self._lock:
            exited = [
                hid
                for hid, child in self._children.items()
                if hid not in self._stopping and child.poll() is not None
            ]
            handles = [self._handles[hid] for hid in exited]
            for hid in exited:
                self._forget(hid)
        return handles

    def _forget(self, hid: int) -> None:
        """Drop every record of *hid* (caller holds the lock)."""
        self._children.pop(hid, None)
        self._handles.pop(hid, None)
        self._stopping.discard(hid)


def create_backend(name: str) -> ExecutionBackend:
    """Build a backend from its boot-setting name.

    Raises:
        ValueError: If *name* is not a known backend.

    """
    match BackendName(name):
        case BackendName.SIMULATED:
            return SimulatedBackend()
        case BackendName.THREAD:
            return ThreadBackend()
        case BackendName.SUBPROCESS:
            return SubprocessBackend()
