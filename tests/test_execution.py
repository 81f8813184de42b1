"""Tests for the execution backends.

A backend starts detached executions, stops them, and reaps them with a
bounded wait.  The simulated backend is pure bookkeeping; the thread
backend runs work on daemon threads and reports natural completion; the
subprocess backend runs real child processes.
"""

import subprocess
import sys
import time
from threading import Event
from unittest.mock import patch

import pytest

from py_tasksim.errors import ReapFailedError
from py_tasksim.execution import (
    SIMULATED_PID,
    ExecutionHandle,
    SimulatedBackend,
    SubprocessBackend,
    ThreadBackend,
    create_backend,
    default_worker_argv,
)

_WAIT = 5.0
_SHORT = 0.05


def _sleeper(_name: str) -> list[str]:
    """Command line for a child that sleeps until terminated."""
    return [sys.executable, "-c", "import time; time.sleep(30)"]


def _quitter(_name: str) -> list[str]:
    """Command line for a child that exits straight away."""
    return [sys.executable, "-c", "pass"]


def _collect_until_exited(backend: SubprocessBackend) -> list[ExecutionHandle]:
    """Poll collect_exited until something comes back or the wait runs out."""
    deadline = time.monotonic() + _WAIT
    while time.monotonic() < deadline:
        handles = backend.collect_exited()
        if handles:
            return handles
        time.sleep(_SHORT)
    return []


# -- Cycle 1: Simulated backend ---------------------------------------------


class TestSimulatedBackend:
    """Verify the bookkeeping-only backend."""

    def test_spawn_gives_simulated_pid(self) -> None:
        """Simulated handles are not OS processes."""
        handle = SimulatedBackend().spawn("Notepad")
        assert handle.pid == SIMULATED_PID
        assert not handle.is_os_process
        assert handle.name == "Notepad"

    def test_handles_are_unique(self) -> None:
        """Each spawn should get its own handle id."""
        backend = SimulatedBackend()
        assert backend.spawn("A").hid != backend.spawn("A").hid

    def test_nothing_exits_by_itself(self) -> None:
        """Simulated entries never end unasked."""
        backend = SimulatedBackend()
        backend.spawn("A")
        assert backend.collect_exited() == []
        assert backend.live_count == 1

    def test_reap_forgets_entry(self) -> None:
        """Signal and reap always succeed and forget the entry."""
        backend = SimulatedBackend()
        handle = backend.spawn("A")
        assert backend.live_count == 1
        backend.signal_stop(handle)
        backend.reap(handle, timeout=_SHORT)
        assert backend.live_count == 0


# -- Cycle 2: Thread backend ------------------------------------------------


class TestThreadBackend:
    """Verify thread-based executions."""

    def test_natural_completion_fires_callback(self) -> None:
        """Work that returns on its own should report completion."""
        completed: list[ExecutionHandle] = []
        fired = Event()

        def on_complete(handle: ExecutionHandle) -> None:
            completed.append(handle)
            fired.set()

        backend = ThreadBackend(work=lambda _name, _stop: None, on_complete=on_complete)
        handle = backend.spawn("Time")
        assert fired.wait(_WAIT)
        assert completed == [handle]
        assert backend.live_count == 0

    def test_stopped_work_does_not_report(self) -> None:
        """A stop request followed by reap should not fire the callback."""
        completed: list[ExecutionHandle] = []
        backend = ThreadBackend(on_complete=completed.append)
        handle = backend.spawn("Music Player")
        backend.signal_stop(handle)
        backend.reap(handle, timeout=_WAIT)
        assert backend.live_count == 0
        assert completed == []

    def test_reap_timeout(self) -> None:
        """Work that ignores the stop event should fail the reap."""
        gate = Event()
        backend = ThreadBackend(work=lambda _name, _stop: gate.wait())
        handle = backend.spawn("Stubborn")
        backend.signal_stop(handle)
        with pytest.raises(ReapFailedError, match="did not stop"):
            backend.reap(handle, timeout=_SHORT)
        assert backend.live_count == 1
        gate.set()
        backend.reap(handle, timeout=_WAIT)
        assert backend.live_count == 0

    def test_work_failure_recorded(self) -> None:
        """An exception in the work is kept, not propagated."""
        fired = Event()
        seen: list[BaseException | None] = []

        def work(_name: str, _stop: Event) -> None:
            msg = "boom"
            raise RuntimeError(msg)

        def on_complete(handle: ExecutionHandle) -> None:
            seen.append(backend.failure(handle))
            fired.set()

        backend = ThreadBackend(work=work, on_complete=on_complete)
        handle = backend.spawn("Crasher")
        assert fired.wait(_WAIT)
        assert isinstance(seen[0], RuntimeError)
        assert backend.failure(handle) is None
        assert backend.live_count == 0

    def test_on_complete_settable(self) -> None:
        """The callback can be installed after construction."""
        backend = ThreadBackend()
        assert backend.on_complete is None
        backend.on_complete = print
        assert backend.on_complete is print

    def test_reap_unknown_handle(self) -> None:
        """Reaping a handle the backend never saw is a no-op."""
        ThreadBackend().reap(ExecutionHandle(hid=-5, name="ghost"), timeout=_SHORT)


# -- Cycle 3: Subprocess backend --------------------------------------------


class TestSubprocessBackend:
    """Verify real child processes."""

    def test_spawn_stop_reap(self) -> None:
        """A child should get a real PID and exit on SIGTERM."""
        backend = SubprocessBackend(argv_for=_sleeper)
        handle = backend.spawn("Sleeper")
        assert handle.is_os_process
        assert handle.pid > 0
        backend.signal_stop(handle)
        backend.reap(handle, timeout=_WAIT)
        assert backend.live_count == 0

    def test_reap_timeout(self) -> None:
        """A wait that times out should raise ReapFailedError."""
        backend = SubprocessBackend(argv_for=_sleeper)
        handle = backend.spawn("Sleeper")
        backend.signal_stop(handle)
        with (
            patch.object(
                subprocess.Popen,
                "wait",
                side_effect=subprocess.TimeoutExpired(cmd="sleeper", timeout=_SHORT),
            ),
            pytest.raises(ReapFailedError, match="did not exit"),
        ):
            backend.reap(handle, timeout=_SHORT)
        assert backend.live_count == 1
        backend.reap(handle, timeout=_WAIT)
        assert backend.live_count == 0

    def test_child_exiting_by_itself_is_collected(self) -> None:
        """A child that exits unasked is handed back once, then forgotten."""
        backend = SubprocessBackend(argv_for=_quitter)
        handle = backend.spawn("Quitter")
        assert _collect_until_exited(backend) == [handle]
        assert backend.live_count == 0
        assert backend.collect_exited() == []

    def test_stopped_child_is_not_collected(self) -> None:
        """A child that was asked to stop is left for reap."""
        backend = SubprocessBackend(argv_for=_sleeper)
        handle = backend.spawn("Sleeper")
        backend.signal_stop(handle)
        assert backend.collect_exited() == []
        backend.reap(handle, timeout=_WAIT)
        assert backend.live_count == 0

    def test_spawn_failure_is_oserror(self) -> None:
        """A missing executable should surface as OSError."""
        backend = SubprocessBackend(argv_for=lambda _name: ["/nonexistent/tasksim-binary"])
        with pytest.raises(OSError, match="nonexistent"):
            backend.spawn("Ghost")

    def test_default_worker_argv(self) -> None:
        """The default child is the bundled worker module."""
        argv = default_worker_argv("Notepad")
        assert argv[0] == sys.executable
        assert argv[1:] == ["-m", "py_tasksim.worker", "Notepad"]


# -- Cycle 4: Factory -------------------------------------------------------


class TestCreateBackend:
    """Verify backend selection by name."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("simulated", SimulatedBackend),
            ("thread", ThreadBackend),
            ("subprocess", SubprocessBackend),
        ],
    )
    def test_known_names(self, name: str, expected: type) -> None:
        """Each name should build the matching backend."""
        assert isinstance(create_backend(name), expected)

    def test_unknown_name(self) -> None:
        """An unknown backend name should raise ValueError."""
        with pytest.raises(ValueError, match="docker"):
            create_backend("docker")
