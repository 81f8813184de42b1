"""Concurrency tests for admission, termination and background completion.

Several operator threads admit and terminate tasks while thread-backed
background tasks finish on their own.  Whatever the interleaving, the
pool must end up back at its totals and never leave ``[0, total]``.
"""

import time
from contextlib import suppress
from threading import Event, Thread

from py_tasksim.context import SchedulerContext
from py_tasksim.errors import AdmissionError, TerminationError
from py_tasksim.execution import ThreadBackend

TEST_RAM = 400
TEST_HDD = 200
TEST_CORES = 8
_WORKERS = 6
_STEPS = 40
_DEADLINE = 10.0


def _short_work(_name: str, stop: Event) -> None:
    """Finish after a few milliseconds unless stopped first."""
    stop.wait(0.005)


def _booted() -> SchedulerContext:
    context = SchedulerContext(
        total_ram=TEST_RAM,
        total_hdd=TEST_HDD,
        total_cores=TEST_CORES,
        backend=ThreadBackend(work=_short_work),
        seed=11,
    )
    context.boot()
    return context


def _wait_until_empty(context: SchedulerContext) -> None:
    deadline = time.monotonic() + _DEADLINE
    while context.tasks() and time.monotonic() < deadline:
        time.sleep(0.01)


class TestConcurrentLifecycle:
    """Verify conservation under racing operations."""

    def test_racing_admit_terminate_and_completion(self) -> None:
        """Every reservation is released exactly once."""
        context = _booted()
        errors: list[BaseException] = []

        def operator_loop(worker: int) -> None:
            try:
                for step in range(_STEPS):
                    with suppress(AdmissionError):
                        context.admit(f"W{worker}-{step}", 20, 10, 1, detach=step % 2 == 0)
                    with suppress(TerminationError):
                        context.terminate(0)
                    snap = context.resources()
                    assert 0 <= snap.available_ram <= TEST_RAM
                    assert 0 <= snap.available_cores <= TEST_CORES
            except AssertionError as e:
                errors.append(e)

        threads = [Thread(target=operator_loop, args=(i,)) for i in range(_WORKERS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Foreground leftovers are never completed on their own.
        while context.tasks():
            with suppress(TerminationError):
                context.terminate(0)
        _wait_until_empty(context)

        assert errors == []
        snap = context.resources()
        assert snap.available_ram == TEST_RAM
        assert snap.available_hdd == TEST_HDD
        assert snap.available_cores == TEST_CORES
        context.shutdown()

    def test_background_tasks_complete_on_their_own(self) -> None:
        """Thread-backed tasks deregister themselves when their work ends."""
        context = _booted()
        for i in range(TEST_CORES):
            context.admit(f"BG{i}", 10, 5, 1, detach=True)
        _wait_until_empty(context)
        assert context.tasks() == []
        assert context.resources().available_cores == TEST_CORES
        backend = context.backend
        assert isinstance(backend, ThreadBackend)
        assert backend.live_count == 0
        context.shutdown()

    def test_ticks_race_with_admission(self) -> None:
        """Round-Robin ticks and admissions can interleave safely."""
        context = _booted()
        context.set_policy("rr")
        stop = Event()

        def ticker() -> None:
            while not stop.is_set():
                context.tick()

        thread = Thread(target=ticker)
        thread.start()
        for i in range(100):
            with suppress(AdmissionError):
                context.admit(f"T{i}", 10, 5, 1)
        stop.set()
        thread.join()

        snap = context.resources()
        tasks = context.tasks()
        assert snap.used_ram == sum(t.ram_usage for t in tasks)
        assert snap.used_cores == sum(t.cpu_usage for t in tasks)
        context.shutdown()
