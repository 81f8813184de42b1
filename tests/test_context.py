"""Tests for the scheduler context.

The context owns every core component.  It boots them in order, moves
through SHUTDOWN → BOOTING → RUNNING → SHUTTING_DOWN → SHUTDOWN, and
tears every task down on shutdown.
"""

import sys
import time
from pathlib import Path

import pytest

from py_tasksim.context import ContextState, ExecutionMode, SchedulerContext
from py_tasksim.errors import InvalidConfigError, KernelModeError
from py_tasksim.execution import SimulatedBackend, SubprocessBackend, ThreadBackend
from py_tasksim.scheduler import PolicyName

TEST_RAM = 100
TEST_HDD = 50
TEST_CORES = 4


class _Clock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _context(**kwargs: object) -> SchedulerContext:
    return SchedulerContext(
        total_ram=TEST_RAM,
        total_hdd=TEST_HDD,
        total_cores=TEST_CORES,
        **kwargs,  # type: ignore[arg-type]
    )


def _booted(**kwargs: object) -> SchedulerContext:
    context = _context(**kwargs)
    context.boot()
    return context


class TestContextInitialisation:
    """Verify the state before boot."""

    def test_initial_state_is_shutdown(self) -> None:
        """A new context should start in SHUTDOWN."""
        assert _context().state is ContextState.SHUTDOWN

    def test_no_uptime_before_boot(self) -> None:
        """Uptime should be zero before boot."""
        assert _context().uptime == 0.0

    def test_components_unavailable_before_boot(self) -> None:
        """Accessing the controller before boot is an error."""
        with pytest.raises(RuntimeError, match="not running"):
            _ = _context().controller

    def test_workdir_defaults_to_cwd(self) -> None:
        """Without a workdir the current directory is used."""
        assert _context().workdir == Path.cwd()


class TestContextBoot:
    """Verify the boot sequence."""

    def test_boot_transitions_to_running(self) -> None:
        """Booting should reach RUNNING in USER mode."""
        context = _booted()
        assert context.state is ContextState.RUNNING
        assert context.execution_mode is ExecutionMode.USER

    def test_boot_twice_raises(self) -> None:
        """Booting a running context is an error."""
        context = _booted()
        with pytest.raises(RuntimeError, match="Cannot boot"):
            context.boot()

    def test_dmesg_lists_components_in_order(self) -> None:
        """The boot log should have one line per component."""
        lines = _booted().dmesg()
        assert lines[0] == "[OK] Logger"
        assert lines[1] == "[OK] Resource pool (RAM 100 MB, HDD 50 MB, 4 cores)"
        assert lines[2] == "[OK] Task registry (capacity 50)"
        assert lines[3] == "[OK] Execution backend (SimulatedBackend)"
        assert lines[4] == "[OK] Lifecycle controller"
        assert lines[5] == "[OK] Scheduler (First-Come-First-Serve)"

    def test_negative_total_fails_boot(self) -> None:
        """A negative total should fail and leave the context shut down."""
        context = SchedulerContext(total_ram=-1, total_hdd=1, total_cores=1)
        with pytest.raises(InvalidConfigError):
            context.boot()
        assert context.state is ContextState.SHUTDOWN

    def test_unknown_policy_fails_boot(self) -> None:
        """An unknown policy should fail and leave the context shut down."""
        context = _context(policy="lottery")
        with pytest.raises(ValueError, match="lottery"):
            context.boot()
        assert context.state is ContextState.SHUTDOWN

    def test_boot_with_policy(self) -> None:
        """The initial policy should be active after boot."""
        context = _booted(policy="rr")
        assert context.engine.policy_name is PolicyName.ROUND_ROBIN

    def test_backend_instance_used(self) -> None:
        """A backend instance should be used as-is."""
        backend = SimulatedBackend()
        assert _booted(backend=backend).backend is backend

    def test_thread_backend_wired_to_controller(self) -> None:
        """Natural completions should go to the controller."""
        backend = ThreadBackend()
        context = _booted(backend=backend)
        assert backend.on_complete == context.controller.report_completion

    def test_uptime_follows_clock(self) -> None:
        """Uptime is the clock reading minus the boot time."""
        clock = _Clock()
        context = _booted(clock=clock)
        clock.now += 12.5
        assert context.uptime == pytest.approx(12.5)

    def test_boot_is_logged(self) -> None:
        """Boot completion should be in the audit log."""
        logger = _booted().logger
        assert logger is not None
        assert any(e.message == "Simulator boot complete" for e in logger.entries)

    def test_contexts_do_not_share_state(self) -> None:
        """Two contexts keep separate pools and queues."""
        a, b = _booted(), _booted()
        a.admit("Notepad", 50, 5, 1)
        assert b.tasks() == []
        assert b.resources().available_ram == TEST_RAM


class TestContextShutdown:
    """Verify shutdown."""

    def test_shutdown_terminates_tasks(self) -> None:
        """Every task is terminated and the context returns to SHUTDOWN."""
        backend = SimulatedBackend()
        context = _booted(backend=backend)
        context.admit("Notepad", 50, 5, 1)
        context.admit("Music Player", 40, 20, 1, detach=True)
        assert context.shutdown() == []
        assert context.state is ContextState.SHUTDOWN
        assert backend.live_count == 0

    def test_shutdown_when_not_running_raises(self) -> None:
        """Shutting down a stopped context is an error."""
        with pytest.raises(RuntimeError, match="not running"):
            _context().shutdown()

    def test_reboot(self) -> None:
        """A shut-down context can boot again with an empty queue."""
        context = _booted()
        context.admit("Notepad", 50, 5, 1)
        context.shutdown()
        context.boot()
        assert context.tasks() == []
        assert context.resources().available_ram == TEST_RAM

    def test_operations_after_shutdown_raise(self) -> None:
        """Operations need a running context."""
        context = _booted()
        context.shutdown()
        with pytest.raises(RuntimeError):
            context.admit("Notepad", 50, 5, 1)


class TestExecutionMode:
    """Verify the USER/KERNEL toggle."""

    def test_switch_mode_toggles(self) -> None:
        """switch_mode should alternate between the two modes."""
        context = _booted()
        assert context.switch_mode() is ExecutionMode.KERNEL
        assert context.switch_mode() is ExecutionMode.USER

    def test_require_kernel_mode(self) -> None:
        """Kernel-only operations should be refused in user mode."""
        context = _booted()
        with pytest.raises(KernelModeError, match="kernel mode"):
            context.require_kernel_mode()
        context.switch_mode()
        context.require_kernel_mode()

    def test_shutdown_resets_mode(self) -> None:
        """A rebooted context starts in USER mode."""
        context = _booted()
        context.switch_mode()
        context.shutdown()
        context.boot()
        assert context.execution_mode is ExecutionMode.USER


class TestDelegation:
    """Verify that the context forwards to its components."""

    def test_admit_tick_terminate(self) -> None:
        """The full 100/50/4 scenario through the context."""
        context = _booted(seed=3)
        context.admit("Notepad", 50, 5, 1)
        context.admit("Calculator", 20, 1, 1)
        context.tick()
        info = context.terminate(0)
        assert info.name == "Notepad"
        snap = context.resources()
        assert (snap.available_ram, snap.available_hdd, snap.available_cores) == (80, 49, 3)

    def test_minimize_restore(self) -> None:
        """Display flags are reachable through the context."""
        context = _booted()
        context.admit("Notepad", 50, 5, 1)
        assert context.minimize(0).is_minimized
        assert not context.restore(0).is_minimized

    def test_set_policy(self) -> None:
        """set_policy should return the new policy name."""
        assert _booted().set_policy("priority") is PolicyName.PRIORITY

    def test_tick_collects_exited_children(self) -> None:
        """A child process that exits by itself leaves the queue on a tick."""
        backend = SubprocessBackend(argv_for=lambda _name: [sys.executable, "-c", "pass"])
        context = _booted(backend=backend)
        context.admit("Music Player", 40, 20, 1, detach=True)
        deadline = time.monotonic() + 5.0
        while context.tasks() and time.monotonic() < deadline:
            context.tick()
            time.sleep(0.05)
        assert context.tasks() == []
        assert context.resources().available_ram == TEST_RAM
        assert backend.live_count == 0
