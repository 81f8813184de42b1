"""The shell — command interpreter for the task simulator.

The shell reads a command string, splits it into a command name and
arguments, dispatches to a handler, and returns a string result.

Design choices:
    - **Returns strings, not prints.**  The shell is fully testable; the
      REPL and the web UI decide how to display output.
    - **Command dispatch via a dict.**  Adding a command means writing a
      method and adding one dict entry.
    - **Menu numbers are aliases.**  ``1`` in user mode is ``run
      notepad``; the numbered menu lives in ``py_tasksim.menu``.
    - **One scheduling tick per mutating command.**  After ``run``,
      ``close``, ``minimize``, ``restore``, ``scheduler`` and
      ``schedinfo`` the shell ticks the scheduling engine once.  Reads,
      ``end``, ``mode`` and ``shutdown`` do not tick.
    - **Errors become output.**  Every ``SimulatorError`` is returned
      as an ``Error: ...`` line; the simulator keeps running.
"""

from collections.abc import Callable
from datetime import datetime
from typing import TypeAlias

from py_tasksim.apps import CATALOG, AppEnv, lookup
from py_tasksim.context import ContextState, ExecutionMode, SchedulerContext
from py_tasksim.errors import SimulatorError
from py_tasksim.logging import LogLevel
from py_tasksim.menu import expand_choice, render_menu
from py_tasksim.scheduler import PolicyName, TickResult
from py_tasksim.views import (
    format_end_task_list,
    format_memory_view,
    format_process_manager,
    format_ps,
    format_schedule_info,
    format_system_monitor,
    format_task_table,
)

# Type alias for a command handler: takes a list of args, returns output.
_Handler: TypeAlias = Callable[[list[str]], str]

_TICKING: frozenset[str] = frozenset(
    {"run", "close", "minimize", "restore", "scheduler", "schedinfo"}
)


class Shell:
    """Command interpreter that operates on a booted scheduler context."""

    EXIT_SENTINEL = "__EXIT__"

    def __init__(
        self,
        *,
        context: SchedulerContext,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Create a shell attached to a running context.

        Args:
            context: A booted scheduler context.
            now: Wall clock handed to the applications.

        Raises:
            RuntimeError: If the context is not in the RUNNING state.

        """
        if context.state is not ContextState.RUNNING:
            msg = f"Shell requires a running context (state: {context.state}, not running)"
            raise RuntimeError(msg)

        self._context = context
        self._env = AppEnv(
            workdir=context.workdir,
            rng=context.rng,
            resources=context.resources,
            tasks=context.tasks,
            now=now,
        )

        # Command dispatch table: maps command names to handler methods.
        self._commands: dict[str, _Handler] = {
            "help": self._cmd_help,
            "menu": self._cmd_menu,
            "apps": self._cmd_apps,
            "run": self._cmd_run,
            "tasks": self._cmd_tasks,
            "ps": self._cmd_ps,
            "close": self._cmd_close,
            "end": self._cmd_end,
            "minimize": self._cmd_minimize,
            "restore": self._cmd_restore,
            "scheduler": self._cmd_scheduler,
            "schedinfo": self._cmd_schedinfo,
            "monitor": self._cmd_monitor,
            "memview": self._cmd_memview,
            "procman": self._cmd_procman,
            "mode": self._cmd_mode,
            "log": self._cmd_log,
            "tick": self._cmd_tick,
            "shutdown": self._cmd_shutdown,
            "exit": self._cmd_shutdown,
        }

    @property
    def context(self) -> SchedulerContext:
        """Return the context this shell drives."""
        return self._context

    @property
    def command_names(self) -> list[str]:
        """Return every command name, sorted."""
        return sorted(self._commands)

    @property
    def app_names(self) -> list[str]:
        """Return every application name, sorted."""
        return sorted(CATALOG)

    def execute(self, command: str) -> str:
        """Parse and execute one command line.

        A trailing ``&`` runs the application of a ``run`` command in
        the background.  A leading menu number is expanded to the
        command it stands for in the current mode.

        Args:
            command: The raw command string (e.g. ``run calculator 2 + 3``).

        Returns:
            The command output, an ``Error: ...`` line, or
            ``EXIT_SENTINEL`` after a shutdown.

        """
        if self._context.state is not ContextState.RUNNING:
            return "Error: the simulator is shut down"

        stripped = command.strip()
        background = stripped.endswith("&")
        if background:
            stripped = stripped[:-1].rstrip()

        words = stripped.split()
        if not words:
            return ""
        expanded = expand_choice(self._context.execution_mode, words)
        if expanded is not None:
            words = expanded

        name, args = words[0], words[1:]
        handler = self._commands.get(name)
        if handler is None:
            return f"Unknown command: {name}"
        if background and name != "run":
            return "Error: only 'run' can be started in the background"

        try:
            output = self._run_background(args) if background else handler(args)
        except SimulatorError as e:
            output = f"Error: {e}"

        if name in _TICKING:
            report = self._describe_tick(self._context.tick())
            output = "\n".join(part for part in (output, report) if part)
        return output

    # -- Helpers ----------------------------------------------------------

    @staticmethod
    def _parse_index(args: list[str]) -> int | None:
        """Return the first argument as a task index, or None."""
        if not args:
            return None
        try:
            return int(args[0])
        except ValueError:
            return None

    @staticmethod
    def _describe_tick(result: TickResult) -> str:
        """Describe what a tick did, or return '' if nothing visible happened."""
        if result.evicted is not None:
            return f"Task {result.evicted.name} used up its time quantum and was removed."
        if result.failure is not None:
            return f"Warning: eviction failed: {result.failure}"
        return ""

    # -- Command handlers ------------------------------------------------

    def _cmd_help(self, _args: list[str]) -> str:
        """List available commands."""
        return (
            "Available commands: "
            + ", ".join(self.command_names)
            + "\nType 'menu' to see the numbered menu; a menu number runs that item."
            + "\nAppend '&' to a run command to start the application in the background."
        )

    def _cmd_menu(self, _args: list[str]) -> str:
        """Show the numbered menu for the current mode."""
        return render_menu(self._context.execution_mode)

    def _cmd_apps(self, _args: list[str]) -> str:
        """List the applications and their footprints."""
        lines = [f"{'NAME':<16} {'RAM':>5} {'HDD':>5} {'CPU':>4}  DESCRIPTION"]
        for spec in CATALOG.values():
            fp = spec.footprint
            note = " (kernel mode)" if spec.kernel_only else ""
            lines.append(
                f"{spec.name:<16} {fp.ram:>5} {fp.hdd:>5} {fp.cpu:>4}  {spec.description}{note}"
            )
        return "\n".join(lines)

    def _cmd_run(self, args: list[str]) -> str:
        """Admit an application, run it in the foreground, then finish it."""
        if not args:
            return "Usage: run <app> [args...] [&]"
        spec = lookup(args[0])
        if spec.kernel_only:
            self._context.require_kernel_mode()
        fp = spec.footprint
        task = self._context.admit(spec.name.display_name, fp.ram, fp.hdd, fp.cpu)
        try:
            return spec.program(args[1:], self._env)
        finally:
            self._context.complete(task)

    def _run_background(self, args: list[str]) -> str:
        """Admit an application as a detached background task."""
        if not args:
            return "Usage: run <app> [args...] &"
        spec = lookup(args[0])
        if spec.kernel_only:
            self._context.require_kernel_mode()
        fp = spec.footprint
        task = self._context.admit(spec.name.display_name, fp.ram, fp.hdd, fp.cpu, detach=True)
        index = next((t.index for t in self._context.tasks() if t.tid == task.tid), None)
        where = f"index {index}" if index is not None else "already finished"
        return f"Task started in background: {task.name} ({where}, PID {task.pid})"

    def _cmd_tasks(self, _args: list[str]) -> str:
        """Show the running-task table."""
        return format_task_table(self._context.tasks())

    def _cmd_ps(self, _args: list[str]) -> str:
        """Show every task with its scheduler fields."""
        return format_ps(self._context.tasks())

    def _cmd_close(self, args: list[str]) -> str:
        """Close a task (kernel mode)."""
        self._context.require_kernel_mode()
        index = self._parse_index(args)
        if index is None:
            return "Usage: close <id>"
        info = self._context.terminate(index)
        return f"Task closed successfully! ({info.name})"

    def _cmd_end(self, args: list[str]) -> str:
        """List tasks, or end one immediately."""
        if not args:
            return format_end_task_list(self._context.tasks())
        index = self._parse_index(args)
        if index is None:
            return "Usage: end [id]"
        info = self._context.terminate(index)
        return f"Task ended: {info.name}"

    def _cmd_minimize(self, args: list[str]) -> str:
        """Minimize a task (kernel mode)."""
        self._context.require_kernel_mode()
        index = self._parse_index(args)
        if index is None:
            return "Usage: minimize <id>"
        info = self._context.minimize(index)
        return f"Task minimized successfully! ({info.name})"

    def _cmd_restore(self, args: list[str]) -> str:
        """Restore a minimized task (kernel mode)."""
        self._context.require_kernel_mode()
        index = self._parse_index(args)
        if index is None:
            return "Usage: restore <id>"
        info = self._context.restore(index)
        return f"Task restored successfully! ({info.name})"

    def _cmd_scheduler(self, args: list[str]) -> str:
        """Show or switch the scheduling policy."""
        engine = self._context.engine
        if not args:
            return (
                f"Current algorithm: {engine.policy_name.label}"
                "\nUsage: scheduler fcfs|rr|priority"
            )
        try:
            policy = PolicyName(args[0].lower())
        except ValueError:
            return f"Error: unknown policy '{args[0]}'. Use fcfs, rr, or priority."
        self._context.set_policy(policy)
        return f"Scheduling algorithm changed! Now using {policy.label}"

    def _cmd_schedinfo(self, _args: list[str]) -> str:
        """Show the policy and the queue in dispatch order (kernel mode)."""
        self._context.require_kernel_mode()
        engine = self._context.engine
        return format_schedule_info(
            self._context.tasks(), policy=engine.policy_name, quantum=engine.quantum
        )

    def _cmd_monitor(self, _args: list[str]) -> str:
        """Show resource usage (kernel mode)."""
        self._context.require_kernel_mode()
        return format_system_monitor(self._context.resources())

    def _cmd_memview(self, _args: list[str]) -> str:
        """Show the memory map (kernel mode)."""
        self._context.require_kernel_mode()
        return format_memory_view(self._context.resources(), self._context.tasks())

    def _cmd_procman(self, _args: list[str]) -> str:
        """Show every task and its footprint (kernel mode)."""
        self._context.require_kernel_mode()
        return format_process_manager(self._context.tasks())

    def _cmd_mode(self, _args: list[str]) -> str:
        """Toggle between user and kernel mode."""
        mode = self._context.switch_mode()
        label = "Kernel" if mode is ExecutionMode.KERNEL else "User"
        return f"Switched to {label} Mode"

    def _cmd_log(self, args: list[str]) -> str:
        """Show log entries, optionally at or above a level and limited to the last N."""
        logger = self._context.logger
        if logger is None:
            return "No log entries."
        min_level: LogLevel | None = None
        count: int | None = None
        for arg in args:
            if arg.isdigit():
                count = int(arg)
                continue
            try:
                min_level = LogLevel[arg.upper()]
            except KeyError:
                levels = ", ".join(level.name for level in LogLevel)
                return f"Error: unknown log level '{arg}'. Use one of {levels}."
        entries = logger.filter(min_level=min_level)
        if count is not None:
            entries = entries[-count:] if count else []
        if not entries:
            return "No log entries."
        lines = [str(e) for e in entries]
        if logger.dropped:
            lines.insert(0, f"({logger.dropped} older entries overwritten)")
        return "\n".join(lines)

    def _cmd_tick(self, _args: list[str]) -> str:
        """Run one scheduling tick by hand."""
        result = self._context.tick()
        summary = f"Tick ({result.policy.label}): {result.queue_length} task(s) queued"
        report = self._describe_tick(result)
        return f"{summary}\n{report}" if report else summary

    def _cmd_shutdown(self, _args: list[str]) -> str:
        """Shut the simulator down and signal the REPL to stop."""
        self._context.shutdown()
        return self.EXIT_SENTINEL
