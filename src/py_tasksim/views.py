"""Text views over task and pool snapshots.

Every function here is pure: it takes immutable snapshots and returns
a string.  The shell, the kernel-mode applications, and the web UI all
render through these, so the screens look the same everywhere.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from py_tasksim.scheduler import PolicyName

if TYPE_CHECKING:
    from py_tasksim.resources import PoolSnapshot
    from py_tasksim.tasks import TaskInfo

_RULE = "-" * 60
_SHORT_RULE = "-" * 38
_BANNER = "=" * 38
_NO_TASKS = "No tasks are currently running."


def _title(text: str) -> list[str]:
    return [_BANNER, f"{text:^38}".rstrip(), _BANNER]


def format_task_table(tasks: list[TaskInfo]) -> str:
    """Render the running-task table with elapsed times."""
    lines = _title("RUNNING TASKS")
    running = [t for t in tasks if t.is_running]
    if not running:
        lines.append(_NO_TASKS)
        return "\n".join(lines)
    lines.append(
        f"{'ID':<5} {'Name':<20} {'RAM(MB)':<10} {'HDD(MB)':<10} {'CPU':<10}"
        f" {'Status':<10} Running Time"
    )
    lines.append(_RULE)
    lines.extend(
        f"{t.index:<5} {t.name:<20} {t.ram_usage:<10} {t.hdd_usage:<10} {t.cpu_usage:<10}"
        f" {t.status:<10} {t.elapsed:.0f} seconds"
        for t in running
    )
    return "\n".join(lines)


def format_end_task_list(tasks: list[TaskInfo]) -> str:
    """Render the short ``index. name (PID: n)`` list used by ``end``."""
    if not tasks:
        return _NO_TASKS
    lines = ["Running Tasks:", _SHORT_RULE]
    lines.extend(f"{t.index}. {t.name} (PID: {t.pid if t.pid is not None else '-'})" for t in tasks)
    lines.append(_SHORT_RULE)
    return "\n".join(lines)


def format_schedule_info(tasks: list[TaskInfo], *, policy: PolicyName, quantum: int) -> str:
    """Render the active policy and the queue in dispatch order."""
    lines = _title("CPU Scheduling Information")
    lines.append(f"Current algorithm: {policy.label}")
    if policy is PolicyName.ROUND_ROBIN:
        lines.append(f"Time Quantum: {quantum} units")
    lines.extend(["", "Task Queue:", _SHORT_RULE])
    lines.append(f"{'ID':<5} {'Name':<20} {'Priority':<10} {'Rem Time':<10} Status")
    lines.append(_SHORT_RULE)
    lines.extend(
        f"{t.index:<5} {t.name:<20} {t.priority:<10} {t.remaining_time:<10} {t.status}"
        for t in tasks
    )
    lines.append(_SHORT_RULE)
    return "\n".join(lines)


def format_system_monitor(snapshot: PoolSnapshot) -> str:
    """Render used/total for each resource kind."""
    lines = _title("SYSTEM MONITOR")
    lines.extend(["", "System Resources:", _SHORT_RULE])
    lines.append(
        f"RAM: {snapshot.used_ram}/{snapshot.total_ram} MB ({snapshot.ram_percent:.1f}% used)"
    )
    lines.append(
        f"HDD: {snapshot.used_hdd}/{snapshot.total_hdd} MB ({snapshot.hdd_percent:.1f}% used)"
    )
    lines.append(f"CPU Cores: {snapshot.used_cores}/{snapshot.total_cores} in use")
    lines.append(_SHORT_RULE)
    return "\n".join(lines)


def format_process_manager(tasks: list[TaskInfo]) -> str:
    """Render every registered task with its footprint."""
    lines = _title("PROCESS MANAGER")
    if not tasks:
        lines.append("No processes running.")
        return "\n".join(lines)
    lines.append(
        f"{'ID':<5} {'Name':<20} {'RAM(MB)':<10} {'HDD(MB)':<10} {'CPU':<10} Status"
    )
    lines.append(_RULE)
    lines.extend(
        f"{t.index:<5} {t.name:<20} {t.ram_usage:<10} {t.hdd_usage:<10} {t.cpu_usage:<10}"
        f" {t.status}"
        for t in tasks
    )
    return "\n".join(lines)


def format_memory_view(snapshot: PoolSnapshot, tasks: list[TaskInfo]) -> str:
    """Render the memory map and per-task RAM usage."""
    lines = _title("MEMORY VIEWER")
    lines.extend(["", "Memory Allocation Map:", _SHORT_RULE])
    lines.append(f"Total RAM: {snapshot.total_ram} MB")
    lines.append(f"Used RAM: {snapshot.used_ram} MB")
    lines.append(f"Free RAM: {snapshot.available_ram} MB")
    lines.extend([_SHORT_RULE, "", "Process Memory Usage:", _SHORT_RULE])
    lines.extend(f"{t.name:<20}: {t.ram_usage:4d} MB" for t in tasks)
    lines.append(_SHORT_RULE)
    return "\n".join(lines)


def format_ps(tasks: list[TaskInfo]) -> str:
    """Render one compact line per task, including scheduler fields."""
    lines = [f"{'ID':<4} {'TID':<5} {'PID':<7} {'PRI':<4} {'REM':<4} {'STATUS':<10} NAME"]
    lines.extend(
        f"{t.index:<4} {t.tid:<5} {t.pid if t.pid is not None else '-':<7} {t.priority:<4}"
        f" {t.remaining_time:<4} {t.status:<10} {t.name}"
        for t in tasks
    )
    return "\n".join(lines)
