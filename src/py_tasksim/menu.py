"""Numbered menus for USER and KERNEL mode.

The simulator started life as a numbered menu, and the shell keeps that
interface: typing a menu number runs the command behind it, so ``1``
in user mode is ``run notepad`` and ``5 2`` in kernel mode is
``close 2``.  Words after the number become the command's arguments.

Kernel mode has its own items 1-9; items 10-17 mean the same thing in
both modes.
"""

from __future__ import annotations

from dataclasses import dataclass

from py_tasksim.context import ExecutionMode

_WIDTH = 57
_COLUMN = 24


@dataclass(frozen=True)
class MenuItem:
    """One numbered menu entry and the shell command it stands for."""

    number: int
    label: str
    command: str


_SHARED: tuple[MenuItem, ...] = (
    MenuItem(10, "Minesweeper", "run minesweeper"),
    MenuItem(11, "Music Player", "run music-player"),
    MenuItem(12, "Snake Game", "run snake-game"),
    MenuItem(13, "Help System", "run help-system"),
    MenuItem(14, "Show Tasks", "tasks"),
    MenuItem(15, "End Task Now", "end"),
    MenuItem(16, "Switch Mode", "mode"),
    MenuItem(17, "Shutdown", "shutdown"),
)

USER_MENU: tuple[MenuItem, ...] = (
    MenuItem(1, "Notepad", "run notepad"),
    MenuItem(2, "Calculator", "run calculator"),
    MenuItem(3, "Time", "run time"),
    MenuItem(4, "Calendar", "run calendar"),
    MenuItem(5, "Create File", "run create-file"),
    MenuItem(6, "Move File", "run move-file"),
    MenuItem(7, "Copy File", "run copy-file"),
    MenuItem(8, "Delete File", "run delete-file"),
    MenuItem(9, "Set CPU Scheduling", "scheduler"),
    *_SHARED,
)

KERNEL_MENU: tuple[MenuItem, ...] = (
    MenuItem(1, "Memory Viewer", "run memory-viewer"),
    MenuItem(2, "File Info", "run file-info"),
    MenuItem(3, "Process Manager", "run process-manager"),
    MenuItem(4, "System Monitor", "run system-monitor"),
    MenuItem(5, "Close Task", "close"),
    MenuItem(6, "Minimize Task", "minimize"),
    MenuItem(7, "Restore Task", "restore"),
    MenuItem(8, "Show Scheduling Info", "schedinfo"),
    MenuItem(9, "Switch to User Mode", "mode"),
    *_SHARED,
)


def menu_for(mode: ExecutionMode) -> dict[int, MenuItem]:
    """Return the menu of *mode*, keyed by item number."""
    items = KERNEL_MENU if mode is ExecutionMode.KERNEL else USER_MENU
    return {item.number: item for item in items}


def expand_choice(mode: ExecutionMode, words: list[str]) -> list[str] | None:
    """Translate ``<number> [args...]`` into command words.

    Returns:
        The expanded words, or None if the first word is not a menu
        number in *mode*.

    """
    if not words or not words[0].isdigit():
        return None
    item = menu_for(mode).get(int(words[0]))
    if item is None:
        return None
    return item.command.split() + words[1:]


def render_menu(mode: ExecutionMode) -> str:
    """Draw the menu of *mode* as a boxed text block."""
    border = "+" + "=" * (_WIDTH - 2) + "+"
    lines = [border, "|" + "MAIN MENU".center(_WIDTH - 2) + "|", border]
    if mode is ExecutionMode.USER:
        left, right = USER_MENU[:9], USER_MENU[9:]
        for i, item in enumerate(left):
            cell = f"{item.number:>3}. {item.label}".ljust(_COLUMN)
            other = right[i] if i < len(right) else None
            cell2 = f"{other.number:>3}. {other.label}" if other else ""
            lines.append(f"|{cell}|{cell2.ljust(_WIDTH - _COLUMN - 3)}|")
    else:
        lines.extend(
            f"|{f'{item.number:>3}. {item.label}'.ljust(_WIDTH - 2)}|" for item in KERNEL_MENU[:9]
        )
        lines.append(f"|{'  10-17: same as user mode'.ljust(_WIDTH - 2)}|")
    lines.append("+" + "-" * (_WIDTH - 2) + "+")
    lines.append(f"|{f' Current Mode: {mode.capitalize()}'.ljust(_WIDTH - 2)}|")
    lines.append(border)
    return "\n".join(lines)
