"""Application catalog — what a user can run, and what it costs.

Every application has a fixed resource footprint (RAM in MB, storage in
MB, CPU cores) and a **program**: a non-interactive callable that takes
its command-line arguments plus an ``AppEnv`` and returns the text to
display.

The shell resolves a name here, asks the lifecycle controller to admit
a task with the app's footprint, and only then runs the program.  The
core never imports this module: the catalog is presentation-side data.

File applications work inside ``AppEnv.workdir`` and refuse paths that
resolve outside it.  Games draw their boards from ``AppEnv.rng`` so a
seeded simulator replays the same game.
"""

from __future__ import annotations

import calendar
import math
import operator
import re
import shutil
import stat
import time
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

from py_tasksim.errors import AppError
from py_tasksim.resources import Footprint
from py_tasksim.views import format_memory_view, format_process_manager, format_system_monitor

if TYPE_CHECKING:
    import random
    from pathlib import Path

    from py_tasksim.resources import PoolSnapshot
    from py_tasksim.tasks import TaskInfo


class AppName(StrEnum):
    """Command-line names of the catalog applications."""

    NOTEPAD = "notepad"
    CALCULATOR = "calculator"
    TIME = "time"
    CALENDAR = "calendar"
    CREATE_FILE = "create-file"
    MOVE_FILE = "move-file"
    COPY_FILE = "copy-file"
    DELETE_FILE = "delete-file"
    FILE_INFO = "file-info"
    MINESWEEPER = "minesweeper"
    MUSIC_PLAYER = "music-player"
    SYSTEM_MONITOR = "system-monitor"
    PROCESS_MANAGER = "process-manager"
    MEMORY_VIEWER = "memory-viewer"
    SNAKE_GAME = "snake-game"
    HELP_SYSTEM = "help-system"

    @property
    def display_name(self) -> str:
        """Return the task name shown in the views (e.g. ``Create File``)."""
        return self.value.replace("-", " ").title()


@dataclass(frozen=True)
class AppEnv:
    """Everything a program may touch.

    Attributes:
        workdir: Root directory for the file applications.
        rng: Source of game boards.
        resources: Returns the current pool snapshot.
        tasks: Returns the current run-queue snapshot.
        now: Returns the wall-clock time.

    """

    workdir: Path
    rng: random.Random
    resources: Callable[[], PoolSnapshot]
    tasks: Callable[[], list[TaskInfo]]
    now: Callable[[], datetime] = datetime.now


Program: TypeAlias = Callable[[list[str], AppEnv], str]


@dataclass(frozen=True)
class AppSpec:
    """One catalog entry."""

    name: AppName
    footprint: Footprint
    program: Program
    description: str
    kernel_only: bool = False


# -- File helpers ---------------------------------------------------------


def _resolve(env: AppEnv, name: str) -> Path:
    """Resolve *name* under the working directory.

    Raises:
        AppError: If the path escapes the working directory.

    """
    root = env.workdir.resolve()
    path = (root / name).resolve()
    if not path.is_relative_to(root):
        msg = f"Path outside the working directory: {name}"
        raise AppError(msg)
    return path


@contextmanager
def _io_errors(action: str) -> Generator[None]:
    """Turn ``OSError`` into ``AppError`` with a short reason."""
    try:
        yield
    except OSError as e:
        msg = f"Cannot {action}: {e.strerror or e}"
        raise AppError(msg) from e


def _require_file(env: AppEnv, name: str) -> Path:
    path = _resolve(env, name)
    if not path.is_file():
        msg = f"File not found: {name}"
        raise AppError(msg)
    return path


def _usage(text: str) -> AppError:
    return AppError(f"Usage: run {text}")


# -- Programs -------------------------------------------------------------


def notepad(args: list[str], env: AppEnv) -> str:
    """Save text to a file, or show the file when no text is given."""
    if not args:
        raise _usage("notepad <file> [text...]")
    if len(args) == 1:
        path = _require_file(env, args[0])
        with _io_errors(f"read {args[0]}"):
            content = path.read_text()
        return content.rstrip("\n") or "(empty file)"

    path = _resolve(env, args[0])
    with _io_errors(f"save {args[0]}"):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(" ".join(args[1:]) + "\n")
    return f"File saved successfully as {args[0]}"


_EXPRESSION = re.compile(r"\s*(-?\d+(?:\.\d+)?)\s*(\S)\s*(-?\d+(?:\.\d+)?)\s*")


def _remainder(a: float, b: float) -> float:
    """Integer remainder with the sign of the dividend."""
    if int(b) == 0:
        raise ZeroDivisionError
    return math.fmod(int(a), int(b))


_OPERATIONS: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": _remainder,
}


def calculator(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Evaluate ``a op b`` for ``+ - * / %``."""
    parsed = _EXPRESSION.fullmatch(" ".join(args))
    if parsed is None:
        raise _usage("calculator <a> <op> <b>")
    operation = _OPERATIONS.get(parsed[2])
    if operation is None:
        msg = "Invalid operator!"
        raise AppError(msg)
    a, b = float(parsed[1]), float(parsed[3])
    if not (math.isfinite(a) and math.isfinite(b)):
        msg = "Invalid number!"
        raise AppError(msg)
    try:
        result = operation(a, b)
    except ZeroDivisionError as e:
        msg = "Division by zero!"
        raise AppError(msg) from e
    return f"Result: {result:.2f}"


def show_time(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Show the current time and date."""
    now = env.now()
    return f"Current time: {now:%H:%M:%S}\nDate: {now:%d/%m/%Y}"


_MONTHS_PER_YEAR = 12


def show_calendar(args: list[str], env: AppEnv) -> str:
    """Show a month grid (this month unless ``[month [year]]`` is given)."""
    today = env.now()
    try:
        month = int(args[0]) if args else today.month
        year = int(args[1]) if len(args) > 1 else today.year
    except ValueError as e:
        raise _usage("calendar [month [year]]") from e
    if not 1 <= month <= _MONTHS_PER_YEAR or year < 1:
        msg = f"Invalid month/year: {month}/{year}"
        raise AppError(msg)
    grid = calendar.TextCalendar(calendar.SUNDAY).formatmonth(year, month)
    return f"{month:02d}/{year}\n{grid.rstrip()}"


def create_file(args: list[str], env: AppEnv) -> str:
    """Create (or truncate) a file, optionally with content."""
    if not args:
        raise _usage("create-file <file> [content...]")
    path = _resolve(env, args[0])
    with _io_errors(f"create {args[0]}"):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(" ".join(args[1:]))
    return f"File created successfully: {args[0]}"


def move_file(args: list[str], env: AppEnv) -> str:
    """Move a file to a new location."""
    if len(args) != 2:  # noqa: PLR2004
        raise _usage("move-file <source> <destination>")
    source = _require_file(env, args[0])
    destination = _resolve(env, args[1])
    with _io_errors(f"move {args[0]}"):
        shutil.move(source, destination)
    return f"File moved successfully from {args[0]} to {args[1]}"


def copy_file(args: list[str], env: AppEnv) -> str:
    """Copy a file to a new location."""
    if len(args) != 2:  # noqa: PLR2004
        raise _usage("copy-file <source> <destination>")
    source = _require_file(env, args[0])
    destination = _resolve(env, args[1])
    with _io_errors(f"copy {args[0]}"):
        shutil.copy2(source, destination)
    return f"File copied successfully from {args[0]} to {args[1]}"


def delete_file(args: list[str], env: AppEnv) -> str:
    """Delete a file."""
    if len(args) != 1:
        raise _usage("delete-file <file>")
    path = _require_file(env, args[0])
    with _io_errors(f"delete {args[0]}"):
        path.unlink()
    return f"File deleted successfully: {args[0]}"


def file_info(args: list[str], env: AppEnv) -> str:
    """Show size, permission bits, and access times of a file."""
    if len(args) != 1:
        raise _usage("file-info <file>")
    path = _require_file(env, args[0])
    with _io_errors(f"stat {args[0]}"):
        st = path.stat()
    return "\n".join(
        [
            f"File Information for: {args[0]}",
            f"Size: {st.st_size} bytes",
            f"Permissions: {stat.S_IMODE(st.st_mode):o}",
            f"Last accessed: {time.ctime(st.st_atime)}",
            f"Last modified: {time.ctime(st.st_mtime)}",
        ]
    )


# -- Minesweeper ----------------------------------------------------------

MINE_BOARD_SIZE = 10
MINE_COUNT = 10


@dataclass
class MineBoard:
    """A square minesweeper board.

    Cells are ``(row, col)`` tuples.  ``reveal`` opens one cell and,
    when it has no neighbouring mines, flood-fills the empty region
    around it.
    """

    size: int
    mines: frozenset[tuple[int, int]]
    revealed: set[tuple[int, int]] = field(default_factory=set)

    @classmethod
    def generate(
        cls, rng: random.Random, *, size: int = MINE_BOARD_SIZE, mines: int = MINE_COUNT
    ) -> MineBoard:
        """Place *mines* mines at distinct random cells."""
        cells = rng.sample(range(size * size), mines)
        return cls(size=size, mines=frozenset(divmod(c, size) for c in cells))

    def neighbours(self, row: int, col: int) -> Iterator[tuple[int, int]]:
        """Yield the in-bounds cells around ``(row, col)``."""
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                r, c = row + dr, col + dc
                if (dr or dc) and 0 <= r < self.size and 0 <= c < self.size:
                    yield r, c

    def count(self, row: int, col: int) -> int:
        """Return the number of mines around ``(row, col)``."""
        return sum(1 for cell in self.neighbours(row, col) if cell in self.mines)

    def reveal(self, row: int, col: int) -> bool:
        """Open a cell; return False if it was a mine."""
        if (row, col) in self.mines:
            self.revealed.add((row, col))
            return False
        stack = [(row, col)]
        while stack:
            cell = stack.pop()
            if cell in self.revealed:
                continue
            self.revealed.add(cell)
            if self.count(*cell) == 0:
                stack.extend(n for n in self.neighbours(*cell) if n not in self.revealed)
        return True

    @property
    def cleared(self) -> bool:
        """Return True once every safe cell is open."""
        return len(self.revealed - self.mines) == self.size * self.size - len(self.mines)

    def render(self, *, show_mines: bool = False) -> str:
        """Draw the board: ``#`` hidden, ``.`` empty, digits, ``*`` mines."""
        lines = ["   " + " ".join(str(c) for c in range(self.size))]
        for r in range(self.size):
            row: list[str] = []
            for c in range(self.size):
                if (r, c) in self.mines and (show_mines or (r, c) in self.revealed):
                    row.append("*")
                elif (r, c) in self.revealed:
                    n = self.count(r, c)
                    row.append(str(n) if n else ".")
                else:
                    row.append("#")
            lines.append(f"{r:<2} " + " ".join(row))
        return "\n".join(lines)


def minesweeper(args: list[str], env: AppEnv) -> str:
    """Deal a board and reveal the ``row col`` pairs given, in order."""
    try:
        coords = [int(a) for a in args]
    except ValueError as e:
        raise _usage("minesweeper [row col]...") from e
    if len(coords) % 2:
        raise _usage("minesweeper [row col]...")

    board = MineBoard.generate(env.rng)
    for row, col in zip(coords[::2], coords[1::2], strict=True):
        if not (0 <= row < board.size and 0 <= col < board.size):
            msg = f"Cell ({row}, {col}) is off the board"
            raise AppError(msg)
        if not board.reveal(row, col):
            return (
                f"{board.render(show_mines=True)}\n"
                f"BOOM! You hit a mine at ({row}, {col}). Game over."
            )
        if board.cleared:
            return f"{board.render()}\nCongratulations! You cleared the board."

    safe = board.size * board.size - len(board.mines)
    return f"{board.render()}\nMines: {len(board.mines)}  Revealed: {len(board.revealed)}/{safe}"


# -- Music player ---------------------------------------------------------

MUSIC_NOTES = 5
BASE_FREQUENCY = 440
FREQUENCY_STEP = 100


def music_player(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Play the five-note tune."""
    lines = ["Playing background music..."]
    lines.extend(
        f"Playing note {i + 1}/{MUSIC_NOTES}... ({BASE_FREQUENCY + i * FREQUENCY_STEP} Hz)"
        for i in range(MUSIC_NOTES)
    )
    lines.append("Music finished playing.")
    return "\n".join(lines)


# -- Snake ----------------------------------------------------------------

SNAKE_WIDTH = 20
SNAKE_HEIGHT = 10

_STEPS: dict[str, tuple[int, int]] = {"w": (0, -1), "a": (-1, 0), "s": (0, 1), "d": (1, 0)}
_OPPOSITE: dict[str, str] = {"w": "s", "s": "w", "a": "d", "d": "a"}


@dataclass
class SnakeGame:
    """One game of snake on a walled board, advanced one move at a time."""

    rng: random.Random
    width: int = SNAKE_WIDTH
    height: int = SNAKE_HEIGHT
    body: list[tuple[int, int]] = field(default_factory=list)
    food: tuple[int, int] = (0, 0)
    direction: str = "d"
    over: bool = False

    def __post_init__(self) -> None:
        """Put the snake in the middle and drop the first food."""
        if not self.body:
            self.body = [(self.width // 2, self.height // 2)]
        self.food = self._place_food()

    @property
    def score(self) -> int:
        """Return how much food has been eaten."""
        return len(self.body) - 1

    def _place_food(self) -> tuple[int, int]:
        return (self.rng.randint(1, self.width - 2), self.rng.randint(1, self.height - 2))

    def step(self, key: str) -> None:
        """Turn (unless reversing) and move one cell."""
        if key in _STEPS and _OPPOSITE[key] != self.direction:
            self.direction = key
        dx, dy = _STEPS[self.direction]
        x, y = self.body[0]
        head = (x + dx, y + dy)
        self.body.insert(0, head)
        if head == self.food:
            self.food = self._place_food()
        else:
            self.body.pop()
        hx, hy = head
        hit_wall = not (0 < hx < self.width - 1 and 0 < hy < self.height - 1)
        if hit_wall or head in self.body[1:]:
            self.over = True

    def render(self) -> str:
        """Draw walls ``#``, food ``F`` and the snake ``O``."""
        snake = set(self.body)
        lines: list[str] = []
        for y in range(self.height):
            row: list[str] = []
            for x in range(self.width):
                if y in (0, self.height - 1) or x in (0, self.width - 1):
                    row.append("#")
                elif (x, y) == self.food:
                    row.append("F")
                elif (x, y) in snake:
                    row.append("O")
                else:
                    row.append(" ")
            lines.append("".join(row))
        return "\n".join(lines)


def snake_game(args: list[str], env: AppEnv) -> str:
    """Play a string of ``wasd`` moves (``q`` quits early)."""
    moves = "".join(args).lower()
    unknown = set(moves) - set(_STEPS) - {"q"}
    if unknown:
        raise _usage("snake-game [wasdq...]")

    game = SnakeGame(rng=env.rng)
    for key in moves:
        if key == "q" or game.over:
            break
        game.step(key)
    lines = [game.render(), f"Score: {game.score}"]
    if game.over:
        lines.append(f"Game Over! Your score: {game.score}")
    return "\n".join(lines)


# -- Kernel views ---------------------------------------------------------


def system_monitor(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Show pool usage."""
    return format_system_monitor(env.resources())


def process_manager(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Show every registered task."""
    return format_process_manager(env.tasks())


def memory_viewer(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """Show the memory map."""
    return format_memory_view(env.resources(), env.tasks())


def help_system(args: list[str], env: AppEnv) -> str:  # noqa: ARG001
    """List the applications and what kernel mode adds."""
    lines = ["Available Applications:", "-" * 38]
    lines.extend(
        f"{spec.name:<16} {spec.description}"
        + (" (kernel mode)" if spec.kernel_only else "")
        for spec in CATALOG.values()
    )
    lines.extend(
        [
            "-" * 38,
            "",
            "In Kernel Mode, you can:",
            "- Close running tasks",
            "- Minimize tasks",
            "- Restore minimized tasks",
            "- View scheduling information",
        ]
    )
    return "\n".join(lines)


_KERNEL_APPS: frozenset[AppName] = frozenset(
    {AppName.FILE_INFO, AppName.SYSTEM_MONITOR, AppName.PROCESS_MANAGER, AppName.MEMORY_VIEWER}
)


def _spec(
    name: AppName,
    ram: int,
    hdd: int,
    cpu: int,
    program: Program,
    description: str,
) -> AppSpec:
    return AppSpec(
        name=name,
        footprint=Footprint(ram=ram, hdd=hdd, cpu=cpu),
        program=program,
        description=description,
        kernel_only=name in _KERNEL_APPS,
    )


CATALOG: dict[AppName, AppSpec] = {
    spec.name: spec
    for spec in (
        _spec(AppName.NOTEPAD, 50, 5, 1, notepad, "Simple text editor"),
        _spec(AppName.CALCULATOR, 20, 1, 1, calculator, "Basic arithmetic operations"),
        _spec(AppName.TIME, 10, 1, 1, show_time, "Shows current time and date"),
        _spec(AppName.CALENDAR, 15, 2, 1, show_calendar, "Shows current month calendar"),
        _spec(AppName.CREATE_FILE, 30, 10, 1, create_file, "Creates a new file"),
        _spec(AppName.MOVE_FILE, 40, 10, 1, move_file, "Moves a file to new location"),
        _spec(AppName.COPY_FILE, 40, 10, 1, copy_file, "Copies a file to new location"),
        _spec(AppName.DELETE_FILE, 30, 1, 1, delete_file, "Deletes a file"),
        _spec(AppName.FILE_INFO, 25, 1, 1, file_info, "Shows information about a file"),
        _spec(AppName.MINESWEEPER, 60, 10, 2, minesweeper, "Simple minesweeper game"),
        _spec(AppName.MUSIC_PLAYER, 40, 20, 1, music_player, "Plays simple background music"),
        _spec(AppName.SYSTEM_MONITOR, 50, 5, 2, system_monitor, "Shows system resource usage"),
        _spec(AppName.PROCESS_MANAGER, 45, 5, 2, process_manager, "Shows running processes"),
        _spec(AppName.MEMORY_VIEWER, 35, 5, 1, memory_viewer, "Shows memory allocation"),
        _spec(AppName.SNAKE_GAME, 55, 10, 2, snake_game, "Classic snake game"),
        _spec(AppName.HELP_SYSTEM, 30, 5, 1, help_system, "Shows this help message"),
    )
}


def lookup(name: str) -> AppSpec:
    """Return the catalog entry for *name* (case-insensitive).

    Raises:
        AppError: If no application has that name.

    """
    try:
        return CATALOG[AppName(name.lower())]
    except ValueError as e:
        msg = f"Unknown application: {name}"
        raise AppError(msg) from e
