"""Interactive REPL (Read-Eval-Print Loop) for the task simulator.

The REPL asks for the machine's resource totals, boots a context via
the bootloader, creates a shell, and enters the classic loop:

    1. **Read** — display a prompt and read user input.
    2. **Eval** — pass the command to ``shell.execute()``.
    3. **Print** — display the result.
    4. **Loop** — repeat until the shell returns the exit sentinel.

The helper functions (``build_prompt``, ``format_boot_log``,
``parse_total``) are pure and testable.  ``run()`` is the I/O
entrypoint.
"""

import argparse
import readline
from collections.abc import Callable
from pathlib import Path

from py_tasksim.bootloader import (
    DEFAULT_TOTAL_CORES,
    DEFAULT_TOTAL_HDD,
    DEFAULT_TOTAL_RAM,
    Bootloader,
)
from py_tasksim.completer import Completer
from py_tasksim.context import ContextState, ExecutionMode, SchedulerContext
from py_tasksim.menu import render_menu
from py_tasksim.shell import Shell

_BANNER_WIDTH = 38


def format_boot_log(boot_log: list[str]) -> str:
    """Format the boot log into a displayable banner string.

    Args:
        boot_log: Boot messages from the bootloader and the context.

    Returns:
        A formatted string suitable for printing to the console.

    """
    border = "=" * _BANNER_WIDTH
    header = (
        f"\n  {border}\n            PyTaskSim v0.1.0\n"
        f"     Operating System Task Simulator\n  {border}\n\n"
    )
    body = "\n".join(f"  {msg}" for msg in boot_log)
    footer = "\nSimulator running. Type 'menu' or 'help' for commands, 'exit' to quit.\n"
    return header + body + footer


def build_prompt(context: SchedulerContext) -> str:
    """Build the prompt string showing the current mode.

    Returns:
        ``user@tasksim $ `` or ``kernel@tasksim # ``.

    """
    if context.state is not ContextState.RUNNING:
        return "tasksim $ "
    if context.execution_mode is ExecutionMode.KERNEL:
        return "kernel@tasksim # "
    return "user@tasksim $ "


def parse_total(raw: str, default: int) -> int:
    """Turn one answer to a totals prompt into an integer.

    Blank input means *default*.

    Raises:
        ValueError: If the answer is not an integer.

    """
    raw = raw.strip()
    if not raw:
        return default
    return int(raw)


def ask_totals(read: Callable[[str], str] | None = None) -> tuple[int, int, int]:
    """Prompt for RAM, storage and cores, re-asking on bad input.

    Args:
        read: Prompt-and-read function; defaults to ``input``.

    """
    read = read or input
    totals: list[int] = []
    for prompt, default in (
        ("Enter total RAM (MB)", DEFAULT_TOTAL_RAM),
        ("Enter total Hard Drive space (MB)", DEFAULT_TOTAL_HDD),
        ("Enter number of CPU cores", DEFAULT_TOTAL_CORES),
    ):
        while True:
            try:
                totals.append(parse_total(read(f"{prompt} [{default}]: "), default))
                break
            except ValueError:
                print("Please enter a whole number.")  # noqa: T201
    ram, hdd, cores = totals
    return ram, hdd, cores


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="py-tasksim", description="Operating system task simulator"
    )
    parser.add_argument("--image", type=Path, default=None, help="JSON machine image to boot")
    parser.add_argument(
        "--defaults",
        action="store_true",
        help="use the image's resource totals instead of prompting",
    )
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> None:
    """Boot the simulator and run the interactive REPL.

    This is the main entrypoint.  It handles:
    - Resource prompts (blank input keeps the default).
    - Bootloader chain (POST → image → context boot).
    - Shell creation and tab completion.
    - The read-eval-print loop.
    - Graceful handling of Ctrl+C and Ctrl+D.
    - Clean shutdown.
    """
    options = _parse_args(argv)
    try:
        if options.defaults:
            bootloader = Bootloader(image_path=options.image)
        else:
            ram, hdd, cores = ask_totals()
            bootloader = Bootloader(
                image_path=options.image, total_ram=ram, total_hdd=hdd, total_cores=cores
            )
        context = bootloader.boot()
    except (EOFError, KeyboardInterrupt):
        print("\nBoot cancelled.")  # noqa: T201
        return
    except (RuntimeError, ValueError) as e:
        print(f"Boot failed: {e}")  # noqa: T201
        return

    shell = Shell(context=context)

    # Wire up tab completion via readline.
    completer = Completer(shell)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(format_boot_log(bootloader.boot_log + context.dmesg()))  # noqa: T201
    print(render_menu(context.execution_mode))  # noqa: T201

    try:
        while context.state is ContextState.RUNNING:
            try:
                command = input(build_prompt(context))
            except EOFError:
                # Ctrl+D: graceful exit
                print()  # noqa: T201
                break

            result = shell.execute(command)
            if result == Shell.EXIT_SENTINEL:
                break
            if result:
                print(result)  # noqa: T201

    except KeyboardInterrupt:
        # Ctrl+C: graceful exit
        print("\nInterrupted.")  # noqa: T201

    finally:
        if context.state is ContextState.RUNNING:
            context.shutdown()
        print("System halted.")  # noqa: T201
