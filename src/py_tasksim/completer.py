"""Context-aware tab completer for the simulator shell.

The completer separates **what to complete** (pure logic, fully
testable) from **how to wire it** (readline integration in the REPL).

The ``complete(text, state)`` method is the readline callback.  It
delegates to ``completions(text, line)`` which looks at the words
already typed and returns the candidate strings.
"""

from __future__ import annotations

import readline
from typing import TYPE_CHECKING

from py_tasksim.logging import LogLevel
from py_tasksim.scheduler import PolicyName

if TYPE_CHECKING:
    from py_tasksim.shell import Shell

# Commands whose argument is a task index.
_INDEX_COMMANDS: frozenset[str] = frozenset(["close", "end", "minimize", "restore"])

# Commands that accept a fixed set of words as their argument.
_SUBCOMMANDS: dict[str, list[str]] = {
    "scheduler": [p.value for p in PolicyName],
    "log": [level.name for level in LogLevel],
}


class Completer:
    """Context-aware tab completer for the simulator shell."""

    def __init__(self, shell: Shell) -> None:
        """Create a completer attached to a shell instance.

        Args:
            shell: The shell whose commands, applications and tasks
                are used to generate completion candidates.

        """
        self._shell = shell

    def complete(self, text: str, state: int) -> str | None:
        """Readline callback — return the *state*-th candidate for *text*.

        Args:
            text: The partial word being completed.
            state: Index into the candidate list (0, 1, 2, …).

        Returns:
            The candidate at *state*, or ``None`` when exhausted.

        """
        line = readline.get_line_buffer()
        candidates = self.completions(text, line)
        if state < len(candidates):
            return candidates[state]
        return None

    def completions(self, text: str, line: str) -> list[str]:
        """Return completion candidates based on context.

        Args:
            text: The partial word under the cursor.
            line: The full input line so far.

        Returns:
            Sorted list of matching candidates.

        """
        words = line.lstrip().split()

        # No words yet, or still typing the first word → command completion
        if not words or (len(words) == 1 and not line.endswith(" ")):
            return self._complete_commands(text)

        # Only the first argument is completed.
        position = len(words) if line.endswith(" ") else len(words) - 1
        if position != 1:
            return []

        cmd = words[0]
        if cmd == "run":
            return self._complete_apps(text)
        if cmd in _SUBCOMMANDS:
            return sorted(sub for sub in _SUBCOMMANDS[cmd] if sub.startswith(text))
        if cmd in _INDEX_COMMANDS:
            return self._complete_indices(text)
        return []

    def _complete_commands(self, text: str) -> list[str]:
        """Complete command names from the shell's dispatch table."""
        return [cmd for cmd in self._shell.command_names if cmd.startswith(text)]

    def _complete_apps(self, text: str) -> list[str]:
        """Complete application names after 'run'."""
        return [name for name in self._shell.app_names if name.startswith(text)]

    def _complete_indices(self, text: str) -> list[str]:
        """Complete the indices of the tasks currently queued."""
        indices = (str(t.index) for t in self._shell.context.tasks())
        return [i for i in indices if i.startswith(text)]
