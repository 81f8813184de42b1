"""Background worker — the child process behind a subprocess-backed task.

``SubprocessBackend`` runs ``python -m py_tasksim.worker <name>`` for
every background task.  The worker simulates a busy application: it
idles until SIGTERM (or SIGINT) arrives, then exits with status 0.  An
optional ``--duration`` makes it finish on its own, the way a real
program eventually does.
"""

import argparse
import signal
import sys
from threading import Event
from types import FrameType

_POLL_INTERVAL = 0.1


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="py_tasksim.worker")
    parser.add_argument("name", help="application name the worker stands in for")
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="exit on its own after this many seconds",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run until stopped; return the process exit status."""
    options = _parse_args(argv)
    stop = Event()

    def _on_signal(_signum: int, _frame: FrameType | None) -> None:
        stop.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    remaining = options.duration
    while not stop.wait(_POLL_INTERVAL):
        if remaining is not None:
            remaining -= _POLL_INTERVAL
            if remaining <= 0:
                break
    return 0


if __name__ == "__main__":
    sys.exit(main())
