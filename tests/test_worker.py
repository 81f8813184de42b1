"""Tests for the background worker entry point."""

import signal
import time
from threading import Thread
from unittest.mock import patch

from py_tasksim import worker


class TestWorker:
    """Verify the worker's argument handling and exit."""

    def test_duration_exits_on_its_own(self) -> None:
        """With --duration the worker finishes without a signal."""
        with patch("py_tasksim.worker.signal.signal"):
            assert worker.main(["Notepad", "--duration", "0.2"]) == 0

    def test_signal_handlers_installed(self) -> None:
        """SIGTERM and SIGINT are both handled."""
        with patch("py_tasksim.worker.signal.signal") as install:
            worker.main(["Notepad", "--duration", "0.1"])
        installed = {call.args[0] for call in install.call_args_list}
        assert installed == {signal.SIGTERM, signal.SIGINT}

    def test_sigterm_stops_worker(self) -> None:
        """Without a duration, the worker runs until its handler fires."""
        handlers: dict[int, object] = {}

        def fire() -> None:
            while signal.SIGTERM not in handlers:
                time.sleep(0.01)
            handler = handlers[signal.SIGTERM]
            handler(signal.SIGTERM, None)  # type: ignore[operator]

        Thread(target=fire, daemon=True).start()
        with patch(
            "py_tasksim.worker.signal.signal",
            side_effect=lambda signum, handler: handlers.__setitem__(signum, handler),
        ):
            assert worker.main(["Notepad"]) == 0
