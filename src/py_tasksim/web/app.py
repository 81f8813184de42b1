"""Flask application factory for the simulator web UI.

The ``create_app`` function boots a context (unless one is passed in),
creates a shell, and returns a Flask app with three endpoints:

- ``GET /`` — render the terminal HTML page with the boot log.
- ``POST /api/execute`` — execute a command and return JSON.
- ``GET /api/status`` — return the pool snapshot and the run queue.
"""

from __future__ import annotations

from dataclasses import asdict

from flask import Flask, Response, jsonify, render_template, request

from py_tasksim.bootloader import Bootloader
from py_tasksim.context import ContextState, SchedulerContext
from py_tasksim.menu import render_menu
from py_tasksim.shell import Shell

_HTTP_BAD_REQUEST = 400


def create_app(context: SchedulerContext | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        context: A running context to serve.  If None, one is booted
            from the default machine image.

    Returns:
        A configured Flask application ready to serve.

    """
    if context is None:
        bootloader = Bootloader()
        context = bootloader.boot()
        boot_lines = bootloader.boot_log + context.dmesg()
    else:
        boot_lines = context.dmesg()
    shell = Shell(context=context)

    boot_log = "\n".join(boot_lines)

    app = Flask(__name__)

    @app.route("/")
    def index() -> str:  # pyright: ignore[reportUnusedFunction]
        """Render the terminal HTML page."""
        return render_template(
            "index.html", boot_log=boot_log, menu=render_menu(context.execution_mode)
        )

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Execute a shell command and return JSON output.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output``, ``mode`` and ``halted`` fields.

        """
        data = request.get_json(silent=True)
        if data is None or "command" not in data:
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST

        if context.state is not ContextState.RUNNING:
            return jsonify({"output": "System halted.", "halted": True})

        command: str = data["command"]
        result = shell.execute(command)

        if result == Shell.EXIT_SENTINEL:
            return jsonify({"output": "System halted.", "halted": True})

        return jsonify(
            {"output": result, "mode": str(context.execution_mode), "halted": False}
        )

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the simulator state for status polling.

        Returns:
            JSON with ``running`` and, while running, ``mode``,
            ``policy``, ``resources`` and ``tasks`` fields.

        """
        if context.state is not ContextState.RUNNING:
            return jsonify({"running": False})
        return jsonify(
            {
                "running": True,
                "mode": str(context.execution_mode),
                "policy": str(context.engine.policy_name),
                "resources": asdict(context.resources()),
                "tasks": [asdict(t) for t in context.tasks()],
            }
        )

    return app


def main() -> None:
    """Run the web UI development server.

    This is the ``py-tasksim-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
