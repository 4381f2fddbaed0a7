"""Flask application factory for the PyFS HTTP console.

The ``create_app`` function wraps a storage engine in a command
dispatcher and returns a Flask app with two endpoints:

- ``POST /api/execute`` — run one protocol line and return JSON.
- ``GET /api/status`` — return the file list and free-space summary.

The app shares the engine (and therefore its lock) with any TCP
server running in the same process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import Flask, Response, jsonify, request

from py_fs.server.protocol import CommandDispatcher

if TYPE_CHECKING:
    from py_fs.fs.engine import StorageEngine
    from py_fs.logging import Logger

_HTTP_BAD_REQUEST = 400


def create_app(engine: StorageEngine, *, logger: Logger | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        engine: The storage engine to expose.
        logger: Optional logger for failed commands.

    Returns:
        A configured Flask application ready to serve.

    """
    dispatcher = CommandDispatcher(engine=engine, logger=logger)

    app = Flask(__name__)

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Run one protocol command and return its reply.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output`` (the reply line) and ``ok`` fields.

        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("command"), str):
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST

        reply = dispatcher.execute(data["command"])
        return jsonify({"output": str(reply), "ok": reply.ok})

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the file list and capacity summary."""
        usage = engine.usage()
        geometry = engine.geometry
        return jsonify(
            {
                "files": list(usage.files),
                "free_blocks": usage.free_blocks,
                "max_files": geometry.max_files,
                "max_blocks": geometry.max_blocks,
                "block_size": geometry.block_size,
            }
        )

    return app
