"""Flask application factory for the HappyOS JSON API.

The ``create_app`` function builds a terminal service and returns a
Flask app with these endpoints:

- ``POST /api/execute`` — run ``{"user_id", "username", "command"}`` and
  return the output plus the rendered screen.
- ``GET /api/history/<user_id>`` — return the history block.
- ``DELETE /api/history/<user_id>`` — clear the history.
- ``GET /api/edit/<user_id>?path=...`` — return the staged file content.
- ``POST /api/edit/<user_id>`` — save ``{"username", "path", "content"}``.
- ``POST /api/downloads/<user_id>/poll`` — tick the user's downloads once.

Unlike the REPL, the API never sleeps waiting for downloads; clients
poll instead.
"""

from __future__ import annotations

from typing import Any

from flask import Flask, Response, jsonify, request

from happy_os.config import data_dir
from happy_os.fs.persistence import JsonFileStore, Store
from happy_os.terminal import Terminal

_HTTP_BAD_REQUEST = 400


def _missing(data: dict[str, Any] | None, *fields: str) -> str | None:
    """Return the first of *fields* absent from *data*, or None."""
    if data is None:
        return fields[0]
    for field in fields:
        if field not in data:
            return field
    return None


def create_app(store: Store | None = None, *, terminal: Terminal | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        store: Persistence backend (JSON files in the data dir by default).
        terminal: A prebuilt terminal service, used as is when given.

    Returns:
        A configured Flask application ready to serve.

    """
    service = terminal or Terminal(store or JsonFileStore(data_dir()))

    app = Flask(__name__)

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Run a command line and return JSON output.

        Expects JSON body: ``{"user_id": "...", "username": "...", "command": "..."}``

        Returns:
            JSON with ``output``, ``screen`` and ``downloading`` fields.

        """
        data = request.get_json(silent=True)
        field = _missing(data, "user_id", "command")
        if field is not None:
            return jsonify({"error": f"Missing '{field}' field"}), _HTTP_BAD_REQUEST

        user_id = str(data["user_id"])
        username = str(data.get("username") or user_id)
        output = service.execute(user_id, username, str(data["command"]))
        return jsonify(
            {
                "output": output,
                "screen": service.screen(user_id),
                "downloading": service.has_active_downloads(user_id),
            }
        )

    @app.route("/api/history/<user_id>", methods=["GET"])
    def view_history(user_id: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the user's history block."""
        return jsonify({"screen": service.view_history(user_id)})

    @app.route("/api/history/<user_id>", methods=["DELETE"])
    def clear_history(user_id: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Clear the user's history."""
        return jsonify({"output": service.clear_history(user_id)})

    @app.route("/api/edit/<user_id>", methods=["GET"])
    def staged(user_id: str) -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Return the content an editor should start from."""
        path = request.args.get("path")
        if not path:
            return jsonify({"error": "Missing 'path' parameter"}), _HTTP_BAD_REQUEST
        return jsonify({"path": path, "content": service.staged_content(user_id, path)})

    @app.route("/api/edit/<user_id>", methods=["POST"])
    def edit(user_id: str) -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Save an edited file.

        Expects JSON body: ``{"username": "...", "path": "...", "content": "..."}``
        """
        data = request.get_json(silent=True)
        field = _missing(data, "path", "content")
        if field is not None:
            return jsonify({"error": f"Missing '{field}' field"}), _HTTP_BAD_REQUEST

        username = str(data.get("username") or user_id)
        output = service.edit_file(user_id, username, str(data["path"]), str(data["content"]))
        return jsonify({"output": output, "screen": service.screen(user_id)})

    @app.route("/api/downloads/<user_id>/poll", methods=["POST"])
    def poll_downloads(user_id: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Tick the user's downloads once and report what changed."""
        messages = service.poll_downloads(user_id)
        return jsonify(
            {
                "messages": messages,
                "downloading": service.has_active_downloads(user_id),
            }
        )

    return app


def main() -> None:
    """Run the API development server.

    This is the ``happy-os-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
