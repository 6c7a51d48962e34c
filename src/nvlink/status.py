"""Flask status panel for a running session.

Serves a small JSON API describing the session and its live clients.
Requests are handled on the web server's own thread, so everything here
reads through ``ClientRegistry.snapshot()`` and other thread-safe views.

Example:
    >>> from nvlink.status import create_app, serve
    >>> server = serve(create_app(session), "127.0.0.1", 8765)
    >>> # GET http://127.0.0.1:8765/api/clients
    >>> server.shutdown()
"""

import logging
import threading

from flask import Flask, jsonify
from werkzeug.serving import make_server

log = logging.getLogger(__name__)


def create_app(session) -> Flask:
    """Create the status Flask application for *session*.

    Args:
        session: A SessionController.

    Example:
        >>> app = create_app(session)
        >>> app.name
        'nvlink.status'
    """
    app = Flask(__name__)

    @app.route("/api/session")
    def api_session() -> tuple:
        """Return the session state and host run flags.

        Response JSON:
            {"state": "bound", "port": 56236, "running": false,
             "paused": false, "queued": 0, "clients": 1}
        """
        host = session.host
        return jsonify({
            "state": session.state.value,
            "port": session.port,
            "running": host.is_running(),
            "paused": host.is_paused(),
            "queued": len(session.inbox),
            "clients": len(session.registry),
        }), 200

    @app.route("/api/clients")
    def api_clients() -> tuple:
        """Return the live clients, oldest endpoint first.

        Response JSON:
            [{"host": "127.0.0.1", "port": 40000, "last_seen": 12.5,
              "age": 0.4}, ...]
        """
        now = session.host.time_since_startup()
        return jsonify([
            {
                "host": c.endpoint[0],
                "port": c.endpoint[1],
                "last_seen": round(c.last_seen, 3),
                "age": round(max(0.0, now - c.last_seen), 3),
            }
            for c in session.registry.snapshot()
        ]), 200

    return app


def serve(app: Flask, host: str, port: int):
    """Serve *app* from a daemon thread.

    Returns the werkzeug server; call ``shutdown()`` on it to stop.

    Raises:
        OSError: If the port cannot be bound.
    """
    server = make_server(host, port, app, threaded=True)
    thread = threading.Thread(
        target=server.serve_forever, name="nvlink-status", daemon=True
    )
    thread.start()
    log.info("status panel on http://%s:%d/", host, server.server_port)
    return server
