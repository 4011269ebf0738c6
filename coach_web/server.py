"""Read-only web mirror of the coach state bus (JSON + Socket.IO)."""
from __future__ import annotations

import logging
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, send_file
from flask_socketio import SocketIO, emit

from coach_agent.state_bus import CoachSnapshot, StateBus
from coach_os.overlay import ImageOverlaySurface

log = logging.getLogger(__name__)


def snapshot_payload(snapshot: CoachSnapshot) -> Dict[str, Any]:
    phase = snapshot.phase
    return {
        "phase": phase.kind.value,
        "detail": phase.detail,
        "message": phase.message,
        "hint": snapshot.hint,
        "running": snapshot.running,
    }


def create_app(
    bus: StateBus,
    overlay_surface: Optional[ImageOverlaySurface] = None,
) -> Tuple[Flask, SocketIO]:
    """Build the Flask app and Socket.IO server; every bus write is pushed as `update`."""

    app = Flask(__name__)
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")

    @app.route("/api/state")
    def get_state():
        return jsonify(snapshot_payload(bus.snapshot()))

    @app.route("/api/overlay.png")
    def get_overlay():
        if overlay_surface is None:
            return jsonify({"error": "No overlay surface available."}), 404
        image = overlay_surface.snapshot()
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        image.close()
        buffer.seek(0)
        return send_file(buffer, mimetype="image/png")

    @socketio.on("connect")
    def handle_connect():
        log.debug("Web client connected")
        emit("update", snapshot_payload(bus.snapshot()))

    def broadcast(snapshot: CoachSnapshot) -> None:
        socketio.emit("update", snapshot_payload(snapshot))

    app.extensions["coach_unsubscribe"] = bus.subscribe(broadcast)
    return app, socketio


def run_app(app: Flask, socketio: SocketIO, host: str = "127.0.0.1", port: int = 5000) -> None:
    """Serve the mirror; blocks until the server stops."""

    log.info("Serving coach status on http://%s:%d", host, port)
    socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True)


__all__ = ["create_app", "run_app", "snapshot_payload"]
