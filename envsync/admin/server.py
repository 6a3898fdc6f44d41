"""
Action Server — Flask app exposing the sync actions.

It has no authentication of its own; bind it to localhost or put it
behind something that does.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Flask, jsonify, request

from ..config import load_settings
from ..service import SyncService
from .routes_sync import sync_bp

logger = logging.getLogger(__name__)


def create_app(service: Optional[SyncService] = None) -> Flask:
    """Create the Flask application around ``service`` (built from settings if omitted)."""
    app = Flask(__name__)
    app.config["SYNC_SERVICE"] = service or SyncService(load_settings())

    # ── Register Blueprints ───────────────────────────────────────
    app.register_blueprint(sync_bp, url_prefix="/api/sync")   # /api/sync/*

    # ── Error Handlers ────────────────────────────────────────────

    @app.errorhandler(500)
    def internal_server_error(e):
        """Return JSON for any unhandled 500 so callers never see raw HTML."""
        logger.error(f"Unhandled 500 on {request.method} {request.path}: {e}")
        return jsonify({"status": "Failed", "error": f"Exception: {e}"}), 500

    # ── Request Logging ───────────────────────────────────────────

    @app.before_request
    def log_request_start():
        request._start_time = time.time()

    @app.after_request
    def log_request_end(response):
        duration_ms = 0
        if hasattr(request, "_start_time"):
            duration_ms = int((time.time() - request._start_time) * 1000)

        # Status is polled; keep it out of the INFO stream
        log_fn = logger.debug if request.path.endswith("/status") else logger.info
        log_fn(f"{request.method} {request.path} → {response.status_code} ({duration_ms}ms)")
        return response

    logger.info(f"Action server initialized (repository={app.config['SYNC_SERVICE'].settings.repository})")

    return app


def run_server(
    service: Optional[SyncService] = None,
    host: str = "127.0.0.1",
    port: int = 5050,
    debug: bool = False,
) -> None:
    """
    Run the action server.

    Args:
        service: Sync service to expose (built from settings if omitted)
        host: Bind address (default: localhost only)
        port: Port to run on
        debug: Enable Flask debug mode
    """
    app = create_app(service)
    logger.info(f"Serving sync actions on http://{host}:{port}/api/sync")
    app.run(host=host, port=port, debug=debug, use_reloader=False)
