"""
Admin API — Sync action endpoints.

Blueprint: sync_bp
Prefix: /api/sync

Every action replies ``{"status": "Done", "changes": [...]}``. Bad input
gets a 400, anything that stops the run (lock, mirror) a 500; both carry
``{"status": "Failed", "error": ...}``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from ..service import SyncService, failure_message, reply
from ..validation import EnvSyncError, ValidationError

logger = logging.getLogger(__name__)

sync_bp = Blueprint("sync", __name__)


def _service() -> SyncService:
    return current_app.config["SYNC_SERVICE"]


def _failed(error: str, status: int):
    return jsonify({"status": "Failed", "error": error}), status


@sync_bp.route("/update_all", methods=["POST"])
def api_update_all():
    """Reconcile every ref."""
    data = request.get_json(silent=True) or {}
    bootstrap = data.get("bootstrap", False)
    if not isinstance(bootstrap, bool):
        return _failed("bootstrap: must be a boolean", 400)

    try:
        changes = _service().update_all(bootstrap=bootstrap)
    except EnvSyncError as e:
        logger.error(f"update_all failed: {e}")
        return _failed(failure_message(e), 500)
    return jsonify(reply(changes))


@sync_bp.route("/update", methods=["POST"])
def api_update():
    """Deploy one branch, optionally at a pinned revision."""
    data = request.get_json(silent=True) or {}
    try:
        change = _service().update(data.get("branch"), revision=data.get("revision"))
    except ValidationError as e:
        return _failed(str(e), 400)
    except EnvSyncError as e:
        logger.error(f"update failed: {e}")
        return _failed(failure_message(e), 500)
    return jsonify(reply([change]))


@sync_bp.route("/git_gc", methods=["POST"])
def api_git_gc():
    """Garbage-collect the mirror."""
    try:
        output = _service().gc()
    except EnvSyncError as e:
        logger.error(f"git_gc failed: {e}")
        return _failed(failure_message(e), 500)
    return jsonify({"status": "Done", "output": output})


@sync_bp.route("/status", methods=["GET"])
def api_status():
    """Deployed environments and their recorded revisions."""
    environments = _service().status()
    return jsonify({
        "status": "Done",
        "environments": [
            {
                "directory": env.directory_name,
                "ref": env.recorded_ref,
                "revision": env.recorded_hash,
                "deployed_at": env.last_deployed_at.isoformat() if env.last_deployed_at else None,
            }
            for env in environments
        ],
    })
