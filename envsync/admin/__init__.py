"""
Action API — HTTP interface to the sync actions.

Usage:
    envsync serve --port 5050

    curl -X POST localhost:5050/api/sync/update_all
    curl -X POST localhost:5050/api/sync/update -d '{"branch": "feature/x"}' \
         -H 'Content-Type: application/json'
"""

from .server import create_app, run_server

__all__ = ["create_app", "run_server"]
