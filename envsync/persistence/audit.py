"""
Audit Ledger — Append-only NDJSON record of every run.

Each line is one JSON object (newline-delimited JSON).
Events are never edited, only appended.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

from ..models.change import ChangeRecord


def generate_run_id() -> str:
    """Generate a unique run ID: R-{YYYYMMDD}T{HHMMSS}-{RANDOM}."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    suffix = uuid4().hex[:6].upper()
    return f"R-{ts}-{suffix}"


class AuditWriter:
    """
    Append-only NDJSON audit ledger writer.

    Usage:
        audit = AuditWriter(Path("/var/log/envsync/ledger.ndjson"))
        audit.emit("run_start", run_id="R-123", details={"action": "update_all"})
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        run_id: str,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Emit an audit event.

        Returns:
            Generated event_id
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        entry: Dict[str, Any] = {
            "ts_iso": now,
            "event_id": event_id,
            "run_id": run_id,
            "level": level,
            "type": event_type,
        }
        if details is not None:
            entry["details"] = details

        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

        return event_id

    def emit_run_start(self, run_id: str, action: str, **params: Any) -> str:
        return self.emit("run_start", run_id, details={"action": action, **params})

    def emit_changes(self, run_id: str, changes: Iterable[ChangeRecord]) -> None:
        for change in changes:
            self.emit(
                "change",
                run_id,
                level="error" if change.action == "failed" else "info",
                details=change.to_audit(),
            )

    def emit_run_end(
        self,
        run_id: str,
        action: str,
        duration_ms: int,
        changes: int,
        failures: int,
        error: Optional[str] = None,
    ) -> str:
        details: Dict[str, Any] = {
            "action": action,
            "duration_ms": duration_ms,
            "changes": changes,
            "failures": failures,
        }
        if error is not None:
            details["error"] = error
        return self.emit("run_end", run_id, level="error" if error else "info", details=details)
