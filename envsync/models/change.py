"""
Change Model — One outcome of a reconciliation pass.

Every action the reconciler or the deployer takes produces a change record,
regardless of success or failure. Callers receive the records in the order
the actions happened; ``describe()`` renders the one-line form used in
replies and on the command line.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

ChangeAction = Literal["deploy", "update", "in_sync", "delete", "remove", "failed"]


class HookResult(BaseModel):
    """Outcome of the post-checkout command."""

    command: str
    ok: bool
    returncode: Optional[int] = None
    output: str = ""


class ChangeRecord(BaseModel):
    """Result of one action against one ref or directory."""

    action: ChangeAction
    ref: Optional[str] = None
    directory: Optional[str] = None
    from_hash: Optional[str] = None
    to_hash: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    linked: bool = False
    hook: Optional[HookResult] = None
    ts_iso: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def ok(self) -> bool:
        return self.action != "failed" and (self.hook is None or self.hook.ok)

    @classmethod
    def removed(cls, directory: str, reason: str, ref: Optional[str] = None,
                from_hash: Optional[str] = None) -> "ChangeRecord":
        return cls(action="remove", directory=directory, ref=ref,
                   from_hash=from_hash, reason=reason)

    @classmethod
    def failed(
        cls,
        error: str,
        ref: Optional[str] = None,
        directory: Optional[str] = None,
        from_hash: Optional[str] = None,
        to_hash: Optional[str] = None,
    ) -> "ChangeRecord":
        return cls(
            action="failed",
            ref=ref,
            directory=directory,
            from_hash=from_hash,
            to_hash=to_hash,
            error=error,
        )

    def describe(self) -> str:
        """Human-readable single line."""
        subject = self.ref or self.directory or "?"
        if self.action == "remove":
            text = f"removed {self.directory}"
            if self.reason:
                text += f" ({self.reason})"
        elif self.action == "delete":
            text = f"deleted {subject} (was {self.from_hash})"
        elif self.action == "in_sync":
            text = f"{subject} in sync at {self.to_hash}"
        elif self.action == "failed":
            text = f"failed {subject} {self.from_hash}..{self.to_hash}: {self.error}"
        else:
            text = f"{self.action} {subject} {self.from_hash}..{self.to_hash}"
            if self.linked:
                text += ", linked environment.conf"
            if self.hook is not None:
                state = "ok" if self.hook.ok else f"failed ({self.hook.returncode})"
                text += f", after checkout {state}"
        return text

    def __str__(self) -> str:
        return self.describe()

    def to_audit(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
