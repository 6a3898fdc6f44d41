"""
Validation — Error types and input checks shared across envsync.

Errors fall in two groups:

- Fatal for a run: ``LockError``, ``MirrorError`` (and ``ConfigurationError``
  at startup). These propagate to the caller.
- Per item: ``CommandError`` and anything else raised while resolving or
  deploying one ref. The reconciler turns these into failed change records.

## Usage

    from envsync.validation import ValidationError, validate_ref_name

    try:
        validate_ref_name(branch)
    except ValidationError as e:
        print(f"Rejected: {e}")
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Sequence


class EnvSyncError(Exception):
    """Base class for all envsync errors."""


class ValidationError(EnvSyncError):
    """Raised when request input fails validation."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigurationError(EnvSyncError):
    """Raised when configuration is missing or invalid."""
    pass


class CommandError(EnvSyncError):
    """Raised when an external command exits non-zero."""

    def __init__(self, argv: Sequence[str], returncode: int, output: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(f"{' '.join(self.argv)} failed with: {output.strip()}")


class MirrorError(EnvSyncError):
    """Raised when the local mirror cannot be initialized or fetched."""
    pass


class LockError(EnvSyncError):
    """Raised when the run lock file cannot be opened or locked."""
    pass


# Shell metacharacters and whitespace
_UNSAFE = re.compile(r"[`$;&|<>(){}\\'\"\s]")


def validate_ref_name(value: Any, field: str = "branch") -> str:
    """
    Validate a branch or tag name received from a caller.

    Returns the name unchanged.

    Raises:
        ValidationError: If the value is not a safe, well-formed ref name
    """
    if not isinstance(value, str):
        raise ValidationError("must be a string", field=field)
    if not value:
        raise ValidationError("must not be empty", field=field)
    if _UNSAFE.search(value):
        raise ValidationError(f"contains unsafe characters: {value!r}", field=field)
    if value.startswith("-"):
        raise ValidationError(f"must not start with '-': {value!r}", field=field)
    if ".." in value or value.endswith("/") or value.startswith("/"):
        raise ValidationError(f"is not a valid ref name: {value!r}", field=field)
    return value


def validate_revision(value: Any, field: str = "revision") -> Optional[str]:
    """
    Validate an optional revision.

    ``None`` and the empty string both mean "the ref's current revision"
    and come back as ``None``.
    """
    if value is None or value == "":
        return None
    return validate_ref_name(value, field=field)
