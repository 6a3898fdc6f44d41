"""
Environment Store — Deployed environment directories and their sentinels.

Each deployed directory carries two sentinel files written after every
successful checkout:

    .git_ref        the ref name the directory was deployed from
    .git_revision   the revision it was checked out at

Reads never raise: a missing or unreadable sentinel is reported as ``None``
so the reconciler can treat the directory as stale.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .runner import PathLike

logger = logging.getLogger(__name__)

REF_SENTINEL = ".git_ref"
REVISION_SENTINEL = ".git_revision"


@dataclass(frozen=True)
class DeployedEnvironment:
    """What is on disk for one environment directory."""

    directory_name: str
    recorded_ref: Optional[str] = None
    recorded_hash: Optional[str] = None
    last_deployed_at: Optional[datetime] = None


def _read_sentinel(path: Path) -> Optional[str]:
    try:
        value = path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None
    return value or None


class EnvironmentStore:
    """Filesystem view of the environments root."""

    def __init__(self, env_dir: PathLike):
        self.env_dir = Path(env_dir)

    def path_for(self, directory_name: str) -> Path:
        return self.env_dir / directory_name

    def read_revision(self, directory_name: str) -> Optional[str]:
        return _read_sentinel(self.path_for(directory_name) / REVISION_SENTINEL)

    def read_ref(self, directory_name: str) -> Optional[str]:
        return _read_sentinel(self.path_for(directory_name) / REF_SENTINEL)

    def load(self, directory_name: str) -> DeployedEnvironment:
        path = self.path_for(directory_name)
        try:
            mtime = (path / REVISION_SENTINEL).stat().st_mtime
            deployed_at: Optional[datetime] = datetime.fromtimestamp(mtime, timezone.utc)
        except OSError:
            deployed_at = None

        return DeployedEnvironment(
            directory_name=directory_name,
            recorded_ref=self.read_ref(directory_name),
            recorded_hash=self.read_revision(directory_name),
            last_deployed_at=deployed_at,
        )

    def deployed(self) -> Dict[str, DeployedEnvironment]:
        """Every entry under the environments root, in name order."""
        try:
            names = sorted(os.listdir(self.env_dir))
        except FileNotFoundError:
            return {}
        return {name: self.load(name) for name in names}

    def write_sentinels(self, directory_name: str, ref: str, revision: str) -> None:
        """
        Record ``ref`` and ``revision`` for a directory.

        Each file is written to a temp name first and renamed into place.
        """
        path = self.path_for(directory_name)
        for filename, value in ((REVISION_SENTINEL, revision), (REF_SENTINEL, ref)):
            target = path / filename
            temp_path = path / f"{filename}.tmp"
            temp_path.write_text(value, encoding="utf-8")
            os.replace(temp_path, target)

    def remove(self, directory_name: str) -> bool:
        """
        Delete an environment directory (or stray file) if it exists.

        Returns True when something was removed.
        """
        path = self.path_for(directory_name)
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return False
        logger.info(f"Removed {path}")
        return True
