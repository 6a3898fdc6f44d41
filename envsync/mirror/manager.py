"""
Mirror Manager — Keep the local bare mirror of the remote fresh.

Before every run the mirror is checked and, if anything about it is off,
rebuilt from scratch:

1. The environments root exists
2. The mirror is a bare repository
3. ``origin`` points at the configured URL with a full mirror refspec
4. An authenticated ``fetch --tags --prune`` brings every ref up to date

Pruning matters: refs deleted upstream must vanish from the next snapshot
so their environments get removed.

## Usage

    from envsync.mirror.manager import MirrorManager

    manager = MirrorManager(runner, git_dir, env_dir, repo_url, ssh_key)
    manager.ensure_and_fetch()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..engine.runner import CommandRunner, PathLike, git_command
from ..validation import CommandError, MirrorError
from .auth import git_auth

logger = logging.getLogger(__name__)

REMOTE = "origin"
MIRROR_REFSPEC = "+refs/*:refs/*"


class MirrorManager:
    """Owns the bare mirror at ``git_dir``."""

    def __init__(
        self,
        runner: CommandRunner,
        git_dir: PathLike,
        env_dir: PathLike,
        repo_url: str,
        ssh_key: Optional[str] = None,
    ):
        self.runner = runner
        self.git_dir = Path(git_dir)
        self.env_dir = Path(env_dir)
        self.repo_url = repo_url
        self.ssh_key = ssh_key

    def _git(self, *args: str) -> List[str]:
        return git_command(self.git_dir, *args)

    # ─── Checks ─────────────────────────────────────────────

    def is_configured(self) -> bool:
        """True when the mirror is bare and ``origin`` is set up as expected."""
        if not self.git_dir.is_dir():
            return False

        bare = self.runner.execute(self._git("rev-parse", "--is-bare-repository"))
        if not bare.ok or bare.output.strip() != "true":
            logger.info(f"[mirror] {self.git_dir} is not a bare repository")
            return False

        url = self.runner.execute(self._git("config", "--get", f"remote.{REMOTE}.url"))
        if not url.ok or url.output.strip() != self.repo_url:
            logger.info(f"[mirror] {REMOTE} URL is {url.output.strip()!r}, want {self.repo_url!r}")
            return False

        fetch = self.runner.execute(self._git("config", "--get-all", f"remote.{REMOTE}.fetch"))
        if not fetch.ok or MIRROR_REFSPEC not in fetch.output.split():
            logger.info(f"[mirror] {REMOTE} is missing the {MIRROR_REFSPEC} refspec")
            return False

        return True

    # ─── Setup ──────────────────────────────────────────────

    def initialize(self) -> None:
        """(Re)create the bare mirror and its ``origin`` remote."""
        logger.info(f"[mirror] Initializing {self.git_dir} from {self.repo_url}")
        self.git_dir.mkdir(parents=True, exist_ok=True)
        self.runner.run(self._git("init", "--bare"))

        # Dropping a remote that is not there fails; that is expected
        self.runner.execute(self._git("remote", "remove", REMOTE))
        self.runner.run(self._git("remote", "add", "--mirror=fetch", REMOTE, self.repo_url))

    def fetch(self) -> str:
        with git_auth(self.ssh_key) as env:
            return self.runner.run(self._git("fetch", "--tags", "--prune", REMOTE), env=env)

    def ensure_and_fetch(self) -> None:
        """
        Make the mirror usable and current.

        Raises:
            MirrorError: If the mirror cannot be set up or fetched
        """
        try:
            self.env_dir.mkdir(parents=True, exist_ok=True)
            if not self.is_configured():
                self.initialize()
            logger.info(f"[mirror] Fetching {self.repo_url}")
            self.fetch()
        except (CommandError, OSError) as e:
            raise MirrorError(f"Updating mirror {self.git_dir} failed: {e}") from e

    # ─── Maintenance ────────────────────────────────────────

    def gc(self) -> str:
        """Run ``git gc --auto --prune`` on the mirror."""
        logger.info(f"[mirror] Running gc on {self.git_dir}")
        return self.runner.run(self._git("gc", "--auto", "--prune"))
