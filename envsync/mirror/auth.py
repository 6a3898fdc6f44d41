"""
Git Auth — Scoped SSH credentials for talking to the remote.

With an SSH key configured, git is pointed at a throwaway wrapper script
that runs ssh with that key. The wrapper lives in a temporary directory
that is deleted when the block exits. Nothing is written to os.environ;
the caller passes the yielded variables to the command runner.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)

SSH_BINARY = "/usr/bin/ssh"


@contextmanager
def git_auth(ssh_key: Optional[str]) -> Iterator[Dict[str, str]]:
    """
    Yield the environment additions git needs to authenticate.

    Usage:
        with git_auth(settings.ssh_key) as env:
            runner.run(fetch_cmd, env=env)
    """
    if not ssh_key:
        yield {}
        return

    with tempfile.TemporaryDirectory(prefix="envsync-ssh-") as tmp:
        wrapper = Path(tmp) / "ssh_wrapper.sh"
        wrapper.write_text(
            "#!/bin/sh\n"
            f"exec {SSH_BINARY} -o StrictHostKeyChecking=no "
            f"-i {shlex.quote(ssh_key)} \"$@\"\n",
            encoding="utf-8",
        )
        os.chmod(wrapper, 0o700)
        logger.debug(f"Using SSH wrapper {wrapper}")
        yield {"GIT_SSH": str(wrapper)}
