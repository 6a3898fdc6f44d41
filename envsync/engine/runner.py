"""
Command Runner — The only way envsync talks to git or the shell.

The stores, the deployer and the mirror manager depend on this narrow
interface, so tests can substitute a scripted runner and a native git
library could replace it without touching the reconciler.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from ..validation import CommandError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    """Combined output and exit status of one command."""

    argv: List[str]
    output: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """
    Runs external commands with stderr folded into stdout.

    Output is decoded as UTF-8; bytes that do not decode become U+FFFD, so
    odd ref names or hook output never abort the caller.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def execute(
        self,
        argv: Sequence[str],
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """Run ``argv`` and return its result whatever the exit status."""
        argv = [str(a) for a in argv]
        logger.debug(f"$ {' '.join(argv)}")

        full_env: Optional[Dict[str, str]] = None
        if env:
            full_env = {**os.environ, **env}

        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                env=full_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(argv=argv, output=str(e), returncode=127)
        except subprocess.TimeoutExpired as e:
            output = e.output if isinstance(e.output, str) else ""
            return CommandResult(
                argv=argv,
                output=f"{output}timed out after {self.timeout}s",
                returncode=124,
            )

        return CommandResult(argv=argv, output=proc.stdout or "", returncode=proc.returncode)

    def run(
        self,
        argv: Sequence[str],
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Run ``argv`` and return its combined output.

        Raises:
            CommandError: On non-zero exit, carrying the captured output
        """
        result = self.execute(argv, cwd=cwd, env=env)
        if not result.ok:
            raise CommandError(result.argv, result.returncode, result.output)
        return result.output


def git_command(git_dir: PathLike, *args: str, work_tree: Optional[PathLike] = None) -> List[str]:
    """Build a git argv bound to the mirror (and optionally a work tree)."""
    cmd = ["git", f"--git-dir={git_dir}"]
    if work_tree is not None:
        cmd.append(f"--work-tree={work_tree}")
    cmd.extend(args)
    return cmd
