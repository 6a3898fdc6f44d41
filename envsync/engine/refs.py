"""
Ref Store — Snapshot of the branches and tags in the local mirror.

One ``RefStore`` is created per run. The first call to ``refs()`` lists the
mirror; later calls in the same run return copies of that listing, so the
hashes seen by one run never change underneath it and nothing carries over
to the next run.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..validation import MirrorError
from .runner import CommandRunner, PathLike, git_command

logger = logging.getLogger(__name__)

# <sha> refs/heads/<name>   or   <sha> refs/tags/<name>[^{}]
REF_LINE = re.compile(r"^([0-9a-fA-F]+)\s+refs/(heads|tags)/(\S+?)(\^\{\})?$")


def parse_show_ref(output: str) -> Dict[str, str]:
    """
    Parse ``git show-ref --dereference`` output into ``{name: sha}``.

    Peeled tag lines replace the tag object with the commit it points at.
    A tag sharing its name with a branch is dropped in favour of the branch.
    Lines that do not look like a branch or tag entry are skipped.
    """
    heads: Dict[str, str] = {}
    tags: Dict[str, Tuple[str, bool]] = {}

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        match = REF_LINE.match(line)
        if not match:
            logger.debug(f"Skipping unrecognised ref line: {line!r}")
            continue

        sha, kind, name, peeled = match.groups()
        if "\ufffd" in name:
            logger.debug(f"Skipping ref that is not valid UTF-8: {line!r}")
            continue
        if kind == "heads":
            heads.setdefault(name, sha)
            continue

        existing = tags.get(name)
        if existing is None or (peeled and not existing[1]):
            tags[name] = (sha, bool(peeled))

    refs = dict(heads)
    for name, (sha, _) in tags.items():
        if name in refs:
            logger.warning(f"Tag {name} has the same name as a branch, using the branch")
            continue
        refs[name] = sha
    return refs


class RefStore:
    """Reads refs and commit metadata from the bare mirror."""

    def __init__(self, runner: CommandRunner, git_dir: PathLike):
        self.runner = runner
        self.git_dir = Path(git_dir)
        self._refs: Optional[Dict[str, str]] = None

    def refs(self) -> Dict[str, str]:
        """Return ``{ref name: sha}``; the caller owns the returned dict."""
        if self._refs is None:
            result = self.runner.execute(
                git_command(self.git_dir, "show-ref", "--dereference")
            )
            if result.ok:
                self._refs = parse_show_ref(result.output)
            elif result.returncode == 1 and not result.output.strip():
                # show-ref exits 1 when the repository has no refs at all
                self._refs = {}
            else:
                # An empty snapshot would tear down every environment
                raise MirrorError(f"Listing refs in {self.git_dir} failed: {result.output.strip()}")
            logger.info(f"Mirror has {len(self._refs)} ref(s)")
        return dict(self._refs)

    def commit_time(self, revision: str) -> datetime:
        """Committer time of ``revision`` in UTC."""
        output = self.runner.run(
            git_command(self.git_dir, "show", "-s", "--format=%ct", revision)
        )
        return datetime.fromtimestamp(int(output.strip().splitlines()[-1]), timezone.utc)
