"""
Reconciler — Bring environment directories in line with the ref snapshot.

The pass runs in two phases over a working copy of the refs:

Phase 1 walks the existing directories. Each one is either removed
(no sentinels, ignored, renamed, gone upstream, expired), redeployed at the
ref's new revision, or left alone because it is already in sync. Every ref
matched to a directory here is marked as handled.

Phase 2 walks the refs nobody claimed in phase 1 (new branches, or refs
whose old directory was just removed) and deploys them unless a policy says
otherwise.

Kinds of disagreement handled:
- ref exists in the mirror but has no directory → deploy it
- directory records an old revision → redeploy it
- directory records a ref that is gone, ignored or renamed → remove it
- directory or ref older than the expiry window → remove / skip it

One bad item never stops the pass: any exception is turned into a failed
change record and the loop moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from ..models.change import ChangeRecord
from ..policy.evaluator import PolicyEvaluator
from ..policy.models import Pattern
from .deploy import Deployer
from .environments import DeployedEnvironment, EnvironmentStore
from .naming import to_directory_name

logger = logging.getLogger(__name__)


@dataclass
class ResolveResult:
    """Outcome of one reconciliation pass."""

    changes: List[ChangeRecord] = field(default_factory=list)
    # Refs matched to an existing directory in phase 1
    handled: Set[str] = field(default_factory=set)
    # Refs left for phase 2
    remaining: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def failures(self) -> List[ChangeRecord]:
        return [c for c in self.changes if c.action == "failed"]

    def describe(self) -> List[str]:
        return [c.describe() for c in self.changes]


class Reconciler:
    """Two-phase diff between the ref snapshot and the deployed directories."""

    def __init__(
        self,
        deployer: Deployer,
        store: EnvironmentStore,
        evaluator: PolicyEvaluator,
        commit_time: Callable[[str], datetime],
    ):
        self.deployer = deployer
        self.store = store
        self.evaluator = evaluator
        self.commit_time = commit_time

    def resolve(
        self,
        refs: Mapping[str, Optional[str]],
        environments: Mapping[str, DeployedEnvironment],
        ignore_patterns: Optional[Iterable[Pattern]] = None,
    ) -> ResolveResult:
        """
        Reconcile ``environments`` against ``refs``.

        ``refs`` is not modified. ``ignore_patterns`` defaults to the
        policy's normal ignore set; the bootstrap pass widens it.
        """
        ignores = (
            list(ignore_patterns)
            if ignore_patterns is not None
            else list(self.evaluator.policy.ignore_patterns)
        )
        working: Dict[str, Optional[str]] = dict(refs)
        result = ResolveResult()

        logger.info(f"Inspecting environments: {', '.join(environments) or '(none)'}")
        for dir_name, env in environments.items():
            try:
                record = self._resolve_environment(dir_name, env, working, result.handled, ignores)
            except Exception as e:
                logger.exception(f"Resolving {dir_name} failed")
                record = ChangeRecord.failed(
                    str(e),
                    ref=env.recorded_ref,
                    directory=dir_name,
                    from_hash=env.recorded_hash,
                )
            if record is not None:
                result.changes.append(record)

        result.remaining = dict(working)

        logger.info(f"Inspecting remaining refs: {', '.join(working) or '(none)'}")
        for ref, sha in working.items():
            try:
                record = self._resolve_ref(ref, sha, ignores)
            except Exception as e:
                logger.exception(f"Resolving ref {ref} failed")
                record = ChangeRecord.failed(str(e), ref=ref, to_hash=sha)
            if record is not None:
                result.changes.append(record)

        return result

    # ── Phase 1 ──────────────────────────────────────────────────

    def _resolve_environment(
        self,
        dir_name: str,
        env: DeployedEnvironment,
        working: Dict[str, Optional[str]],
        handled: Set[str],
        ignores: List[Pattern],
    ) -> Optional[ChangeRecord]:
        ref, sha = env.recorded_ref, env.recorded_hash

        if ref is None or sha is None:
            return self._remove(dir_name, f"no sentinels, ref: {ref!r} sha: {sha!r}", ref, sha)

        if self.evaluator.is_ignored(dir_name, ref, ignores):
            if not self.evaluator.removes_ignored:
                logger.info(f"Ignoring {dir_name} / {ref}, left in place")
                return None
            return self._remove(dir_name, "matches ignore patterns", ref, sha)

        if self.evaluator.is_removed(dir_name, ref):
            return self._remove(dir_name, "matches remove patterns", ref, sha)

        expected = to_directory_name(ref)
        if expected != dir_name:
            return self._remove(dir_name, f"{ref} belongs in {expected}", ref, sha)

        if ref not in working:
            return self._remove(dir_name, "gone from repository", ref, sha)

        target = working.pop(ref)
        handled.add(ref)

        if sha != target:
            logger.info(f"Syncing {dir_name}: {sha}..{target}")
            return self.deployer.reset_ref(ref, target)

        if (
            not self.evaluator.is_exempt_from_expiry(dir_name, ref)
            and self.evaluator.is_expired(env.last_deployed_at)
        ):
            return self._remove(dir_name, f"expired, last deployed {env.last_deployed_at}", ref, sha)

        logger.debug(f"Synced {dir_name}")
        return None

    # ── Phase 2 ──────────────────────────────────────────────────

    def _resolve_ref(
        self,
        ref: str,
        sha: Optional[str],
        ignores: List[Pattern],
    ) -> Optional[ChangeRecord]:
        dir_name = to_directory_name(ref)

        if not sha:
            return self._remove_if_present(dir_name, f"ref {ref} has no revision", ref)

        if self.evaluator.is_ignored(dir_name, ref, ignores):
            if not self.evaluator.removes_ignored:
                logger.info(f"Ignoring {ref}, matches ignore patterns")
                return None
            return self._remove_if_present(dir_name, "matches ignore patterns", ref)

        if self.evaluator.is_removed(dir_name, ref):
            return self._remove_if_present(dir_name, "matches remove patterns", ref)

        if (
            self.evaluator.policy.expiry_enabled
            and not self.evaluator.is_exempt_from_expiry(dir_name, ref)
        ):
            committed_at = self.commit_time(sha)
            if self.evaluator.is_expired(committed_at):
                logger.info(f"Skipping {ref}: last commit {committed_at.isoformat()} is past expiry")
                return None

        logger.info(f"Deploying {dir_name} from {ref} at {sha}")
        return self.deployer.reset_ref(ref, sha)

    # ── Helpers ──────────────────────────────────────────────────

    def _remove(
        self,
        dir_name: str,
        reason: str,
        ref: Optional[str] = None,
        sha: Optional[str] = None,
    ) -> Optional[ChangeRecord]:
        logger.info(f"Removing {dir_name}: {reason}", extra={"directory": dir_name})
        if not self.store.remove(dir_name):
            return None
        return ChangeRecord.removed(dir_name, reason, ref=ref, from_hash=sha)

    def _remove_if_present(self, dir_name: str, reason: str, ref: str) -> Optional[ChangeRecord]:
        if not self.store.path_for(dir_name).exists():
            logger.debug(f"Not deploying {ref}: {reason}")
            return None
        return self._remove(dir_name, reason, ref=ref)
