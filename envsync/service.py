"""
Sync Service — The actions callers can trigger.

    update_all(bootstrap=False)   reconcile every ref against every directory
    update(branch, revision=None) deploy one ref (optionally pinned)
    gc()                          housekeeping on the mirror

Each action holds the run lock for its whole duration, refreshes the mirror
first, and works from a ref snapshot taken once for that run.

## Usage

    from envsync.config import load_settings
    from envsync.service import SyncService

    service = SyncService(load_settings())
    for change in service.update_all():
        print(change.describe())
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config.loader import Settings
from .engine.deploy import ZERO_REVISION, Deployer
from .engine.environments import DeployedEnvironment, EnvironmentStore
from .engine.reconciler import Reconciler
from .engine.refs import RefStore
from .engine.runner import CommandRunner
from .mirror.manager import MirrorManager
from .models.change import ChangeRecord
from .persistence.audit import AuditWriter, generate_run_id
from .persistence.lock import exclusive_lock, whilst_locked
from .policy.evaluator import PolicyEvaluator
from .policy.models import Policy
from .validation import validate_ref_name, validate_revision

logger = logging.getLogger(__name__)


class SyncService:
    """Wires settings, the command runner and the engine together."""

    def __init__(
        self,
        settings: Settings,
        runner: Optional[CommandRunner] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.policy: Policy = settings.policy()
        self.runner = runner or CommandRunner(timeout=settings.command_timeout)
        self.clock = clock
        self.store = EnvironmentStore(settings.environments_dir)
        self.mirror = MirrorManager(
            self.runner,
            git_dir=settings.git_dir,
            env_dir=settings.environments_dir,
            repo_url=settings.repository,
            ssh_key=settings.ssh_key,
        )
        self.deployer = Deployer(
            self.runner,
            git_dir=settings.git_dir,
            store=self.store,
            base_dir=settings.directory,
            link_env_conf=settings.link_env_conf,
            run_after_checkout=settings.run_after_checkout,
        )
        self.audit: Optional[AuditWriter] = (
            AuditWriter(Path(settings.audit_file)) if settings.audit_file else None
        )

    # ─── Actions ────────────────────────────────────────────

    def update_all(self, bootstrap: bool = False) -> List[ChangeRecord]:
        """
        Reconcile every ref and directory.

        ``bootstrap`` adds the init-only ignore patterns, for first-time
        setup of a host that should pick those refs up later.
        """
        def body() -> List[ChangeRecord]:
            self.mirror.ensure_and_fetch()
            ref_store = RefStore(self.runner, self.settings.git_dir)
            refs = ref_store.refs()
            environments = self.store.deployed()

            ignores = self.policy.bootstrap_ignores() if bootstrap else self.policy.ignore_patterns
            reconciler = Reconciler(
                self.deployer,
                self.store,
                self._evaluator(),
                commit_time=ref_store.commit_time,
            )
            result = reconciler.resolve(refs, environments, ignore_patterns=ignores)
            logger.info(
                f"Reconciled {len(environments)} environment(s) against {len(refs)} ref(s): "
                f"{len(result.changes)} change(s), {len(result.failures)} failure(s)"
            )
            return result.changes

        return self._run("update_all", body, bootstrap=bootstrap)

    def update(self, branch: str, revision: Optional[str] = None) -> ChangeRecord:
        """
        Deploy one ref, at its current revision or at ``revision``.

        A ref that no longer exists upstream (and no pinned revision) is
        torn down.

        Raises:
            ValidationError: Before any work, for a malformed branch or revision
        """
        branch = validate_ref_name(branch, field="branch")
        revision = validate_revision(revision, field="revision")

        def body() -> List[ChangeRecord]:
            self.mirror.ensure_and_fetch()
            target = revision
            if target is None:
                refs = RefStore(self.runner, self.settings.git_dir).refs()
                target = refs.get(branch)
                if target is None:
                    logger.info(f"{branch} is gone from the repository, tearing it down")
                    target = "0" * len(ZERO_REVISION)
            return [self.deployer.reset_ref(branch, target)]

        return self._run("update", body, branch=branch, revision=revision)[0]

    def gc(self) -> str:
        """Garbage-collect the mirror."""
        return whilst_locked(self.settings.lock_file, self.mirror.gc)

    def status(self) -> List[DeployedEnvironment]:
        """Deployed environments as currently on disk (no lock, read only)."""
        return list(self.store.deployed().values())

    # ─── Internals ──────────────────────────────────────────

    def _evaluator(self) -> PolicyEvaluator:
        return PolicyEvaluator(self.policy, now=self.clock() if self.clock else None)

    def _run(self, action: str, body: Callable[[], List[ChangeRecord]], **params) -> List[ChangeRecord]:
        run_id = generate_run_id()
        start = time.time()
        if self.audit:
            self.audit.emit_run_start(run_id, action, **params)

        logger.info(f"Starting {action} ({run_id})", extra={"run_id": run_id})
        try:
            with exclusive_lock(self.settings.lock_file):
                changes = body()
        except Exception as e:
            if self.audit:
                self.audit.emit_run_end(
                    run_id, action, int((time.time() - start) * 1000), 0, 0, error=str(e)
                )
            raise

        duration_ms = int((time.time() - start) * 1000)
        failures = sum(1 for c in changes if c.action == "failed")
        if self.audit:
            self.audit.emit_changes(run_id, changes)
            self.audit.emit_run_end(run_id, action, duration_ms, len(changes), failures)

        for change in changes:
            log_fn = logger.error if change.action == "failed" else logger.info
            log_fn(f"  {change.describe()}", extra={"run_id": run_id})
        logger.info(f"Finished {action} in {duration_ms}ms", extra={"run_id": run_id})
        return changes


def reply(changes: Iterable[ChangeRecord]) -> Dict[str, Any]:
    """Reply object returned to action callers."""
    return {"status": "Done", "changes": [c.describe() for c in changes]}


def failure_message(error: BaseException) -> str:
    return f"Exception: {error}"
