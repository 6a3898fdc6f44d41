"""
Deployment — Materialize one ref at one revision into its directory.

``Deployer.reset_ref`` is the single primitive the reconciler and the
single-ref update path use to touch an environment's contents:

1. Read the revision currently recorded for the ref's directory
2. Zero revision → tear the directory down
3. Same revision → nothing to do
4. Otherwise check out, clean, write sentinels, then the optional
   environment.conf link and post-checkout command

It always returns a ChangeRecord. Errors are folded into a ``failed``
record and never propagate to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..models.change import ChangeRecord, HookResult
from .environments import EnvironmentStore
from .naming import to_directory_name
from .runner import CommandRunner, PathLike, git_command

logger = logging.getLogger(__name__)

# Reported as the previous revision when a directory has none recorded
ZERO_REVISION = "0000000"

ENV_CONF = "environment.conf"


def is_zero_revision(revision: Optional[str]) -> bool:
    """True for a non-empty revision made only of zeros (git's null object)."""
    return bool(revision) and set(revision) == {"0"}


class Deployer:
    """Checks refs out of the bare mirror into environment directories."""

    def __init__(
        self,
        runner: CommandRunner,
        git_dir: PathLike,
        store: EnvironmentStore,
        base_dir: Optional[PathLike] = None,
        link_env_conf: bool = False,
        run_after_checkout: Optional[str] = None,
    ):
        self.runner = runner
        self.git_dir = Path(git_dir)
        self.store = store
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.link_env_conf = link_env_conf
        self.run_after_checkout = run_after_checkout

    def ref_path(self, ref: str) -> Path:
        return self.store.path_for(to_directory_name(ref))

    def reset_ref(self, ref: str, target: str) -> ChangeRecord:
        """Bring the directory for ``ref`` to revision ``target``."""
        directory: Optional[str] = None
        from_hash = ZERO_REVISION
        try:
            directory = to_directory_name(ref)
            from_hash = self.store.read_revision(directory) or ZERO_REVISION

            if not target:
                raise ValueError(f"no revision to deploy for {ref}")

            if is_zero_revision(target):
                self.store.remove(directory)
                logger.info(
                    f"Deleted {directory} (was {from_hash})",
                    extra={"ref": ref, "directory": directory},
                )
                return ChangeRecord(
                    action="delete",
                    ref=ref,
                    directory=directory,
                    from_hash=from_hash,
                    to_hash=target,
                )

            if from_hash == target:
                logger.debug(f"{directory} already at {target}")
                return ChangeRecord(
                    action="in_sync",
                    ref=ref,
                    directory=directory,
                    from_hash=from_hash,
                    to_hash=target,
                )

            logger.info(
                f"Deploying {ref} into {directory}: {from_hash}..{target}",
                extra={"ref": ref, "directory": directory},
            )
            self._checkout(ref, directory, target)

            linked = self._link_env_conf(directory) if self.link_env_conf else False
            hook = self._run_after_checkout(directory) if self.run_after_checkout else None

            return ChangeRecord(
                action="deploy" if is_zero_revision(from_hash) else "update",
                ref=ref,
                directory=directory,
                from_hash=from_hash,
                to_hash=target,
                linked=linked,
                hook=hook,
            )
        except Exception as e:
            logger.error(
                f"Deploying {ref} at {target} failed: {e}",
                extra={"ref": ref, "directory": directory},
            )
            return ChangeRecord.failed(
                str(e),
                ref=ref,
                directory=directory,
                from_hash=from_hash,
                to_hash=target,
            )

    def _checkout(self, ref: str, directory: str, revision: str) -> None:
        work_tree = self.store.path_for(directory)
        work_tree.mkdir(parents=True, exist_ok=True)

        self.runner.run(git_command(
            self.git_dir, "checkout", "--detach", "--force", revision,
            work_tree=work_tree,
        ))
        # Leftovers from the previous revision must not survive
        self.runner.run(git_command(self.git_dir, "clean", "-dxf", work_tree=work_tree))

        self.store.write_sentinels(directory, ref, revision)

    def _link_env_conf(self, directory: str) -> bool:
        if self.base_dir is None:
            return False
        global_conf = self.base_dir / ENV_CONF
        local_conf = self.store.path_for(directory) / ENV_CONF
        if not global_conf.exists() or local_conf.exists() or local_conf.is_symlink():
            return False
        local_conf.symlink_to(global_conf)
        logger.info(f"  linked {global_conf} -> {local_conf}")
        return True

    def _run_after_checkout(self, directory: str) -> HookResult:
        command = self.run_after_checkout
        try:
            result = self.runner.execute(
                ["/bin/sh", "-c", command],
                cwd=self.store.path_for(directory),
            )
        except Exception as e:
            logger.warning(f"  after checkout could not run in {directory}: {e}")
            return HookResult(command=command, ok=False, output=str(e))

        if result.ok:
            logger.info(f"  after checkout succeeded in {directory}")
        else:
            logger.warning(
                f"  after checkout failed in {directory} "
                f"(exit {result.returncode}): {result.output.strip()}"
            )
        return HookResult(
            command=command,
            ok=result.ok,
            returncode=result.returncode,
            output=result.output,
        )
