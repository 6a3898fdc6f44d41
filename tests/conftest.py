"""
Shared fixtures: a scripted command runner and temporary environment trees.

``FakeRunner`` answers git commands by subcommand instead of running
anything, and records every call so tests can assert on the exact argv.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from envsync.config.loader import Settings
from envsync.engine.deploy import Deployer
from envsync.engine.environments import EnvironmentStore
from envsync.engine.reconciler import Reconciler
from envsync.engine.runner import CommandResult, CommandRunner
from envsync.policy.evaluator import PolicyEvaluator
from envsync.policy.models import Policy

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

Response = Union[Tuple[int, str], Callable[[List[str], Optional[str]], Tuple[int, str]]]


@dataclass
class Call:
    argv: List[str]
    cwd: Optional[str]
    env: Optional[Dict[str, str]]


def subcommand(argv: List[str]) -> str:
    """``git --git-dir=x --work-tree=y checkout ...`` → ``checkout``; ``/bin/sh`` → ``sh``."""
    if argv[0] == "git":
        for arg in argv[1:]:
            if not arg.startswith("--"):
                return arg
        return "git"
    return Path(argv[0]).name


class FakeRunner(CommandRunner):
    """CommandRunner that replays scripted responses keyed by subcommand."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        super().__init__()
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[Call] = []

    def execute(self, argv, cwd=None, env=None) -> CommandResult:
        argv = [str(a) for a in argv]
        self.calls.append(Call(argv, str(cwd) if cwd is not None else None, dict(env) if env else None))
        response = self.responses.get(subcommand(argv), (0, ""))
        if callable(response):
            rc, output = response(argv, str(cwd) if cwd is not None else None)
        else:
            rc, output = response
        return CommandResult(argv=argv, output=output, returncode=rc)

    def calls_for(self, name: str) -> List[Call]:
        return [c for c in self.calls if subcommand(c.argv) == name]

    def subcommands(self) -> List[str]:
        return [subcommand(c.argv) for c in self.calls]


def deploy_env(store: EnvironmentStore, directory: str, ref: str, sha: str) -> Path:
    """Lay down a directory as if a previous run had deployed it."""
    path = store.path_for(directory)
    path.mkdir(parents=True, exist_ok=True)
    (path / "site.pp").write_text("node default {}\n")
    store.write_sentinels(directory, ref, sha)
    return path


@pytest.fixture
def now() -> datetime:
    """Fixed clock shared by policy and expiry tests."""
    return NOW


@pytest.fixture
def make_runner():
    """Factory for a FakeRunner with scripted responses."""
    return FakeRunner


@pytest.fixture(name="deploy_env")
def deploy_env_fixture():
    """Lay down a directory as if a previous run had deployed it."""
    return deploy_env


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def env_dir(tmp_path: Path) -> Path:
    path = tmp_path / "environments"
    path.mkdir()
    return path


@pytest.fixture
def store(env_dir: Path) -> EnvironmentStore:
    return EnvironmentStore(env_dir)


@pytest.fixture
def git_dir(tmp_path: Path) -> Path:
    return tmp_path / "puppet.git"


@pytest.fixture
def deployer(runner: FakeRunner, git_dir: Path, store: EnvironmentStore) -> Deployer:
    return Deployer(runner, git_dir=git_dir, store=store)


@pytest.fixture
def make_reconciler(deployer: Deployer, store: EnvironmentStore):
    """Build a Reconciler with a policy and fixed clock."""

    def _make(
        policy: Optional[Policy] = None,
        commit_times: Optional[Dict[str, datetime]] = None,
        now: datetime = NOW,
    ) -> Reconciler:
        times = commit_times or {}
        return Reconciler(
            deployer,
            store,
            PolicyEvaluator(policy or Policy(), now=now),
            commit_time=lambda sha: times.get(sha, now),
        )

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path, nothing on the real filesystem."""
    return Settings(
        directory=str(tmp_path / "puppet"),
        repository="git@git.example.com:ops/puppet.git",
        lock_file=str(tmp_path / "envsync.lock"),
    )
