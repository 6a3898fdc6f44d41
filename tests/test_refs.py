"""
Tests for show-ref parsing and the per-run RefStore.
"""

import shutil
import subprocess
from datetime import datetime, timezone

import pytest

from envsync.engine.refs import RefStore, parse_show_ref
from envsync.engine.runner import CommandRunner
from envsync.validation import MirrorError

SHOW_REF = """\
1111111111111111111111111111111111111111 refs/heads/master
2222222222222222222222222222222222222222 refs/heads/feature/x
3333333333333333333333333333333333333333 refs/tags/v1.0
4444444444444444444444444444444444444444 refs/tags/v1.0^{}
5555555555555555555555555555555555555555 refs/tags/v0.9
6666666666666666666666666666666666666666 refs/remotes/origin/master
"""


class TestParseShowRef:

    def test_heads_and_tags(self):
        refs = parse_show_ref(SHOW_REF)
        assert refs["master"] == "1" * 40
        assert refs["feature/x"] == "2" * 40
        assert refs["v0.9"] == "5" * 40

    def test_peeled_tag_wins(self):
        assert parse_show_ref(SHOW_REF)["v1.0"] == "4" * 40

    def test_peeled_line_first_still_wins(self):
        output = "bbbb refs/tags/t^{}\naaaa refs/tags/t\n"
        assert parse_show_ref(output) == {"t": "bbbb"}

    def test_other_namespaces_and_junk_skipped(self):
        refs = parse_show_ref(SHOW_REF + "garbage line\n\n")
        assert "origin/master" not in refs
        assert len(refs) == 4

    def test_branch_beats_tag_of_same_name(self):
        output = "aaaa refs/tags/release\nbbbb refs/heads/release\n"
        assert parse_show_ref(output) == {"release": "bbbb"}

    def test_empty(self):
        assert parse_show_ref("") == {}

    def test_undecodable_name_dropped(self):
        # what CommandRunner hands over for a branch named b"caf\xe9"
        output = "aaaa refs/heads/main\nbbbb refs/heads/caf\ufffd\n"
        assert parse_show_ref(output) == {"main": "aaaa"}


class TestRefStore:

    def test_lists_once_per_instance(self, make_runner, git_dir):
        runner = make_runner({"show-ref": (0, SHOW_REF)})
        store = RefStore(runner, git_dir)

        store.refs()
        store.refs()

        assert len(runner.calls_for("show-ref")) == 1
        assert runner.calls[0].argv == ["git", f"--git-dir={git_dir}", "show-ref", "--dereference"]

    def test_new_instance_lists_again(self, make_runner, git_dir):
        runner = make_runner({"show-ref": (0, SHOW_REF)})
        RefStore(runner, git_dir).refs()
        RefStore(runner, git_dir).refs()
        assert len(runner.calls_for("show-ref")) == 2

    def test_returns_copy(self, make_runner, git_dir):
        store = RefStore(make_runner({"show-ref": (0, SHOW_REF)}), git_dir)
        first = store.refs()
        first.pop("master")
        assert "master" in store.refs()

    def test_no_refs_is_empty(self, make_runner, git_dir):
        store = RefStore(make_runner({"show-ref": (1, "")}), git_dir)
        assert store.refs() == {}

    def test_listing_failure_raises(self, make_runner, git_dir):
        store = RefStore(make_runner({"show-ref": (128, "fatal: not a git repository")}), git_dir)
        with pytest.raises(MirrorError, match="not a git repository"):
            store.refs()

    def test_commit_time(self, make_runner, git_dir):
        runner = make_runner({"show": (0, "1700000000\n")})
        when = RefStore(runner, git_dir).commit_time("abc")
        assert when == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert runner.calls[0].argv[-3:] == ["-s", "--format=%ct", "abc"]


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_non_utf8_branch_does_not_break_listing(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()

    def git(*args):
        return subprocess.run(
            [b"git", b"-c", b"user.name=envsync", b"-c", b"user.email=envsync@example.com", *args],
            cwd=str(repo),
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        ).stdout

    git(b"init", b"-q")
    git(b"checkout", b"-q", b"-b", b"main")
    (repo / "site.pp").write_text("node default {}\n")
    git(b"add", b"site.pp")
    git(b"commit", b"-q", b"-m", b"initial")
    git(b"branch", b"caf\xe9")
    sha = git(b"rev-parse", b"main").decode().strip()

    refs = RefStore(CommandRunner(), repo / ".git").refs()

    assert refs == {"main": sha}
