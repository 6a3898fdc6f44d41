"""
Tests for the subprocess-backed CommandRunner.
"""

from pathlib import Path

import pytest

from envsync.engine.runner import CommandRunner, git_command
from envsync.validation import CommandError


class TestCommandRunner:

    def test_combines_stdout_and_stderr(self):
        result = CommandRunner().execute(["/bin/sh", "-c", "echo out; echo err >&2"])
        assert result.ok
        assert "out" in result.output
        assert "err" in result.output

    def test_run_raises_with_output(self):
        with pytest.raises(CommandError) as exc:
            CommandRunner().run(["/bin/sh", "-c", "echo broken; exit 3"])
        assert exc.value.returncode == 3
        assert "broken" in exc.value.output

    def test_env_layered_on_environ(self, monkeypatch):
        monkeypatch.setenv("ENVSYNC_TEST_BASE", "base")
        output = CommandRunner().run(
            ["/bin/sh", "-c", 'echo "$ENVSYNC_TEST_BASE $EXTRA"'],
            env={"EXTRA": "extra"},
        )
        assert output.strip() == "base extra"

    def test_cwd(self, tmp_path):
        output = CommandRunner().run(["/bin/sh", "-c", "pwd"], cwd=tmp_path)
        assert Path(output.strip()).resolve() == tmp_path.resolve()

    def test_missing_executable_is_127(self):
        with pytest.raises(CommandError) as exc:
            CommandRunner().run(["/nonexistent/envsync-binary"])
        assert exc.value.returncode == 127

    def test_undecodable_output_is_replaced(self):
        result = CommandRunner().execute(["/bin/sh", "-c", "printf 'caf\\351\\n'"])
        assert result.ok
        assert result.output == "caf\ufffd\n"

    def test_timeout_is_124(self):
        result = CommandRunner(timeout=0.2).execute(["/bin/sh", "-c", "sleep 5"])
        assert result.returncode == 124
        assert "timed out" in result.output


def test_git_command():
    assert git_command("/m.git", "show-ref") == ["git", "--git-dir=/m.git", "show-ref"]
    assert git_command("/m.git", "clean", work_tree="/w") == [
        "git", "--git-dir=/m.git", "--work-tree=/w", "clean",
    ]
