"""
Tests for settings loading: defaults, YAML file, ENVSYNC_* overrides.
"""

from pathlib import Path

import pytest

from envsync.config import Settings, load_settings
from envsync.validation import ConfigurationError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "envsync.yaml"
    path.write_text(text)
    return path


class TestDefaults:

    def test_stock_layout(self):
        settings = load_settings(environ={})
        assert settings.directory == "/etc/puppet"
        assert settings.repository == "http://git/puppet"
        assert settings.git_dir == Path("/etc/puppet/puppet.git")
        assert settings.environments_dir == Path("/etc/puppet/environments")
        assert settings.lock_file == "/tmp/envsync.lock"
        assert settings.ignore_action == "remove"
        assert settings.link_env_conf is False

    def test_explicit_paths_win(self):
        settings = Settings(directory="/srv/p", clone_at="/data/m.git", env_dir="/data/envs")
        assert settings.git_dir == Path("/data/m.git")
        assert settings.environments_dir == Path("/data/envs")


class TestYamlFile:

    def test_values_and_pattern_lists(self, tmp_path):
        path = _write(tmp_path, """
directory: /srv/puppet
repository: git@git:ops/puppet.git
ignore_branches:
  - /^wip_/
  - scratch
remove_branches: legacy
expire_after_days: 30
link_env_conf: true
""")
        settings = load_settings(path, environ={})

        assert settings.directory == "/srv/puppet"
        assert settings.ignore_branches == "/^wip_/,scratch"
        assert settings.remove_branches == "legacy"
        assert settings.expire_after_days == 30
        assert settings.link_env_conf is True

    def test_path_from_environment(self, tmp_path):
        path = _write(tmp_path, "repository: http://other/puppet\n")
        settings = load_settings(environ={"ENVSYNC_CONFIG": str(path)})
        assert settings.repository == "http://other/puppet"

    def test_empty_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""), environ={})
        assert settings.directory == "/etc/puppet"

    def test_unknown_key_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid settings"):
            load_settings(_write(tmp_path, "directroy: /typo\n"), environ={})

    def test_bad_value_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_settings(_write(tmp_path, "ignore_action: archive\n"), environ={})

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(_write(tmp_path, "- a\n- b\n"), environ={})

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(_write(tmp_path, "key: [unclosed\n"), environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "nope.yaml", environ={})


class TestEnvironment:

    def test_overrides_file(self, tmp_path):
        path = _write(tmp_path, "repository: http://file/puppet\n")
        settings = load_settings(path, environ={"ENVSYNC_REPOSITORY": "http://env/puppet"})
        assert settings.repository == "http://env/puppet"

    def test_typed_values(self):
        settings = load_settings(environ={
            "ENVSYNC_LINK_ENV_CONF": "yes",
            "ENVSYNC_EXPIRE_AFTER_DAYS": "14",
            "ENVSYNC_COMMAND_TIMEOUT": "300",
            "ENVSYNC_IGNORE_ACTION": "keep",
            "ENVSYNC_SSH_KEY": "/etc/puppet/id_rsa",
        })
        assert settings.link_env_conf is True
        assert settings.expire_after_days == 14.0
        assert settings.command_timeout == 300.0
        assert settings.ignore_action == "keep"
        assert settings.ssh_key == "/etc/puppet/id_rsa"

    def test_blank_optional_is_none(self):
        settings = load_settings(environ={"ENVSYNC_CLONE_AT": "", "ENVSYNC_EXPIRE_AFTER_DAYS": ""})
        assert settings.clone_at is None
        assert settings.expire_after_days == 0

    def test_bad_bool(self):
        with pytest.raises(ConfigurationError, match="ENVSYNC_LINK_ENV_CONF"):
            load_settings(environ={"ENVSYNC_LINK_ENV_CONF": "maybe"})

    def test_bad_number(self):
        with pytest.raises(ConfigurationError, match="ENVSYNC_EXPIRE_AFTER_DAYS"):
            load_settings(environ={"ENVSYNC_EXPIRE_AFTER_DAYS": "soon"})

    def test_bad_ignore_action(self):
        with pytest.raises(ConfigurationError, match="ignore_action"):
            load_settings(environ={"ENVSYNC_IGNORE_ACTION": "archive"})


class TestPolicyFromSettings:

    def test_patterns_parsed(self):
        policy = Settings(
            ignore_branches="/^wip_/, scratch",
            init_ignore_branches="/^feature/",
            exempt_branches="master",
            expire_after_days=7,
        ).policy()
        assert [str(p) for p in policy.ignore_patterns] == ["/^wip_/", "scratch"]
        assert [str(p) for p in policy.bootstrap_ignores()] == ["/^wip_/", "scratch", "/^feature/"]
        assert policy.expiry_enabled

    def test_bad_regex(self):
        with pytest.raises(ConfigurationError, match="Invalid policy"):
            Settings(ignore_branches="/[oops/").policy()
