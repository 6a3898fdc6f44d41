"""
Config Loader — Settings from an optional YAML file and ENVSYNC_* variables.

Sources, lowest priority first:
1. Built-in defaults (the layout of a stock Puppet master)
2. A YAML file: the ``path`` argument, or ENVSYNC_CONFIG
3. Individual ENVSYNC_* environment variables

## Usage

    # envsync.yaml
    directory: /etc/puppet
    repository: git@git.example.com:ops/puppet.git
    ignore_branches: "/^wip_/,scratch"
    expire_after_days: 30

    export ENVSYNC_SSH_KEY=/etc/puppet/deploy_key

    settings = load_settings()
    policy = settings.policy()

Pattern lists are comma-separated; ``/.../`` entries are regular
expressions, anything else a literal branch or directory name.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..policy.models import Policy, parse_patterns
from ..validation import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "ENVSYNC_"

PatternList = Union[str, List[str], None]


class SettingsFile(BaseModel):
    """Schema of the YAML settings file; every key is optional."""

    model_config = ConfigDict(extra="forbid")

    directory: Optional[str] = None
    repository: Optional[str] = None
    clone_at: Optional[str] = None
    env_dir: Optional[str] = None
    lock_file: Optional[str] = None
    ignore_branches: PatternList = None
    init_ignore_branches: PatternList = None
    remove_branches: PatternList = None
    exempt_branches: PatternList = None
    expire_after_days: Optional[float] = None
    ignore_action: Optional[Literal["remove", "keep"]] = None
    run_after_checkout: Optional[str] = None
    link_env_conf: Optional[bool] = None
    ssh_key: Optional[str] = None
    command_timeout: Optional[float] = None
    audit_file: Optional[str] = None


@dataclass
class Settings:
    """Everything one envsync process needs to know."""

    directory: str = "/etc/puppet"
    repository: str = "http://git/puppet"
    clone_at: Optional[str] = None
    env_dir: Optional[str] = None
    lock_file: str = "/tmp/envsync.lock"

    ignore_branches: str = ""
    init_ignore_branches: str = ""
    remove_branches: str = ""
    exempt_branches: str = ""
    expire_after_days: float = 0
    ignore_action: str = "remove"

    run_after_checkout: Optional[str] = None
    link_env_conf: bool = False
    ssh_key: Optional[str] = None
    command_timeout: Optional[float] = None
    audit_file: Optional[str] = None

    @property
    def git_dir(self) -> Path:
        return Path(self.clone_at) if self.clone_at else Path(self.directory) / "puppet.git"

    @property
    def environments_dir(self) -> Path:
        return Path(self.env_dir) if self.env_dir else Path(self.directory) / "environments"

    def policy(self) -> Policy:
        """
        Build the run policy, parsing every pattern list once.

        Raises:
            ConfigurationError: If a pattern or the ignore action is invalid
        """
        try:
            return Policy(
                ignore_patterns=parse_patterns(self.ignore_branches),
                init_ignore_patterns=parse_patterns(self.init_ignore_branches),
                remove_patterns=parse_patterns(self.remove_branches),
                exempt_patterns=parse_patterns(self.exempt_branches),
                expire_after_days=self.expire_after_days,
                ignore_action=self.ignore_action,
            )
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid policy settings: {e}") from e


def _as_pattern_string(value: PatternList) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(value)
    return value


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off", ""):
        return False
    raise ConfigurationError(f"{key}: expected a boolean, got {value!r}")


def _parse_float(key: str, value: str) -> Optional[float]:
    if not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{key}: expected a number, got {value!r}")


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file; an empty file gives an empty dict."""
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    return data


def _from_file(settings: Settings, path: Path) -> Settings:
    try:
        parsed = SettingsFile(**load_yaml(path))
    except FileNotFoundError:
        raise ConfigurationError(f"Settings file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid settings in {path}: {e}") from e

    for key, value in parsed.model_dump(exclude_none=True).items():
        if key.endswith("_branches"):
            value = _as_pattern_string(value)
        setattr(settings, key, value)

    logger.info(f"Loaded settings from {path}")
    return settings


def _from_env(settings: Settings, environ: Mapping[str, str]) -> Settings:
    for f in fields(Settings):
        env_key = f"{ENV_PREFIX}{f.name.upper()}"
        if env_key not in environ:
            continue
        raw = environ[env_key]

        if f.name == "link_env_conf":
            value: Any = _parse_bool(env_key, raw)
        elif f.name in ("expire_after_days", "command_timeout"):
            value = _parse_float(env_key, raw)
            if value is None and f.name == "expire_after_days":
                value = 0
        elif f.name in ("clone_at", "env_dir", "run_after_checkout", "ssh_key", "audit_file"):
            value = raw or None
        else:
            value = raw
        setattr(settings, f.name, value)

    return settings


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load settings: defaults, then the YAML file, then ENVSYNC_* variables.

    Raises:
        ConfigurationError: If the file or a variable is invalid
    """
    if environ is None:
        environ = os.environ

    settings = Settings()

    config_path = path or environ.get(f"{ENV_PREFIX}CONFIG")
    if config_path:
        settings = _from_file(settings, Path(config_path))

    settings = _from_env(settings, environ)

    if settings.ignore_action not in ("remove", "keep"):
        raise ConfigurationError(
            f"ignore_action must be 'remove' or 'keep', got {settings.ignore_action!r}"
        )

    return settings
