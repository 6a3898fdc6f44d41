"""
Policy Models — Pydantic schemas for ref selection and expiry policy.

A policy decides, for a ref and the directory it maps to, whether the pair
is ignored, must be removed, or is exempt from expiry, and how old a
deployment may get before it is torn down.

Patterns come from configuration as strings:

    master            literal, matches the whole name only
    /^feature_/       regular expression, searched anywhere in the name

They are parsed once into ``Pattern`` values when the policy is built.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Pattern(BaseModel):
    """A literal name or a regular expression."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal", "regex"]
    source: str

    @field_validator("source")
    @classmethod
    def _compiles(cls, value: str, info: ValidationInfo) -> str:
        if info.data.get("kind") == "regex":
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regular expression {value!r}: {e}") from e
        return value

    @property
    def regex(self) -> re.Pattern:
        # re caches compiled expressions
        if self.kind == "literal":
            return re.compile(f"^{re.escape(self.source)}$")
        return re.compile(self.source)

    def matches(self, name: Optional[str]) -> bool:
        if name is None:
            return False
        return self.regex.search(name) is not None

    def __str__(self) -> str:
        if self.kind == "regex":
            return f"/{self.source}/"
        return self.source


def parse_pattern(text: str) -> Pattern:
    """Parse one configuration entry into a Pattern."""
    text = text.strip()
    if text.startswith("/"):
        body = text[1:]
        if body.endswith("/"):
            body = body[:-1]
        return Pattern(kind="regex", source=body)
    return Pattern(kind="literal", source=text)


def parse_patterns(value: Union[str, Iterable[str], None]) -> List[Pattern]:
    """
    Parse a comma-separated string (or a list of strings) into Patterns.

    Empty entries are dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [parse_pattern(item) for item in items if item and item.strip()]


class Policy(BaseModel):
    """Selection and expiry policy, immutable for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    ignore_patterns: List[Pattern] = Field(default_factory=list)
    init_ignore_patterns: List[Pattern] = Field(default_factory=list)
    remove_patterns: List[Pattern] = Field(default_factory=list)
    exempt_patterns: List[Pattern] = Field(default_factory=list)
    expire_after_days: float = 0
    ignore_action: Literal["remove", "keep"] = "remove"

    @property
    def expiry_enabled(self) -> bool:
        return self.expire_after_days > 0

    @property
    def expire_after(self) -> Optional[timedelta]:
        if not self.expiry_enabled:
            return None
        return timedelta(days=self.expire_after_days)

    def bootstrap_ignores(self) -> List[Pattern]:
        """Ignore set for the first-time setup pass."""
        return list(self.ignore_patterns) + list(self.init_ignore_patterns)
