"""
Policy Evaluator — classify a directory/ref pair against a Policy.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import Pattern, Policy


def _any_match(patterns: Iterable[Pattern], *names: Optional[str]) -> bool:
    return any(p.matches(name) for p in patterns for name in names)


class PolicyEvaluator:
    """
    Answers the policy questions the reconciler asks about each item.

    ``now`` is fixed when the evaluator is created so that every expiry
    decision within one run uses the same cut-off.
    """

    def __init__(self, policy: Policy, now: Optional[datetime] = None):
        self.policy = policy
        self.now = now or datetime.now(timezone.utc)
        if self.now.tzinfo is None:
            self.now = self.now.replace(tzinfo=timezone.utc)

    def is_ignored(
        self,
        dir_name: Optional[str],
        ref_name: Optional[str],
        patterns: Optional[Iterable[Pattern]] = None,
    ) -> bool:
        if patterns is None:
            patterns = self.policy.ignore_patterns
        return _any_match(patterns, dir_name, ref_name)

    def is_removed(self, dir_name: Optional[str], ref_name: Optional[str]) -> bool:
        return _any_match(self.policy.remove_patterns, dir_name, ref_name)

    def is_exempt_from_expiry(self, dir_name: Optional[str], ref_name: Optional[str]) -> bool:
        return _any_match(self.policy.exempt_patterns, dir_name, ref_name)

    def is_expired(self, timestamp: Optional[datetime]) -> bool:
        """True iff expiry is enabled and ``timestamp`` is older than the window."""
        expire_after = self.policy.expire_after
        if expire_after is None or timestamp is None:
            return False
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp < self.now - expire_after

    @property
    def removes_ignored(self) -> bool:
        return self.policy.ignore_action == "remove"
