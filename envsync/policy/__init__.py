"""
Policy — which refs are deployed, left alone, removed or expired.
"""

from .evaluator import PolicyEvaluator
from .models import Pattern, Policy, parse_pattern, parse_patterns

__all__ = [
    "Pattern",
    "Policy",
    "PolicyEvaluator",
    "parse_pattern",
    "parse_patterns",
]
