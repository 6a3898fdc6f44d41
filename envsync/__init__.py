"""
envsync — keep deployed environment directories in step with git refs.

Every branch or tag of a mirrored repository is materialized as its own
directory under the environments root. Each run reconciles the refs in the
mirror against the directories on disk and applies the smallest set of
checkouts and removals that brings them back into agreement.
"""

__version__ = "0.3.0"
