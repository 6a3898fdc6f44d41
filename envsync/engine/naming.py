"""
Naming — Map a ref name to its environment directory name.

The mapping is used both to create directories and to check that an
existing directory still belongs to the ref it records, so it must stay a
pure function of the ref name.
"""

from __future__ import annotations

# Names that clash with Puppet's own environment and agent settings
RESERVED_NAMES = frozenset({"master", "user", "agent", "main"})


def to_directory_name(ref: str) -> str:
    """
    Turn a ref name into a directory name.

    ``/`` becomes ``__`` and ``-`` becomes ``_``; a reserved result gets the
    suffix ``branch``.

        >>> to_directory_name("fo/bar")
        'fo__bar'
        >>> to_directory_name("master")
        'masterbranch'
    """
    if not ref:
        raise ValueError("ref name must not be empty")
    name = ref.replace("/", "__").replace("-", "_")
    if name in RESERVED_NAMES:
        return f"{name}branch"
    return name
