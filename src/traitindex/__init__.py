from __future__ import annotations

from traitindex.errors import (
    AlreadyAttachedError,
    ErrorCode,
    MalformedFragmentError,
    TraitIndexError,
)
from traitindex.index import ImplementorIndex
from traitindex.models import Entry, Fragment
from traitindex.registry import FragmentConsumer, HandoffState, Registry

__all__ = [
    # models
    "Entry",
    "Fragment",
    # registry
    "Registry",
    "HandoffState",
    "FragmentConsumer",
    "ImplementorIndex",
    # errors
    "TraitIndexError",
    "ErrorCode",
    "MalformedFragmentError",
    "AlreadyAttachedError",
]
