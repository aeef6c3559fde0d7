from __future__ import annotations

from traitindex.models.fragment import Entry, Fragment

__all__ = [
    "Entry",
    "Fragment",
]
