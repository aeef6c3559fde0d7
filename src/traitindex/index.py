"""Reference consumer: an in-memory implementor index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from traitindex.models.fragment import Entry, Fragment

log = structlog.get_logger()


class ImplementorIndex:
    """Consumer that answers "which types implement X?".

    Keyed by ``(group_name, subject_key, implementor_ref)``. Delivering a
    fragment replaces everything previously indexed for its group, which makes
    replays and resubmissions harmless.
    """

    def __init__(self) -> None:
        self._by_group: dict[str, dict[tuple[str, str], Entry]] = {}
        self.deliveries = 0

    def on_fragment(self, fragment: Fragment) -> None:
        self.deliveries += 1
        replaced = fragment.group_name in self._by_group
        self._by_group[fragment.group_name] = {entry.key: entry for entry in fragment.entries}
        log.debug(
            "index_updated",
            group=fragment.group_name,
            entries=len(fragment.entries),
            replaced=replaced,
        )

    def implementors_of(self, subject_key: str) -> list[Entry]:
        """Implementors of ``subject_key``, one per ref, sorted by label."""
        found: dict[str, Entry] = {}
        for entries in self._by_group.values():
            for (subject, ref), entry in entries.items():
                if subject == subject_key:
                    found.setdefault(ref, entry)
        return sorted(
            found.values(), key=lambda e: (e.implementor_label.casefold(), e.implementor_ref)
        )

    def subjects(self) -> list[str]:
        return sorted({subject for entries in self._by_group.values() for subject, _ in entries})

    def groups(self) -> list[str]:
        return list(self._by_group)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_group.values())
