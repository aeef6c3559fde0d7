"""Page-wide implementor registry and consumer hand-off.

Fragments arrive from independent loaders in no particular order. Until a
consumer attaches, the registry is *buffering*: every submitted fragment is
queued in submission order. The first ``attach`` drains that queue into the
consumer and flips the registry to *live*, after which submissions are
forwarded as they arrive. The flip is one-way.

Independently of delivery, ``by_group`` always holds the latest fragment per
group (last write wins), so ``snapshot()`` gives a late reader the merged
state without a replay.

One lock guards the registry state; it is never held while the consumer
runs, so ``on_fragment`` may call back into the registry from any thread.
Deliveries go through a single outbox drained by one caller at a time, so a
fragment submitted while another is being handled is delivered after it.
"""

from __future__ import annotations

import contextlib
import threading
from collections import deque
from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from traitindex.config import RegistrySettings
from traitindex.errors import AlreadyAttachedError, MalformedFragmentError
from traitindex.models.fragment import Fragment

if TYPE_CHECKING:
    from traitindex.models.fragment import Entry

log = structlog.get_logger()


class HandoffState(StrEnum):
    BUFFERING = "buffering"
    LIVE = "live"


@runtime_checkable
class FragmentConsumer(Protocol):
    """The party that takes over fragments once it attaches.

    ``on_fragment`` must tolerate seeing the same group more than once: a
    resubmitted group is delivered again and replaces the earlier one.
    """

    def on_fragment(self, fragment: Fragment) -> None: ...


def _coerce(fragment: Fragment | Mapping[str, Any]) -> Fragment:
    if isinstance(fragment, Fragment):
        return fragment
    if isinstance(fragment, Mapping):
        return Fragment.from_wire(fragment)
    raise MalformedFragmentError(
        f"Expected a Fragment or a fragment mapping, got {type(fragment).__name__}"
    )


class Registry:
    """Accumulates fragments and hands them to at most one consumer."""

    def __init__(self, settings: RegistrySettings | None = None) -> None:
        settings = settings or RegistrySettings()
        self._lock: contextlib.AbstractContextManager[Any] = (
            threading.Lock() if settings.thread_safe else contextlib.nullcontext()
        )
        self._log_replacements = settings.log_replacements

        self._by_group: dict[str, Fragment] = {}
        self._pending: list[Fragment] = []
        self._outbox: deque[Fragment] = deque()
        self._delivering = False
        self._consumer: FragmentConsumer | None = None
        self._state = HandoffState.BUFFERING

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def submit(self, fragment: Fragment | Mapping[str, Any]) -> None:
        """Record a fragment and deliver or buffer it.

        Raises ``MalformedFragmentError`` before touching any state if the
        payload does not have the fragment shape.
        """
        fragment = _coerce(fragment)
        with self._lock:
            previous = self._by_group.get(fragment.group_name)
            self._by_group[fragment.group_name] = fragment
            if previous is not None and self._log_replacements:
                log.info(
                    "fragment_replaced",
                    group=fragment.group_name,
                    previous_entries=len(previous.entries),
                    entries=len(fragment.entries),
                )

            consumer = self._consumer
            if consumer is not None:
                self._outbox.append(fragment)
            else:
                self._pending.append(fragment)
                log.debug(
                    "fragment_buffered",
                    group=fragment.group_name,
                    entries=len(fragment.entries),
                    pending=len(self._pending),
                )

        if consumer is not None:
            self._flush(consumer)

    def attach(self, consumer: FragmentConsumer) -> None:
        """Attach the single consumer, replaying everything buffered so far.

        Raises ``AlreadyAttachedError`` if a consumer is already attached.
        """
        with self._lock:
            if self._consumer is not None:
                raise AlreadyAttachedError()

            self._consumer = consumer
            drained, self._pending = self._pending, []
            self._state = HandoffState.LIVE
            self._outbox.extend(drained)
            log.info("consumer_attached", drained=len(drained), groups=len(self._by_group))

        self._flush(consumer)

    def _flush(self, consumer: FragmentConsumer) -> None:
        # Only one caller delivers at a time. Anyone else (another thread, or
        # the consumer submitting from on_fragment) just leaves its fragment
        # in the outbox for the active deliverer.
        with self._lock:
            if self._delivering:
                return
            self._delivering = True
        try:
            while True:
                with self._lock:
                    if not self._outbox:
                        # Cleared together with the emptiness check so a
                        # concurrent submit cannot strand a fragment.
                        self._delivering = False
                        return
                    fragment = self._outbox.popleft()
                consumer.on_fragment(fragment)
                log.debug("fragment_delivered", group=fragment.group_name)
        except BaseException:
            with self._lock:
                self._delivering = False
            raise

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def state(self) -> HandoffState:
        return self._state

    @property
    def attached(self) -> bool:
        return self._consumer is not None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def snapshot(self) -> dict[str, Fragment]:
        """Return a copy of the latest fragment per group.

        Fragments are immutable, so a shallow copy is enough to keep callers
        from affecting registry state.
        """
        with self._lock:
            return dict(self._by_group)

    def groups(self) -> list[str]:
        with self._lock:
            return list(self._by_group)

    def subjects(self) -> list[str]:
        """All subject keys present in the current fragments, sorted."""
        with self._lock:
            return sorted(
                {entry.subject_key for f in self._by_group.values() for entry in f.entries}
            )

    def implementors(self, subject_key: str) -> list[Entry]:
        """Merged implementors of ``subject_key`` across all current groups.

        Entries are deduplicated on ``(subject_key, implementor_ref)``; when two
        groups list the same implementor the one seen first wins.
        """
        seen: set[str] = set()
        result: list[Entry] = []
        with self._lock:
            for fragment in self._by_group.values():
                for entry in fragment.entries:
                    if entry.subject_key != subject_key or entry.implementor_ref in seen:
                        continue
                    seen.add(entry.implementor_ref)
                    result.append(entry)
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_group)

    def __contains__(self, group_name: object) -> bool:
        with self._lock:
            return group_name in self._by_group
