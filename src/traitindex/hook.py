"""Process-wide submit hook for loaders that hold no registry reference.

The registry itself is always constructed explicitly; this module only
publishes one instance under a well-known name for the lifetime of a page.
Prefer passing the Registry directly where the loader can receive it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import structlog

from traitindex.config import Settings
from traitindex.errors import ErrorCode, TraitIndexError
from traitindex.models.fragment import Fragment
from traitindex.registry import Registry

log = structlog.get_logger()

_lock = threading.Lock()
_installed: Registry | None = None


def install(registry: Registry) -> None:
    """Publish ``registry`` as the target of ``register_implementors``."""
    global _installed
    with _lock:
        if _installed is not None and _installed is not registry:
            raise TraitIndexError(
                ErrorCode.HOOK_ALREADY_INSTALLED,
                "A registry is already installed for this page",
                "Call uninstall() before installing a different registry.",
            )
        _installed = registry
    log.debug("hook_installed")


def uninstall() -> Registry | None:
    """Remove the published registry and return it, if any."""
    global _installed
    with _lock:
        registry, _installed = _installed, None
    if registry is not None:
        log.debug("hook_uninstalled", groups=len(registry))
    return registry


def installed() -> Registry | None:
    return _installed


def register_implementors(fragment: Fragment | Mapping[str, Any]) -> None:
    """Submit a fragment to the installed registry."""
    registry = _installed
    if registry is None:
        raise TraitIndexError(
            ErrorCode.HOOK_NOT_INSTALLED,
            "No registry is installed; the fragment cannot be submitted",
            "Open a page_scope() or call install() before loading fragments.",
            recoverable=True,
        )
    registry.submit(fragment)


@contextmanager
def page_scope(settings: Settings | None = None) -> Iterator[Registry]:
    """Construct a Registry, publish it, and withdraw it on exit."""
    settings = settings or Settings()
    registry = Registry(settings.registry)
    install(registry)
    try:
        yield registry
    finally:
        uninstall()
