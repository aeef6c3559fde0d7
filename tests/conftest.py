"""Shared fixtures: sample fragments, a recording consumer, a fresh registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from traitindex.config import RegistrySettings
from traitindex.models.fragment import Entry, Fragment
from traitindex.registry import Registry

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class RecordingConsumer:
    """Consumer that remembers every fragment it was handed, in order."""

    def __init__(self) -> None:
        self.received: list[Fragment] = []

    def on_fragment(self, fragment: Fragment) -> None:
        self.received.append(fragment)

    @property
    def groups(self) -> list[str]:
        return [f.group_name for f in self.received]


def _make_fragment(group_name: str, *refs: str, subject_key: str = "Copy") -> Fragment:
    return Fragment(
        group_name=group_name,
        entries=tuple(
            Entry(
                subject_key=subject_key,
                implementor_label=ref.rsplit("::", 1)[-1],
                implementor_ref=ref,
            )
            for ref in refs
        ),
    )


@pytest.fixture()
def registry() -> Registry:
    return Registry(RegistrySettings())


@pytest.fixture()
def consumer() -> RecordingConsumer:
    return RecordingConsumer()


@pytest.fixture()
def pkg_a() -> Fragment:
    return Fragment.from_wire(
        {
            "groupName": "pkgA",
            "entries": [
                {"subjectKey": "Copy", "implementorLabel": "DType", "implementorRef": "pkgA::DType"}
            ],
        }
    )


@pytest.fixture()
def pkg_b() -> Fragment:
    return Fragment.from_wire(
        {
            "groupName": "pkgB",
            "entries": [
                {
                    "subjectKey": "Copy",
                    "implementorLabel": "Offloading",
                    "implementorRef": "pkgB::Offloading",
                }
            ],
        }
    )


@pytest.fixture()
def trait_copy_js() -> Path:
    return FIXTURES_DIR / "trait.Copy.js"


@pytest.fixture()
def make_fragment():
    """Factory: ``make_fragment("pkgA", "pkgA::DType", subject_key="Copy")``."""
    return _make_fragment


@pytest.fixture()
def make_consumer():
    return RecordingConsumer
