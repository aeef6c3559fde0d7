from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from traitindex.errors import MalformedFragmentError

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    extra="forbid",
)


class Entry(BaseModel):
    """One (capability, implementor) relationship."""

    model_config = _MODEL_CONFIG

    subject_key: str
    implementor_label: str
    implementor_ref: str  # Canonical path or URL, unique within the group

    @property
    def key(self) -> tuple[str, str]:
        return (self.subject_key, self.implementor_ref)


class Fragment(BaseModel):
    """One source unit's contribution to the implementor index."""

    model_config = _MODEL_CONFIG

    group_name: str
    entries: tuple[Entry, ...]

    @field_validator("group_name")
    @classmethod
    def validate_group_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("groupName must not be empty")
        return v

    @model_validator(mode="after")
    def validate_unique_entries(self) -> Fragment:
        seen: set[tuple[str, str]] = set()
        for entry in self.entries:
            if entry.key in seen:
                raise ValueError(
                    f"Duplicate entry {entry.key!r} in group {self.group_name!r}"
                )
            seen.add(entry.key)
        return self

    def subjects(self) -> dict[str, list[Entry]]:
        """Group entries by subject key, keeping submission order."""
        grouped: dict[str, list[Entry]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.subject_key, []).append(entry)
        return grouped

    @classmethod
    def from_wire(cls, payload: Any) -> Fragment:
        """Build a fragment from its wire mapping.

        Raises ``MalformedFragmentError`` for anything that is not a mapping
        with a non-empty ``groupName`` and a sequence of well-formed entries.
        """
        if not isinstance(payload, Mapping):
            raise MalformedFragmentError(
                f"Fragment payload must be a mapping, got {type(payload).__name__}"
            )
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise MalformedFragmentError(f"Invalid fragment: {exc}") from exc

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data["entries"] = list(data["entries"])
        return data
