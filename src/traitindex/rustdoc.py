"""Loader for rustdoc ``trait.impl`` implementor files.

rustdoc writes one JavaScript file per trait, e.g.
``trait.impl/core/marker/trait.Copy.js``, of the form::

    (function() {
        var implementors = Object.fromEntries([["crate_a", [["impl ... for ..."], ...]], ...]);
        if (window.register_implementors) { ... } else { ... }
    })()
    //{"start":57,"fragment_lengths":[579,8495,568]}

Each crate becomes one Fragment whose entries are parsed out of the impl
HTML snippets. Nothing here touches the network; callers hand in text or a
local path.
"""

from __future__ import annotations

import html
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from traitindex.errors import ErrorCode, TraitIndexError
from traitindex.models.fragment import Entry, Fragment

if TYPE_CHECKING:
    from traitindex.registry import Registry

log = structlog.get_logger()

_PAYLOAD_START = "Object.fromEntries("
_TRAILER_RE = re.compile(r"^//\s*(\{.*\})\s*$", re.MULTILINE)
_ANCHOR_RE = re.compile(
    r'<a\s+class="(?P<kind>[^"]*)"\s+href="(?P<href>[^"]*)"'
    r'(?:\s+title="(?P<title>[^"]*)")?\s*>(?P<text>.*?)</a>',
    re.DOTALL,
)
_TAG_RE = re.compile(r"<[^>]+>")
_WHERE_RE = re.compile(r"<div class=\"where\">|\s+where\s")
_FILE_NAME_RE = re.compile(r"^trait\.(?P<name>[^.]+)\.js$")


def _malformed(message: str) -> TraitIndexError:
    return TraitIndexError(
        ErrorCode.MALFORMED_TRAIT_IMPL,
        message,
        "Regenerate the documentation with a supported rustdoc version.",
        recoverable=True,
    )


def _plain(fragment_html: str) -> str:
    return " ".join(html.unescape(_TAG_RE.sub("", fragment_html)).split())


def subject_from_path(path: str | Path) -> str | None:
    """``trait.Copy.js`` -> ``Copy``."""
    match = _FILE_NAME_RE.match(Path(path).name)
    return match.group("name") if match else None


def _strip_impl_prefix(text: str) -> str:
    """``impl<T: Copy> From<T>`` -> ``From<T>``."""
    text = text.strip()
    if text.startswith("unsafe "):
        text = text[len("unsafe ") :].lstrip()
    if text.startswith("impl"):
        text = text[len("impl") :].lstrip()
    if text.startswith("<"):
        depth = 0
        for i, ch in enumerate(text):
            if ch == "<":
                depth += 1
            elif ch == ">" and text[i - 1] != "-":
                depth -= 1
                if depth == 0:
                    text = text[i + 1 :]
                    break
    return text.strip()


def parse_impl_html(impl_html: str, default_subject: str | None = None) -> Entry | None:
    """Parse one ``impl <Trait> for <Type>`` snippet.

    The subject key is the bare trait name. Generic arguments are kept in the
    implementor ref so that ``impl From<u8> for Foo`` and ``impl From<u16> for
    Foo`` (or ``Copy for W<u8>`` and ``Copy for W<u16>``) stay distinct.

    Returns ``None`` for negative impls (``impl !Send for T``), which list
    types that do *not* implement the trait.
    """
    head, sep, tail = impl_html.partition(" for ")
    if not sep:
        raise _malformed(f"Impl snippet has no 'for' clause: {impl_html[:80]!r}")

    # Bounds on generic parameters come first; the implemented trait is last.
    traits = [m for m in _ANCHOR_RE.finditer(head) if m.group("kind") == "trait"]
    trait = traits[-1] if traits else None
    if trait is not None:
        if head[: trait.start()].rstrip().endswith("!"):
            return None
        subject_key = _plain(trait.group("text"))
        trait_text = _plain(head[trait.start() :])
    elif default_subject:
        trait_text = _strip_impl_prefix(_plain(head))
        if trait_text.startswith("!"):
            return None
        subject_key = default_subject
    else:
        raise _malformed(f"Cannot find the trait in impl snippet: {impl_html[:80]!r}")

    tail = _WHERE_RE.split(tail, maxsplit=1)[0]
    label = _plain(tail)
    if not label:
        raise _malformed(f"Impl snippet has no implementor: {impl_html[:80]!r}")

    target = _ANCHOR_RE.search(tail)
    if target is None:
        implementor_ref = label
    else:
        if target.group("title"):
            # title="enum diffusion_rs_backend::BnbQuantType"
            path = html.unescape(target.group("title")).split(" ", 1)[-1]
        else:
            path = target.group("href")
        # W<u16> -> kit::W<u16>
        name = _plain(target.group("text"))
        implementor_ref = label.replace(name, path, 1) if name and name in label else path

    _, lt, trait_args = trait_text.partition("<")
    if lt:
        implementor_ref = f"<{implementor_ref} as {subject_key}<{trait_args}>"

    return Entry(subject_key=subject_key, implementor_label=label, implementor_ref=implementor_ref)


def _extract_payload(text: str) -> list[Any]:
    start = text.find(_PAYLOAD_START)
    if start < 0:
        raise _malformed("No Object.fromEntries(...) payload found")
    try:
        payload, _ = json.JSONDecoder().raw_decode(text, start + len(_PAYLOAD_START))
    except json.JSONDecodeError as exc:
        raise _malformed(f"Implementor payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise _malformed("Implementor payload must be a list of [crate, impls] pairs")
    return payload


def parse_trait_impl(text: str, subject_key: str | None = None) -> list[Fragment]:
    """Parse a whole ``trait.impl`` file into one Fragment per crate.

    ``subject_key`` is used for snippets whose trait is not linked.
    Fragments come back in file order.
    """
    payload = _extract_payload(text)
    fragments: list[Fragment] = []
    for pair in payload:
        if not (isinstance(pair, list) and len(pair) == 2 and pair[0] and isinstance(pair[0], str)):
            raise _malformed(f"Expected [crate, impls], got {pair!r:.80}")
        crate, impls = pair
        if not isinstance(impls, list):
            raise _malformed(f"Impls for crate {crate!r} must be a list")

        entries: dict[tuple[str, str], Entry] = {}
        for item in impls:
            # Newer rustdoc emits [html, synthetic, types...]; older emits html.
            snippet = item[0] if isinstance(item, list) and item else item
            if not isinstance(snippet, str):
                raise _malformed(f"Impl for crate {crate!r} is not a string: {item!r:.80}")
            entry = parse_impl_html(snippet, default_subject=subject_key)
            if entry is not None:
                entries.setdefault(entry.key, entry)

        fragments.append(Fragment(group_name=crate, entries=tuple(entries.values())))

    trailer = _TRAILER_RE.search(text)
    if trailer is not None:
        try:
            lengths = json.loads(trailer.group(1)).get("fragment_lengths")
        except (json.JSONDecodeError, AttributeError):
            lengths = None
        if isinstance(lengths, list) and len(lengths) != len(fragments):
            log.warning(
                "trait_impl_length_mismatch",
                declared=len(lengths),
                parsed=len(fragments),
            )

    return fragments


def load_trait_impl(path: str | Path, registry: Registry) -> int:
    """Parse ``path`` and submit every crate fragment. Returns the count."""
    path = Path(path)
    fragments = parse_trait_impl(path.read_text(encoding="utf-8"), subject_from_path(path))
    for fragment in fragments:
        registry.submit(fragment)
    log.info("trait_impl_loaded", path=str(path), fragments=len(fragments))
    return len(fragments)
