"""Minimal PDF token helpers: find indirect references in object source."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterator

_TOKEN_RE = re.compile(
    r"(?P<ref>(?<![\w.+\-])(?P<num>\d+)\s+(?P<gen>\d+)\s+R(?!\w))"
    r"|(?P<string>\()"
    r"|(?P<hex>(?<!<)<(?!<)[0-9A-Fa-f\s]*>)"
    r"|(?P<comment>%[^\r\n]*)"
)
_SINGLE_REF_RE = re.compile(r"^\s*(\d+)\s+(\d+)\s+R\s*$")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


@dataclass(frozen=True, slots=True)
class Reference:
    """An ``N G R`` token found at ``[start, end)`` of the scanned source."""

    start: int
    end: int
    xref: int
    generation: int


def _skip_literal_string(source: str, start: int) -> int:
    """Return the index just past the literal string opening at ``start``."""
    depth = 0
    index = start
    length = len(source)
    while index < length:
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return length


def iter_references(source: str) -> Iterator[Reference]:
    """Yield every indirect reference outside of strings and comments."""

    position = 0
    while True:
        match = _TOKEN_RE.search(source, position)
        if match is None:
            return
        if match.group("string") is not None:
            position = _skip_literal_string(source, match.start())
            continue
        if match.group("ref") is not None:
            yield Reference(
                start=match.start(),
                end=match.end(),
                xref=int(match.group("num")),
                generation=int(match.group("gen")),
            )
        position = match.end()


def split_references(source: str) -> list[str | Reference]:
    """Split object source into literal text chunks and references, in order."""

    parts: list[str | Reference] = []
    position = 0
    for reference in iter_references(source):
        if reference.start > position:
            parts.append(source[position : reference.start])
        parts.append(reference)
        position = reference.end
    if position < len(source):
        parts.append(source[position:])
    return parts


def parse_reference(value: str) -> int | None:
    """Return the object number of a bare ``N G R`` value, else None."""

    match = _SINGLE_REF_RE.match(value)
    if match is None:
        return None
    return int(match.group(1))


def parse_numbers(value: str) -> list[float]:
    """Extract the numbers of an array such as ``[0 0 612 792]``."""

    return [float(token) for token in _NUMBER_RE.findall(value)]
