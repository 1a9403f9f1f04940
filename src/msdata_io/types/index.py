"""TypedDict definitions for offset index entries."""

from __future__ import annotations

from typing import Literal, TypedDict

# How an OffsetIndex was obtained, in order of preference.
IndexStrategy = Literal["embedded", "sidecar", "scan"]


class IndexEntry(TypedDict):
    """Location of one record within its source.

    Attributes:
        id: Record identifier.
        offset: Byte offset of the record's start tag.
        length: Byte length of the record element, if known.
        parent: Identifier of an enclosing container, if any.
    """

    id: str
    offset: int
    length: int | None
    parent: str | None


def make_entry(
    identifier: str,
    offset: int,
    length: int | None = None,
    parent: str | None = None,
) -> IndexEntry:
    """Create an IndexEntry TypedDict."""
    return IndexEntry(id=identifier, offset=offset, length=length, parent=parent)


__all__ = [
    "IndexEntry",
    "IndexStrategy",
    "make_entry",
]
