"""Offset index: identifier to byte offset, per record namespace.

build_index obtains an index by the cheapest trustworthy route:

1. the index embedded in an indexedmzML wrapper, if it validates;
2. a side-car JSON file whose stored document checksum matches;
3. a single forward linear scan of the document.

A corrupt embedded or side-car index is logged and skipped, never fatal.
Once built, an OffsetIndex is read-only and safe to share across threads.
"""

from __future__ import annotations

import hashlib
import os
import re
from collections.abc import Generator
from pathlib import Path
from typing import BinaryIO

from lxml import etree

from msdata_io._exceptions import IndexUnavailableError, InvalidIndexError, UnknownRecordError
from msdata_io._json_bridge import (
    InvalidJsonError,
    JSONValue,
    dump_json_str,
    load_json_str,
    narrow_json_to_dict,
    narrow_json_to_list,
    optional_int,
    optional_str,
    require_int,
    require_str,
)
from msdata_io.codecs.registry import CodecRegistry
from msdata_io.config import DEFAULT_CHUNK_SIZE
from msdata_io.logging import get_logger
from msdata_io.parser import StructuralParser
from msdata_io.types.common import RecordKind
from msdata_io.types.index import IndexEntry, IndexStrategy, make_entry

_logger = get_logger(__name__)

SIDECAR_SUFFIX = ".msidx.json"
SIDECAR_VERSION = 1

# Bytes read from each end of the file for the fallback document checksum.
_CHECKSUM_SPAN = 1 << 20
# The indexListOffset and fileChecksum elements sit in the last few hundred bytes.
_TAIL_SPAN = 4096

_INDEX_LIST_OFFSET = re.compile(rb"<indexListOffset>\s*(\d+)\s*</indexListOffset>")
_FILE_CHECKSUM = re.compile(rb"<fileChecksum>\s*([0-9a-fA-F]{40})\s*</fileChecksum>")
_INDEX_LIST_END = re.compile(rb"</indexList\s*>")
_START_TAGS: dict[RecordKind, re.Pattern[bytes]] = {
    "spectrum": re.compile(rb"<spectrum[\s>/]"),
    "chromatogram": re.compile(rb"<chromatogram[\s>/]"),
}


def _validate(entries: list[IndexEntry], kind: RecordKind, source: str) -> None:
    seen: set[str] = set()
    previous = -1
    for entry in entries:
        if entry["id"] in seen:
            raise InvalidIndexError(source, f"duplicate {kind} id {entry['id']!r}")
        seen.add(entry["id"])
        if entry["offset"] < previous:
            raise InvalidIndexError(source, f"{kind} offsets decrease at {entry['id']!r}")
        previous = entry["offset"]


class OffsetIndex:
    """Read-only mapping from record identifier to byte offset.

    Spectrum and chromatogram identifiers live in separate namespaces.
    Entries of each namespace are kept in document order.
    """

    def __init__(
        self,
        spectra: list[IndexEntry],
        chromatograms: list[IndexEntry],
        strategy: IndexStrategy,
        source: str = "",
    ) -> None:
        """Build an index from entries in document order.

        Raises:
            InvalidIndexError: If ids repeat or offsets decrease within a
                namespace.
        """
        _validate(spectra, "spectrum", source)
        _validate(chromatograms, "chromatogram", source)
        self._entries: dict[RecordKind, list[IndexEntry]] = {
            "spectrum": list(spectra),
            "chromatogram": list(chromatograms),
        }
        self._positions: dict[RecordKind, dict[str, int]] = {
            kind: {e["id"]: i for i, e in enumerate(entries)} for kind, entries in self._entries.items()
        }
        self._strategy: IndexStrategy = strategy
        self._source = source

    @property
    def strategy(self) -> IndexStrategy:
        return self._strategy

    @property
    def source(self) -> str:
        return self._source

    def entry(self, identifier: str, kind: RecordKind = "spectrum") -> IndexEntry:
        """Return the entry for identifier.

        Raises:
            UnknownRecordError: If identifier is not indexed in kind.
        """
        position = self._positions[kind].get(identifier)
        if position is None:
            raise UnknownRecordError(identifier, kind)
        return self._entries[kind][position]

    def lookup(self, identifier: str, kind: RecordKind = "spectrum") -> int:
        """Return the byte offset of identifier.

        Raises:
            UnknownRecordError: If identifier is not indexed in kind.
        """
        return self.entry(identifier, kind)["offset"]

    def position(self, identifier: str, kind: RecordKind = "spectrum") -> int:
        position = self._positions[kind].get(identifier)
        if position is None:
            raise UnknownRecordError(identifier, kind)
        return position

    def by_position(self, position: int, kind: RecordKind = "spectrum") -> IndexEntry:
        """Return the entry at an ordinal position in document order.

        Raises:
            UnknownRecordError: If position is out of range.
        """
        entries = self._entries[kind]
        if position < 0 or position >= len(entries):
            raise UnknownRecordError(f"#{position}", kind)
        return entries[position]

    def iter_in_order(self, kind: RecordKind = "spectrum") -> Generator[IndexEntry, None, None]:
        yield from self._entries[kind]

    def entries(self, kind: RecordKind = "spectrum") -> list[IndexEntry]:
        return list(self._entries[kind])

    def ids(self, kind: RecordKind = "spectrum") -> list[str]:
        return [e["id"] for e in self._entries[kind]]

    def count(self, kind: RecordKind = "spectrum") -> int:
        return len(self._entries[kind])

    def contains(self, identifier: str, kind: RecordKind = "spectrum") -> bool:
        return identifier in self._positions[kind]

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and identifier in self._positions["spectrum"]

    def __len__(self) -> int:
        return len(self._entries["spectrum"]) + len(self._entries["chromatogram"])

    def __repr__(self) -> str:
        return (
            f"OffsetIndex(strategy={self._strategy!r}, spectra={self.count('spectrum')}, "
            f"chromatograms={self.count('chromatogram')})"
        )


def _stream_size(stream: BinaryIO) -> int:
    stream.seek(0, os.SEEK_END)
    return stream.tell()


def _read_range(stream: BinaryIO, start: int, length: int) -> bytes:
    stream.seek(start)
    return stream.read(length)


def declared_file_checksum(stream: BinaryIO) -> str | None:
    """Return the <fileChecksum> SHA-1 declared in the document tail, if any."""
    size = _stream_size(stream)
    tail = _read_range(stream, max(size - _TAIL_SPAN, 0), _TAIL_SPAN)
    m = _FILE_CHECKSUM.search(tail)
    if m is None:
        return None
    return m.group(1).decode("ascii").lower()


def document_checksum(stream: BinaryIO) -> str:
    """Identify the document contents cheaply.

    Uses the declared <fileChecksum> when present; otherwise SHA-1 over
    the file size and the first and last MiB.
    """
    declared = declared_file_checksum(stream)
    if declared is not None:
        return f"sha1:{declared}"
    size = _stream_size(stream)
    digest = hashlib.sha1(str(size).encode("ascii"))
    digest.update(_read_range(stream, 0, _CHECKSUM_SPAN))
    if size > _CHECKSUM_SPAN:
        digest.update(_read_range(stream, max(size - _CHECKSUM_SPAN, _CHECKSUM_SPAN), _CHECKSUM_SPAN))
    return f"sha1-span:{digest.hexdigest()}"


def verify_file_checksum(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bool | None:
    """Verify the declared <fileChecksum> against the document bytes.

    The checksum covers everything up to and including the
    "<fileChecksum>" start tag.

    Returns:
        None if no checksum is declared, else whether it matches.
    """
    declared = declared_file_checksum(stream)
    if declared is None:
        return None
    size = _stream_size(stream)
    tail_start = max(size - _TAIL_SPAN, 0)
    tail = _read_range(stream, tail_start, _TAIL_SPAN)
    covered = tail_start + tail.rindex(b"<fileChecksum>") + len(b"<fileChecksum>")
    digest = hashlib.sha1()
    stream.seek(0)
    remaining = covered
    while remaining > 0:
        chunk = stream.read(min(chunk_size, remaining))
        if not chunk:
            break
        digest.update(chunk)
        remaining -= len(chunk)
    return digest.hexdigest() == declared


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    return etree.QName(tag).localname if isinstance(tag, str) else ""


def _offset_lands_on(stream: BinaryIO, offset: int, kind: RecordKind) -> bool:
    head = _read_range(stream, offset, 32)
    return _START_TAGS[kind].match(head) is not None


def read_embedded_index(stream: BinaryIO, source: str = "") -> OffsetIndex | None:
    """Read and validate the indexList of an indexedmzML document.

    Returns:
        The index, or None if the document carries no embedded index.

    Raises:
        InvalidIndexError: If an embedded index is present but unusable.
    """
    size = _stream_size(stream)
    tail = _read_range(stream, max(size - _TAIL_SPAN, 0), _TAIL_SPAN)
    m = _INDEX_LIST_OFFSET.search(tail)
    if m is None:
        return None
    list_offset = int(m.group(1))
    if list_offset >= size:
        raise InvalidIndexError(source, f"indexListOffset {list_offset} beyond end of file")
    block = _read_range(stream, list_offset, size - list_offset)
    if not block.startswith(b"<indexList"):
        raise InvalidIndexError(source, f"indexListOffset {list_offset} does not point at <indexList>")
    end = _INDEX_LIST_END.search(block)
    if end is None:
        raise InvalidIndexError(source, "unterminated <indexList>")
    try:
        root = etree.fromstring(block[: end.end()])
    except etree.XMLSyntaxError as e:
        raise InvalidIndexError(source, f"malformed <indexList>: {e}") from e

    found: dict[RecordKind, list[IndexEntry]] = {"spectrum": [], "chromatogram": []}
    for index_el in root:
        if _local_name(index_el) != "index":
            continue
        name = index_el.get("name", "")
        if name not in found:
            _logger.debug("ignoring index %s", name, extra={"source": source})
            continue
        kind: RecordKind = "spectrum" if name == "spectrum" else "chromatogram"
        for offset_el in index_el:
            if _local_name(offset_el) != "offset":
                continue
            try:
                offset = int((offset_el.text or "").strip())
            except ValueError as e:
                raise InvalidIndexError(source, f"non-integer offset for {offset_el.get('idRef')!r}") from e
            if offset >= list_offset:
                raise InvalidIndexError(source, f"offset {offset} lies inside the index itself")
            if not _offset_lands_on(stream, offset, kind):
                raise InvalidIndexError(source, f"offset {offset} is not a {kind} start tag")
            found[kind].append(make_entry(offset_el.get("idRef", ""), offset))
    return OffsetIndex(found["spectrum"], found["chromatogram"], "embedded", source)


def _entry_to_json(entry: IndexEntry) -> dict[str, JSONValue]:
    return {"id": entry["id"], "offset": entry["offset"], "length": entry["length"], "parent": entry["parent"]}


def _entry_from_json(value: JSONValue) -> IndexEntry:
    obj = narrow_json_to_dict(value)
    return make_entry(
        require_str(obj, "id"),
        require_int(obj, "offset"),
        optional_int(obj, "length"),
        optional_str(obj, "parent"),
    )


def write_sidecar(index: OffsetIndex, path: Path, checksum: str) -> None:
    """Persist an index next to its document.

    Args:
        index: Index to persist.
        path: Side-car file path.
        checksum: document_checksum() of the indexed document.
    """
    payload: dict[str, JSONValue] = {
        "version": SIDECAR_VERSION,
        "document_checksum": checksum,
        "spectrum": [_entry_to_json(e) for e in index.iter_in_order("spectrum")],
        "chromatogram": [_entry_to_json(e) for e in index.iter_in_order("chromatogram")],
    }
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(dump_json_str(payload), encoding="utf-8")
    tmp.replace(path)


def load_sidecar(path: Path) -> tuple[OffsetIndex, str]:
    """Load a side-car index.

    Returns:
        Tuple of (index, stored document checksum).

    Raises:
        InvalidIndexError: If the file is unreadable or malformed.
    """
    try:
        obj = narrow_json_to_dict(load_json_str(path.read_text(encoding="utf-8")))
        version = require_int(obj, "version")
        if version != SIDECAR_VERSION:
            raise InvalidIndexError(str(path), f"unsupported side-car version {version}")
        checksum = require_str(obj, "document_checksum")
        spectra = [_entry_from_json(v) for v in narrow_json_to_list(obj.get("spectrum", []))]
        chromatograms = [_entry_from_json(v) for v in narrow_json_to_list(obj.get("chromatogram", []))]
    except (OSError, InvalidJsonError) as e:
        raise InvalidIndexError(str(path), f"unreadable side-car index: {e}") from e
    return OffsetIndex(spectra, chromatograms, "sidecar", str(path)), checksum


def sidecar_path_for(path: Path) -> Path:
    return path.with_name(path.name + SIDECAR_SUFFIX)


def scan_index(stream: BinaryIO, *, chunk_size: int = DEFAULT_CHUNK_SIZE, source: str = "") -> OffsetIndex:
    """Build an index with one forward scan of the document.

    Raises:
        MalformedDocumentError: If the document grammar breaks.
    """
    parser = StructuralParser(stream, CodecRegistry(), chunk_size=chunk_size, label=source or "<stream>")
    found: dict[RecordKind, list[IndexEntry]] = {"spectrum": [], "chromatogram": []}
    for scanned in parser.scan_offsets():
        found[scanned["kind"]].append(make_entry(scanned["id"], scanned["offset"], scanned["length"]))
    return OffsetIndex(found["spectrum"], found["chromatogram"], "scan", source)


def _try_embedded(stream: BinaryIO, source: str) -> OffsetIndex | None:
    try:
        return read_embedded_index(stream, source)
    except InvalidIndexError as e:
        _logger.warning(
            "embedded index rejected: %s",
            e.message,
            extra={"source": source, "strategy": "embedded", "error_type": type(e).__name__},
        )
        return None


def _try_sidecar(stream: BinaryIO, sidecar: Path, source: str) -> OffsetIndex | None:
    if not sidecar.is_file():
        return None
    try:
        index, stored = load_sidecar(sidecar)
    except InvalidIndexError as e:
        _logger.warning(
            "side-car index rejected: %s",
            e.message,
            extra={"source": source, "strategy": "sidecar", "error_type": type(e).__name__},
        )
        return None
    if stored != document_checksum(stream):
        _logger.warning(
            "side-car index is stale: %s",
            sidecar,
            extra={"source": source, "strategy": "sidecar"},
        )
        return None
    return index


def build_index(
    source: Path | BinaryIO,
    *,
    sidecar_path: Path | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> OffsetIndex:
    """Obtain an offset index: embedded, then side-car, then linear scan.

    Args:
        source: Path to an mzML document, or a seekable binary stream.
        sidecar_path: Side-car location. Defaults to "<file>.msidx.json"
            for path sources; streams have no default.
        chunk_size: Read size for the linear scan.

    Returns:
        OffsetIndex whose strategy records which route succeeded.

    Raises:
        IndexUnavailableError: If source is a stream that cannot seek.
        MalformedDocumentError: If the linear scan hits a grammar break.
    """
    if isinstance(source, Path):
        with source.open("rb") as stream:
            return _build_from_stream(
                stream,
                sidecar_path if sidecar_path is not None else sidecar_path_for(source),
                chunk_size,
                str(source),
            )
    if not source.seekable():
        raise IndexUnavailableError("<stream>", "cannot index a non-seekable stream")
    return _build_from_stream(source, sidecar_path, chunk_size, "<stream>")


def _build_from_stream(
    stream: BinaryIO,
    sidecar: Path | None,
    chunk_size: int,
    source: str,
) -> OffsetIndex:
    index = _try_embedded(stream, source)
    if index is not None:
        return index
    if sidecar is not None:
        index = _try_sidecar(stream, sidecar, source)
        if index is not None:
            return index
    _logger.info("building index by linear scan", extra={"source": source, "strategy": "scan"})
    return scan_index(stream, chunk_size=chunk_size, source=source)


__all__ = [
    "SIDECAR_SUFFIX",
    "OffsetIndex",
    "build_index",
    "declared_file_checksum",
    "document_checksum",
    "load_sidecar",
    "read_embedded_index",
    "scan_index",
    "sidecar_path_for",
    "verify_file_checksum",
    "write_sidecar",
]
