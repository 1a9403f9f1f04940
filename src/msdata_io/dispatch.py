"""Concurrent random-access reads.

Fans identifier lookups over a RandomAccessReaderProtocol out to a thread
pool, or to asyncio via to_thread, and returns records in request order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from msdata_io.logging import get_logger
from msdata_io.readers.base import RandomAccessReaderProtocol
from msdata_io.types.common import RecordKind
from msdata_io.types.record import Record

_logger = get_logger(__name__)


def read_parallel(
    reader: RandomAccessReaderProtocol,
    identifiers: Sequence[str],
    *,
    kind: RecordKind = "spectrum",
    max_workers: int = 4,
) -> list[Record]:
    """Fetch records by identifier on a thread pool.

    Each task is one random-access read; path-backed readers open a handle
    per read, so no cursor is shared. Results keep the order of identifiers.

    Raises:
        UnknownRecordError: If an identifier is not in the index.
    """
    total = len(identifiers)
    out: list[Record | None] = [None] * total
    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as pool:
        futures = {pool.submit(reader.get_by_id, ident, kind): i for i, ident in enumerate(identifiers)}
        for fut in as_completed(futures):
            out[futures[fut]] = fut.result()
    _logger.debug("read %d records in parallel", total, extra={"count": total, "record_kind": kind})
    return [record for record in out if record is not None]


async def aread_records(
    reader: RandomAccessReaderProtocol,
    identifiers: Sequence[str],
    *,
    kind: RecordKind = "spectrum",
    concurrency: int = 4,
) -> list[Record]:
    """Fetch records from asyncio code without blocking the event loop."""
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))

    async def one(identifier: str) -> Record:
        async with semaphore:
            return await asyncio.to_thread(reader.get_by_id, identifier, kind)

    return list(await asyncio.gather(*(one(i) for i in identifiers)))


__all__ = [
    "aread_records",
    "read_parallel",
]
