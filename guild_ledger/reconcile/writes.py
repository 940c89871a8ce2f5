"""Ordered write-through of record corrections."""

from __future__ import annotations

import asyncio
import datetime as dt

from ..core.records import EventRecord
from ..data.store import RecordStore


class WritePort:
    """Submit full-record writes with at most one in flight per (module, date).

    Writes to the same record complete in submission order; writes to
    different records proceed independently. A record's lock lives only while
    a write for it is running or waiting.
    """

    def __init__(self, stores: dict[str, RecordStore]) -> None:
        self.stores = stores
        self._locks: dict[tuple[str, dt.date], asyncio.Lock] = {}
        self._pending: dict[tuple[str, dt.date], int] = {}

    async def submit(self, record: EventRecord) -> EventRecord:
        store = self.stores[record.module]
        key = (record.module, record.date)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._pending[key] = self._pending.get(key, 0) + 1
        try:
            async with lock:
                return await store.upsert(record)
        finally:
            self._pending[key] -= 1
            if not self._pending[key]:
                del self._pending[key]
                del self._locks[key]
