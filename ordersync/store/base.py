"""
store/base.py — Record store interface and the Snapshot value

The shared store keeps each collection as ONE opaque document. There is no
per-record addressing and no version token, so every mutation is a full
read-modify-write of the collection:

    snapshot = await read_orders(store, name)     # fresh read
    snapshot = snapshot.replace_record(updated)   # pure splice
    await write_orders(store, snapshot)           # whole-document write

Business Rules:
- fetch() returning None means "document absent" and reads as an empty
  collection; transport or database errors raise StoreReadFailure instead
- replace() returns False on failure; write_orders turns that into
  StoreWriteFailure so nothing downstream mistakes it for success
- A stored record that does not validate as an OrderRecord raises
  StoreReadFailure; nothing is written on top of a collection we cannot read
- Snapshot is immutable: splices return a new Snapshot and never touch
  the one they were derived from

Called by: services/import_service.py, services/order_service.py,
           services/stock_service.py
Depends on: schemas/orders.py, errors.py
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from pydantic import ValidationError

from ..errors import StoreReadFailure, StoreWriteFailure
from ..schemas.orders import OrderRecord
from ..utils import utcnow

log = logging.getLogger(__name__)


class RecordStore(ABC):
    """A versionless document store: one whole list per collection name."""

    @abstractmethod
    async def fetch(self, collection: str) -> list[dict] | None:
        """Return every record of the collection, or None if absent."""

    @abstractmethod
    async def replace(self, collection: str, records: list[dict]) -> bool:
        """Overwrite the collection with records. True on success."""

    async def close(self) -> None:
        return None


@dataclass(frozen=True)
class Snapshot:
    """One full read of the orders collection."""

    collection: str
    records: tuple[OrderRecord, ...] = ()
    fetched_at: datetime = field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.records)

    def find(self, order_id: str) -> OrderRecord | None:
        for record in self.records:
            if record.id == order_id:
                return record
        return None

    def replace_record(self, record: OrderRecord) -> Snapshot:
        """Replace the record with the same id, preserving list position."""
        records = tuple(record if r.id == record.id else r for r in self.records)
        return Snapshot(self.collection, records, self.fetched_at)

    def prepend(self, record: OrderRecord) -> Snapshot:
        return Snapshot(self.collection, (record, *self.records), self.fetched_at)

    def extend(self, records: Iterable[OrderRecord]) -> Snapshot:
        return Snapshot(
            self.collection, (*self.records, *records), self.fetched_at
        )

    def to_documents(self) -> list[dict]:
        return [r.to_document() for r in self.records]


async def read_orders(store: RecordStore, collection: str) -> Snapshot:
    """Fresh read of the orders collection. Never served from memory."""
    raw = await store.fetch(collection)
    if raw is None:
        log.info("Collection %s absent — treating as empty", collection)
        raw = []
    return Snapshot(collection, parse_records(collection, raw))


def parse_records(collection: str, raw: Iterable[dict]) -> tuple[OrderRecord, ...]:
    """Validate stored documents. A malformed record fails the whole read."""
    try:
        return tuple(OrderRecord.model_validate(item) for item in raw)
    except ValidationError as e:
        log.error("Malformed record in %s: %s", collection, e)
        raise StoreReadFailure(
            f"{collection} holds a malformed record ({e.error_count()} errors)"
        ) from e


async def write_orders(store: RecordStore, snapshot: Snapshot) -> Snapshot:
    """Write the whole snapshot back. Raises StoreWriteFailure on failure."""
    ok = await store.replace(snapshot.collection, snapshot.to_documents())
    if not ok:
        raise StoreWriteFailure(
            f"Write to {snapshot.collection} failed — changes were not saved, retry"
        )
    return snapshot
