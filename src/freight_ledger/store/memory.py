"""Dict-backed collection store for tests and offline runs."""

import copy
from typing import Any
from uuid import uuid4

import structlog

from freight_ledger.exceptions import RecordNotFoundError
from freight_ledger.models import COLLECTIONS, Snapshot
from freight_ledger.store.base import Record, check_collection

logger = structlog.get_logger(__name__)


class InMemoryStore:
    """Keeps every collection as an insertion-ordered ``{id: record}`` dict.

    Records are copied on the way in and out, so callers never share state
    with the store.
    """

    def __init__(self, collections: dict[str, list[Record]] | None = None):
        self._data: dict[str, dict[str, Record]] = {name: {} for name in COLLECTIONS}
        for name, records in (collections or {}).items():
            for record in records:
                self._insert(check_collection(name), record)

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "InMemoryStore":
        return cls(
            {
                name: [record.to_record() for record in snapshot.collection(name)]
                for name in COLLECTIONS
            }
        )

    def _insert(self, collection: str, record: Record) -> Record:
        stored = copy.deepcopy(record)
        record_id = stored.get("id") or stored.get("_id") or uuid4().hex
        stored["id"] = record_id
        self._data[collection][record_id] = stored
        return copy.deepcopy(stored)

    def _records(self, collection: str) -> dict[str, Record]:
        return self._data[check_collection(collection)]

    async def get_all(self, collection: str) -> list[Record]:
        return [copy.deepcopy(record) for record in self._records(collection).values()]

    async def get(self, collection: str, record_id: str) -> Record:
        records = self._records(collection)
        if record_id not in records:
            raise _not_found(collection, record_id)
        return copy.deepcopy(records[record_id])

    async def create(self, collection: str, record: Record) -> Record:
        check_collection(collection)
        created = self._insert(collection, record)
        logger.debug("record_created", collection=collection, id=created["id"])
        return created

    async def update(self, collection: str, record_id: str, record: Record) -> Record:
        records = self._records(collection)
        if record_id not in records:
            raise _not_found(collection, record_id)
        merged: dict[str, Any] = {**records[record_id], **copy.deepcopy(record), "id": record_id}
        records[record_id] = merged
        logger.debug("record_updated", collection=collection, id=record_id)
        return copy.deepcopy(merged)

    async def delete(self, collection: str, record_id: str) -> None:
        records = self._records(collection)
        if record_id not in records:
            raise _not_found(collection, record_id)
        del records[record_id]
        logger.debug("record_deleted", collection=collection, id=record_id)


def _not_found(collection: str, record_id: str) -> RecordNotFoundError:
    return RecordNotFoundError(f"{collection} record not found: {record_id}", status_code=404)
