"""Persistence port shared by every collection backend."""

from typing import Any, Protocol, runtime_checkable

from freight_ledger.models import COLLECTIONS

Record = dict[str, Any]


@runtime_checkable
class CollectionStore(Protocol):
    """Read-all and write-one access to the named collections.

    Records travel in their camelCase wire shape; validation into models
    happens at the caller.
    """

    async def get_all(self, collection: str) -> list[Record]: ...

    async def get(self, collection: str, record_id: str) -> Record: ...

    async def create(self, collection: str, record: Record) -> Record: ...

    async def update(self, collection: str, record_id: str, record: Record) -> Record: ...

    async def delete(self, collection: str, record_id: str) -> None: ...


def check_collection(collection: str) -> str:
    """Return ``collection`` if it is known, else raise ValueError."""
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    return collection
