"""Persistence adapters for the ledger engine."""

from freight_ledger.store.api import TransportAPIClient
from freight_ledger.store.base import CollectionStore, Record, check_collection
from freight_ledger.store.memory import InMemoryStore
from freight_ledger.store.snapshot import dump_snapshot, fetch_snapshot, load_snapshot

__all__ = [
    # Port
    "CollectionStore",
    "Record",
    "check_collection",
    # Adapters
    "InMemoryStore",
    "TransportAPIClient",
    # Snapshots
    "dump_snapshot",
    "fetch_snapshot",
    "load_snapshot",
]
