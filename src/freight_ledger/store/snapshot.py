"""Load and save full collection snapshots as JSON or YAML files."""

import asyncio
import json
from pathlib import Path
from typing import Any

import structlog
import yaml  # type: ignore[import-untyped]

from freight_ledger.models import COLLECTIONS, Snapshot
from freight_ledger.store.base import CollectionStore

logger = structlog.get_logger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def load_snapshot(path: str | Path) -> Snapshot:
    """Read a snapshot file.

    Collections may use backend names (``bank_entries``) or camelCase
    (``bankEntries``); missing collections are empty.
    """
    path = Path(path)
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() in _YAML_SUFFIXES:
        data = yaml.safe_load(raw) or {}
    else:
        data = json.loads(raw) if raw.strip() else {}
    snapshot = Snapshot.model_validate(data)
    logger.info(
        "snapshot_loaded",
        path=str(path),
        **{name: len(snapshot.collection(name)) for name in COLLECTIONS},
    )
    return snapshot


def dump_snapshot(snapshot: Snapshot, path: str | Path) -> None:
    """Write a snapshot in the wire shape, as YAML for ``.yaml``/``.yml`` paths."""
    path = Path(path)
    data: dict[str, Any] = {
        name: [record.to_record() for record in snapshot.collection(name)]
        for name in COLLECTIONS
    }
    if path.suffix.lower() in _YAML_SUFFIXES:
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, indent=2, ensure_ascii=False)
    path.write_text(text, encoding="utf-8")
    logger.info("snapshot_written", path=str(path))


async def fetch_snapshot(store: CollectionStore) -> Snapshot:
    """Read every collection from a store into one validated snapshot."""
    results = await asyncio.gather(*(store.get_all(name) for name in COLLECTIONS))
    return Snapshot.model_validate(dict(zip(COLLECTIONS, results)))
