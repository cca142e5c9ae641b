from __future__ import annotations

from typing import Any, Dict, List, Sequence

from finsync.services.event_store import EventStore, ETSY_LEDGER_ENTRY_COLLECTION
from finsync.utils.logger import logger


ENTRY_ID_FIELD = "entry_id"


def _has_entry_id(entry: Dict[str, Any]) -> bool:
    value = entry.get(ENTRY_ID_FIELD)
    return value is not None and value != ""


def persist_batch(store: EventStore, entries: Sequence[Dict[str, Any]]) -> int:
    """Merge-upsert one page of ledger entries in a single transaction.

    Entries without ``entry_id`` are logged and skipped. Returns the number of
    entries written; a failing commit rolls back the whole page and propagates.
    """

    if not entries:
        return 0

    valid_entries: List[Dict[str, Any]] = []
    for entry in entries:
        if not isinstance(entry, dict) or not _has_entry_id(entry):
            logger.warning("[etsy-ledger-sync] Entry missing entry_id, skipping: %s", entry)
            continue
        valid_entries.append(entry)

    if not valid_entries:
        return 0

    store.put_many(
        ETSY_LEDGER_ENTRY_COLLECTION,
        ((str(entry[ENTRY_ID_FIELD]), entry) for entry in valid_entries),
        merge=True,
    )
    logger.info("[etsy-ledger-sync] Persisted %s entries", len(valid_entries))

    return len(valid_entries)
