from __future__ import annotations

import time
from typing import Optional, Tuple

from finsync.services.event_store import EventStore, ETSY_LEDGER_ENTRY_COLLECTION
from finsync.utils.logger import logger


DEFAULT_LOOKBACK_SECONDS = 30 * 24 * 60 * 60

FALLBACK_LOOKBACK = "lookback"
FALLBACK_EPOCH = "epoch"
FALLBACK_POLICIES = (FALLBACK_LOOKBACK, FALLBACK_EPOCH)

WINDOW_CAPPED = "capped"
WINDOW_UNTIL_NOW = "until_now"
WINDOW_POLICIES = (WINDOW_CAPPED, WINDOW_UNTIL_NOW)


def _now_ts() -> int:
    return int(time.time())


def fallback_timestamp(
    policy: str,
    *,
    now: Optional[int] = None,
    lookback_seconds: int = DEFAULT_LOOKBACK_SECONDS,
) -> int:
    """Starting point used when the ledger store cannot provide a cursor.

    - ``lookback``: ``now - lookback_seconds`` (30 days by default)
    - ``epoch``: ``0``, so the first run walks the entire available history
    """

    if policy == FALLBACK_EPOCH:
        return 0
    if policy != FALLBACK_LOOKBACK:
        raise ValueError(f"Unknown cursor fallback policy: {policy!r}")
    if now is None:
        now = _now_ts()
    return now - lookback_seconds


def resolve_last_sync_timestamp(
    store: EventStore,
    *,
    fallback_policy: str = FALLBACK_LOOKBACK,
    now: Optional[int] = None,
    lookback_seconds: int = DEFAULT_LOOKBACK_SECONDS,
) -> int:
    """Derive the sync cursor from the newest persisted ledger entry.

    The cursor is never stored separately: it is the ``created_timestamp`` of
    the most recent document in ``events/etsy/ledgerentry``. An empty
    collection, a top entry without a timestamp, or a failing query all
    resolve to the fallback instead of raising.
    """

    default = fallback_timestamp(fallback_policy, now=now, lookback_seconds=lookback_seconds)

    try:
        latest = store.most_recent(ETSY_LEDGER_ENTRY_COLLECTION)
    except Exception as exc:
        logger.error(
            "[etsy-ledger-sync] Error getting last sync timestamp, using %s fallback %s: %s",
            fallback_policy,
            default,
            exc,
            exc_info=True,
        )
        return default

    if latest is None:
        logger.info(
            "[etsy-ledger-sync] No existing entries found, using %s fallback: %s",
            fallback_policy,
            default,
        )
        return default

    timestamp = latest.created_timestamp
    if not timestamp:
        logger.warning(
            "[etsy-ledger-sync] Last entry %s missing created_timestamp, using %s fallback: %s",
            latest.document_id,
            fallback_policy,
            default,
        )
        return default

    logger.info("[etsy-ledger-sync] Last sync timestamp: %s (entry %s)", timestamp, latest.document_id)
    return int(timestamp)


def compute_sync_window(
    cursor: int,
    *,
    now: Optional[int] = None,
    window_policy: str = WINDOW_CAPPED,
    span_seconds: int = DEFAULT_LOOKBACK_SECONDS,
) -> Tuple[int, int]:
    """Return ``(min_created, max_created)`` for the next pull.

    ``capped`` limits a single run to ``span_seconds`` after the cursor, so a
    job that has been idle for months catches up over several runs.
    ``until_now`` always pulls up to the current time.
    """

    if now is None:
        now = _now_ts()

    if window_policy == WINDOW_UNTIL_NOW:
        return cursor, now
    if window_policy != WINDOW_CAPPED:
        raise ValueError(f"Unknown sync window policy: {window_policy!r}")

    return cursor, min(now, cursor + span_seconds)
