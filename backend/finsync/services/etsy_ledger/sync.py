from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from finsync.config import settings
from finsync.models_sqlalchemy import SessionLocal
from finsync.services.etsy_api_client import EtsyApiClient
from finsync.services.etsy_token_storage import SqlTokenStorage
from finsync.services.event_store import EventStore, ETSY_LEDGER_ENTRY_COLLECTION
from finsync.utils.logger import logger

from .persistence import persist_batch
from .state import compute_sync_window, resolve_last_sync_timestamp


# Etsy caps ledger-entry pages at 100.
LEDGER_PAGE_LIMIT = 100


class LedgerEntrySource(Protocol):
    async def get_shop_payment_account_ledger_entries(
        self,
        *,
        shop_id: int,
        min_created: int,
        max_created: int,
        limit: int = LEDGER_PAGE_LIMIT,
        offset: int = 0,
    ) -> Dict[str, Any]: ...


ClientFactory = Callable[[Session, int], LedgerEntrySource]


class EtsyLedgerSyncConfigError(ValueError):
    """Ledger sync configuration is missing or malformed."""


async def fetch_and_persist_ledger_entries(
    client: LedgerEntrySource,
    shop_id: int,
    min_created: int,
    max_created: int,
    persist: Callable[[List[Dict[str, Any]]], int],
) -> int:
    """Walk the ledger API page by page, persisting each page before the next.

    The walk stops on a short page (fewer than ``LEDGER_PAGE_LIMIT`` results,
    including zero), so a window holding an exact multiple of the page size
    costs one extra empty request. Returns the total number of entries
    persisted. Errors propagate; pages committed before the failure stay.
    """

    limit = LEDGER_PAGE_LIMIT
    offset = 0
    total_persisted = 0

    try:
        while True:
            logger.info("[etsy-ledger-sync] Fetching ledger entries: offset=%s, limit=%s", offset, limit)
            response = await client.get_shop_payment_account_ledger_entries(
                shop_id=shop_id,
                min_created=min_created,
                max_created=max_created,
                limit=limit,
                offset=offset,
            )

            entries = (response or {}).get("results") or []
            logger.info("[etsy-ledger-sync] Received %s entries", len(entries))

            total_persisted += persist(entries)

            if len(entries) < limit:
                break
            offset += limit
    except Exception as exc:
        logger.error(
            "[etsy-ledger-sync] Error fetching and persisting ledger entries at offset=%s (persisted so far: %s): %s",
            offset,
            total_persisted,
            exc,
        )
        raise

    logger.info("[etsy-ledger-sync] Total entries persisted: %s", total_persisted)
    return total_persisted


def parse_shop_id(raw: Optional[str]) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise EtsyLedgerSyncConfigError(f"Invalid ETSY_SHOP_ID configuration: {raw!r}") from None


def _cursor_advanced(store: EventStore, cursor: int) -> bool:
    latest = store.most_recent(ETSY_LEDGER_ENTRY_COLLECTION)
    return bool(latest is not None and latest.created_timestamp and latest.created_timestamp > cursor)


def _default_client_factory(db: Session, shop_id: int) -> EtsyApiClient:
    if not settings.ETSY_API_KEY or not settings.ETSY_SHARED_SECRET:
        raise EtsyLedgerSyncConfigError("ETSY_API_KEY and ETSY_SHARED_SECRET must both be configured")
    return EtsyApiClient(
        api_key=settings.ETSY_API_KEY,
        shared_secret=settings.ETSY_SHARED_SECRET,
        token_storage=SqlTokenStorage(db, str(shop_id)),
    )


async def run_etsy_ledger_sync(
    db: Optional[Session] = None,
    *,
    client_factory: Optional[ClientFactory] = None,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """Scheduled entry point: sync Etsy ledger entries since the last stored one.

    Reads configuration at call time. When ``ETSY_LEDGER_SYNC_ENABLED`` is off
    the function returns immediately without touching storage or the API.
    """

    if not settings.ETSY_LEDGER_SYNC_ENABLED:
        logger.info("[etsy-ledger-sync] Sync disabled (ETSY_LEDGER_SYNC_ENABLED=false); skipping")
        return {"status": "disabled"}

    logger.info("[etsy-ledger-sync] Starting Etsy ledger sync")
    start_time = time.time()

    owns_session = db is None
    session: Session = SessionLocal() if db is None else db

    try:
        shop_id = parse_shop_id(settings.ETSY_SHOP_ID)

        factory = client_factory or _default_client_factory
        client = factory(session, shop_id)
        logger.info("[etsy-ledger-sync] Using shop ID %s", shop_id)

        if now is None:
            now = int(time.time())
        span_seconds = settings.etsy_ledger_window_seconds

        store = EventStore(session)
        cursor = resolve_last_sync_timestamp(
            store,
            fallback_policy=settings.ETSY_LEDGER_CURSOR_FALLBACK,
            now=now,
            lookback_seconds=span_seconds,
        )
        window_from, window_to = compute_sync_window(
            cursor,
            now=now,
            window_policy=settings.ETSY_LEDGER_WINDOW_POLICY,
            span_seconds=span_seconds,
        )
        sync_from = window_from
        windows = 0
        total_persisted = 0

        # The cursor only moves when a newer entry is stored, so a window with
        # nothing past the cursor is skipped within this run.
        while True:
            windows += 1
            logger.info(
                "[etsy-ledger-sync] Syncing entries from %s to %s (policy=%s)",
                window_from,
                window_to,
                settings.ETSY_LEDGER_WINDOW_POLICY,
            )
            total_persisted += await fetch_and_persist_ledger_entries(
                client,
                shop_id,
                window_from,
                window_to,
                lambda entries: persist_batch(store, entries),
            )
            if window_to >= now or _cursor_advanced(store, cursor):
                break
            logger.info(
                "[etsy-ledger-sync] No entries after %s up to %s; advancing window",
                cursor,
                window_to,
            )
            window_from, window_to = compute_sync_window(
                window_to,
                now=now,
                window_policy=settings.ETSY_LEDGER_WINDOW_POLICY,
                span_seconds=span_seconds,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "[etsy-ledger-sync] Etsy ledger sync completed: %s entries persisted in %sms",
            total_persisted,
            duration_ms,
        )
        return {
            "status": "completed",
            "shop_id": shop_id,
            "window_from": sync_from,
            "window_to": window_to,
            "windows": windows,
            "total_persisted": total_persisted,
            "duration_ms": duration_ms,
        }
    except Exception as exc:
        logger.error("[etsy-ledger-sync] Etsy ledger sync failed: %s", exc, exc_info=True)
        raise
    finally:
        if owns_session:
            session.close()
