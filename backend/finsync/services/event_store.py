from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from finsync.models_sqlalchemy.models import EventDocument
from finsync.utils.logger import logger


STARLING_FEED_ITEM_COLLECTION = "events/starling/feeditem"
ETSY_LEDGER_ENTRY_COLLECTION = "events/etsy/ledgerentry"


def _extract_created_timestamp(body: Dict[str, Any]) -> Optional[int]:
    value = body.get("created_timestamp")
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric created_timestamp %r", value)
        return None


class EventStore:
    """Document-style access to the ``event_documents`` table.

    The store exposes the three primitives the ingestion paths need:

    - ``put``: overwrite a single document by key (webhook events)
    - ``put_many``: merge-upsert a batch of documents in one transaction
    - ``most_recent``: fetch the newest document of a collection by
      ``created_timestamp``

    Each write call owns its transaction: it commits on success and rolls the
    session back before re-raising on failure, so the caller never sees a
    half-applied batch.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, collection: str, document_id: str) -> Optional[EventDocument]:
        return self.db.get(EventDocument, (collection, str(document_id)))

    def count(self, collection: str) -> int:
        return self.db.query(EventDocument).filter(EventDocument.collection == collection).count()

    def put(
        self,
        collection: str,
        document_id: str,
        body: Dict[str, Any],
        *,
        headers: Optional[Dict[str, Any]] = None,
    ) -> EventDocument:
        """Create or fully overwrite the document at ``collection/document_id``."""

        document_id = str(document_id)
        try:
            doc = self.get(collection, document_id)
            if doc is None:
                doc = EventDocument(collection=collection, document_id=document_id)
                self.db.add(doc)
            doc.body = dict(body)
            doc.headers = dict(headers) if headers is not None else None
            doc.created_timestamp = _extract_created_timestamp(body)
            doc.updated_at = datetime.now(timezone.utc)
            self.db.commit()
            return doc
        except Exception:
            logger.error("Failed to write document %s/%s", collection, document_id, exc_info=True)
            self.db.rollback()
            raise

    def put_many(
        self,
        collection: str,
        documents: Iterable[Tuple[str, Dict[str, Any]]],
        *,
        merge: bool = True,
    ) -> int:
        """Write ``(document_id, body)`` pairs atomically.

        With ``merge=True`` fields already stored but absent from the new body
        are preserved (shallow merge). Either every document of the batch is
        committed or none is.
        """

        staged: Dict[str, EventDocument] = {}
        now = datetime.now(timezone.utc)
        try:
            for document_id, body in documents:
                document_id = str(document_id)
                doc = staged.get(document_id) or self.get(collection, document_id)
                if doc is None:
                    doc = EventDocument(collection=collection, document_id=document_id, body={})
                    self.db.add(doc)
                staged[document_id] = doc

                if merge and doc.body:
                    merged = dict(doc.body)
                    merged.update(body)
                else:
                    merged = dict(body)
                # Assign a fresh dict so the JSON column is flagged dirty.
                doc.body = merged
                doc.created_timestamp = _extract_created_timestamp(merged)
                doc.updated_at = now

            self.db.commit()
        except Exception:
            logger.error(
                "Batch write to %s failed; rolling back %s documents",
                collection,
                len(staged),
                exc_info=True,
            )
            self.db.rollback()
            raise

        return len(staged)

    def most_recent(self, collection: str) -> Optional[EventDocument]:
        """Return the document with the greatest ``created_timestamp``.

        Documents without a timestamp sort last, so they are only returned when
        no document in the collection carries one. A failed query rolls the
        session back before re-raising, so the caller can keep writing with it.
        """

        try:
            return (
                self.db.query(EventDocument)
                .filter(EventDocument.collection == collection)
                .order_by(EventDocument.created_timestamp.desc().nulls_last())
                .limit(1)
                .first()
            )
        except Exception:
            self.db.rollback()
            raise
