from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from finsync.models_sqlalchemy import Base


# JSONB on Postgres, plain JSON everywhere else (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventDocument(Base):
    """Append-mostly event log for all ingested third-party activity.

    Documents are addressed by ``(collection, document_id)`` where the
    collection is a path-like name such as ``events/starling/feeditem`` or
    ``events/etsy/ledgerentry`` and the document id is the sender's natural
    identifier (webhookEventUid, entry_id, ...). Writing the same key twice
    overwrites or merges the existing row instead of creating a duplicate.

    ``created_timestamp`` mirrors ``body["created_timestamp"]`` (seconds since
    epoch) when the body carries one, so the ledger sync can derive its cursor
    with an indexed ORDER BY.
    """

    __tablename__ = "event_documents"

    collection = Column(String(128), primary_key=True)
    document_id = Column(String(128), primary_key=True)

    body = Column(JSONType, nullable=False, default=dict)
    headers = Column(JSONType, nullable=True)

    created_timestamp = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_event_documents_collection_created_ts", "collection", "created_timestamp"),
    )


class OAuthToken(Base):
    """OAuth token pair for one external account (e.g. an Etsy shop).

    A row is only usable when both ``access_token`` and ``refresh_token`` are
    present; partially written rows are treated as missing by the readers.
    """

    __tablename__ = "oauth_tokens"

    provider = Column(String(32), primary_key=True)  # "etsy"
    account_id = Column(String(64), primary_key=True)  # shop id

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
