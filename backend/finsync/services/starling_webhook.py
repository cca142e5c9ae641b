from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from finsync.config import settings
from finsync.services.event_store import EventStore, STARLING_FEED_ITEM_COLLECTION
from finsync.services.starling_signature import (
    PublicKeyHandle,
    find_signature_header,
    verify_signature,
)
from finsync.utils.logger import logger, sanitize_headers


PERSIST_MODE_VALIDATE_FIRST = "validate_then_persist"
PERSIST_MODE_PERSIST_FIRST = "persist_then_validate"
PERSIST_MODES = (PERSIST_MODE_VALIDATE_FIRST, PERSIST_MODE_PERSIST_FIRST)

EVENT_ID_FIELD = "webhookEventUid"

ERROR_SIGNATURE = "Integrity of message signature could not be verified"
ERROR_INVALID_JSON = "Request body is not a valid JSON object"
ERROR_MISSING_EVENT_ID = f"Missing {EVENT_ID_FIELD} in payload"


@dataclass
class WebhookResult:
    status_code: int
    body: Optional[Dict[str, Any]] = None

    @classmethod
    def accepted(cls) -> "WebhookResult":
        return cls(status_code=202)

    @classmethod
    def rejected(cls, message: str) -> "WebhookResult":
        return cls(status_code=400, body={"error": message})


class StarlingWebhookIngestor:
    """Verify and store Starling Bank feed-item webhooks.

    Each accepted event is written to ``events/starling/feeditem/<webhookEventUid>``
    with the parsed body and the (sanitized) request headers. Redelivery of
    the same event overwrites the same document, which keeps ingestion safe
    under Starling's at-least-once delivery.
    """

    def __init__(
        self,
        store: EventStore,
        public_key: PublicKeyHandle,
        *,
        signature_header: Optional[str] = None,
        case_sensitive_header: Optional[bool] = None,
        persist_mode: Optional[str] = None,
    ):
        self.store = store
        self.public_key = public_key
        self.signature_header = signature_header or settings.STARLING_SIGNATURE_HEADER
        self.case_sensitive_header = (
            settings.STARLING_SIGNATURE_HEADER_CASE_SENSITIVE
            if case_sensitive_header is None
            else case_sensitive_header
        )
        self.persist_mode = persist_mode or settings.STARLING_WEBHOOK_PERSIST_MODE
        if self.persist_mode not in PERSIST_MODES:
            raise ValueError(f"Unknown STARLING_WEBHOOK_PERSIST_MODE: {self.persist_mode!r}")

    def handle(self, raw_body: bytes, headers: Iterable[Tuple[str, str]]) -> WebhookResult:
        header_items = list(headers)
        signature_values = find_signature_header(
            header_items,
            self.signature_header,
            case_sensitive=self.case_sensitive_header,
        )
        try:
            public_key = self.public_key.get()
        except ValueError as exc:
            logger.error("[starling-webhook] Public key unavailable, cannot verify event: %s", exc)
            return WebhookResult.rejected(ERROR_SIGNATURE)

        if not verify_signature(raw_body, signature_values, public_key):
            return WebhookResult.rejected(ERROR_SIGNATURE)

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("[starling-webhook] Could not parse body as JSON: %s", exc)
            return WebhookResult.rejected(ERROR_INVALID_JSON)
        if not isinstance(payload, dict):
            logger.error("[starling-webhook] JSON body is %s, expected an object", type(payload).__name__)
            return WebhookResult.rejected(ERROR_INVALID_JSON)

        stored_headers = sanitize_headers(header_items)
        event_id = payload.get(EVENT_ID_FIELD)

        if self.persist_mode == PERSIST_MODE_PERSIST_FIRST:
            document_id = str(event_id) if event_id else f"unkeyed-{uuid.uuid4()}"
            self._persist(document_id, payload, stored_headers)
            if not event_id:
                logger.error("[starling-webhook] Missing %s in payload (stored as %s)", EVENT_ID_FIELD, document_id)
                return WebhookResult.rejected(ERROR_MISSING_EVENT_ID)
            return WebhookResult.accepted()

        if not event_id:
            logger.error("[starling-webhook] Missing %s in payload", EVENT_ID_FIELD)
            return WebhookResult.rejected(ERROR_MISSING_EVENT_ID)

        self._persist(str(event_id), payload, stored_headers)
        return WebhookResult.accepted()

    def _persist(self, document_id: str, payload: Dict[str, Any], headers: Dict[str, Any]) -> None:
        self.store.put(
            STARLING_FEED_ITEM_COLLECTION,
            document_id,
            payload,
            headers=headers,
        )
        logger.info("[starling-webhook] Stored feed item event %s", document_id)
