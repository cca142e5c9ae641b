from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from finsync.models_sqlalchemy import get_db
from finsync.services.event_store import EventStore
from finsync.services.starling_signature import PublicKeyHandle, starling_public_key
from finsync.services.starling_webhook import StarlingWebhookIngestor


router = APIRouter(prefix="/webhooks/starling", tags=["starling_webhooks"])


def get_starling_public_key() -> PublicKeyHandle:
    return starling_public_key


@router.post("/feed-item", status_code=202)
async def starling_feed_item_webhook(
    request: Request,
    db: Session = Depends(get_db),
    public_key: PublicKeyHandle = Depends(get_starling_public_key),
) -> Response:
    """Starling Bank feed-item webhook destination.

    The signature covers the exact bytes Starling sent, so the body is read
    raw and only parsed after verification. ``request.headers.items()`` keeps
    repeated headers, which the verifier rejects.
    """

    raw_body = await request.body()
    ingestor = StarlingWebhookIngestor(EventStore(db), public_key)
    result = ingestor.handle(raw_body, request.headers.items())

    if result.body is None:
        return Response(status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)
