import asyncio
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from finsync.config import settings
from finsync.models_sqlalchemy import Base, engine
from finsync.models_sqlalchemy import models  # noqa: F401  (register tables)
from finsync.routers import etsy_ledger_sync, starling_webhooks
from finsync.services.starling_signature import starling_public_key
from finsync.utils.logger import logger


app = FastAPI(title="Finance Event Sync API", version="1.0.0")


# Request logging middleware with request ID
@app.middleware("http")
async def request_logger(request: Request, call_next):
    rid = uuid.uuid4().hex[:8]
    request.state.rid = rid
    logging.info("→ %s %s rid=%s", request.method, request.url.path, rid)
    try:
        resp = await call_next(request)
        logging.info("← %s status=%s rid=%s", request.url.path, resp.status_code, rid)
        resp.headers["X-Request-ID"] = rid
        return resp
    except Exception as e:
        logging.exception("Unhandled error rid=%s: %s", rid, str(e))
        error_resp = JSONResponse(
            {"error": "internal_error", "rid": rid, "type": type(e).__name__},
            status_code=500
        )
        error_resp.headers["X-Request-ID"] = rid
        return error_resp


@app.on_event("startup")
async def startup_event():
    logger.info("Finance Event Sync API starting up...")

    Base.metadata.create_all(bind=engine)
    logger.info("✅ Event store tables ready")

    # Parse the webhook public key once, before the first request arrives.
    if settings.STARLING_PUBLIC_KEY:
        starling_public_key.initialize()
        logger.info("✅ Starling webhook public key loaded")
    else:
        logger.warning("⚠️  STARLING_PUBLIC_KEY not configured - Starling webhooks will fail verification")

    if settings.ETSY_LEDGER_SYNC_WORKER_ENABLED:
        from finsync.workers import run_etsy_ledger_sync_loop

        asyncio.create_task(run_etsy_ledger_sync_loop())
        logger.info("✅ Etsy ledger sync worker started (runs daily at 00:00 UTC)")


app.include_router(starling_webhooks.router)
app.include_router(etsy_ledger_sync.router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/healthz/db")
async def healthz_db():
    """Database health check endpoint"""
    from fastapi import HTTPException, status
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.exception("Database health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database unavailable: {type(e).__name__}",
        )
