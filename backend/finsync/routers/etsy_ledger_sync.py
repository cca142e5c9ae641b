from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from finsync.models_sqlalchemy import get_db
from finsync.services.etsy_ledger import EtsyLedgerSyncConfigError, run_etsy_ledger_sync
from finsync.utils.logger import logger


router = APIRouter(prefix="/sync/etsy", tags=["etsy_ledger_sync"])


@router.post("/ledger")
async def trigger_etsy_ledger_sync(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Run one Etsy ledger sync now.

    Intended for external schedulers (cron, Cloud Scheduler) in deployments
    that do not run the in-process daily loop.
    """

    try:
        return await run_etsy_ledger_sync(db)
    except EtsyLedgerSyncConfigError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception as exc:
        logger.error("[etsy-ledger-sync] Triggered run failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Etsy ledger sync failed: {type(exc).__name__}: {exc}",
        )
