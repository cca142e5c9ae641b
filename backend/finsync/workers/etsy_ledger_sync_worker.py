"""
Etsy Ledger Sync Worker

Runs the Etsy ledger sync once a day at 00:00 UTC. Each run resumes from the
newest stored ledger entry, so a missed day is picked up by the next run.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from finsync.services.etsy_ledger import run_etsy_ledger_sync
from finsync.utils.logger import logger


def seconds_until_next_run(now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` until the next UTC midnight."""
    if now is None:
        now = datetime.now(timezone.utc)
    next_midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (next_midnight - now).total_seconds()


async def run_etsy_ledger_sync_once() -> dict:
    try:
        result = await run_etsy_ledger_sync()
        logger.info(f"[etsy-ledger-worker] Sync cycle completed: {result}")
        return result
    except Exception as e:
        logger.error(f"[etsy-ledger-worker] Sync cycle failed: {str(e)}")
        return {"status": "error", "error": str(e)}


async def run_etsy_ledger_sync_loop():
    """
    Run the Etsy ledger sync every day at midnight UTC.
    This is the main entry point for the background worker.
    """
    logger.info("Etsy ledger sync worker loop started (runs daily at 00:00 UTC)")

    while True:
        delay = seconds_until_next_run()
        logger.info(f"[etsy-ledger-worker] Next run in {int(delay)}s")
        await asyncio.sleep(delay)
        await run_etsy_ledger_sync_once()


if __name__ == "__main__":
    asyncio.run(run_etsy_ledger_sync_loop())
