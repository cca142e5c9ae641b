"""
Background Workers for Finance Event Sync

Workers:
- etsy_ledger_sync_worker: Runs daily at 00:00 UTC to pull new Etsy ledger entries
"""

from finsync.workers.etsy_ledger_sync_worker import (
    run_etsy_ledger_sync_loop,
    run_etsy_ledger_sync_once,
)

__all__ = [
    "run_etsy_ledger_sync_loop",
    "run_etsy_ledger_sync_once",
]
