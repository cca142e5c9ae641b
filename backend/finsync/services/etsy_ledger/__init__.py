"""Etsy payment-account ledger sync.

Pulls ledger entries from the Etsy Open API into ``events/etsy/ledgerentry``.
The next window always starts at the newest stored entry, so there is no
separate cursor table that could drift from what was actually written.

The sync is not scheduled here; it is invoked by the daily worker loop in
`finsync.workers.etsy_ledger_sync_worker` or by the HTTP trigger in
`finsync.routers.etsy_ledger_sync`, so external schedulers such as cron can
drive it too.
"""

from .persistence import persist_batch
from .state import compute_sync_window, resolve_last_sync_timestamp
from .sync import (
    LEDGER_PAGE_LIMIT,
    EtsyLedgerSyncConfigError,
    fetch_and_persist_ledger_entries,
    run_etsy_ledger_sync,
)
