"""Cron: started-offer retention."""

from datetime import datetime

from rewards_ledger.core.logging import get_logger
from rewards_ledger.services.offers import sweep_started_offers

log = get_logger(__name__)


async def run_retention_sweep(now: datetime | None = None) -> dict[str, int]:
    """Housekeeping only; a skipped or failed run never affects balances."""
    result = await sweep_started_offers(now)
    return {"stale_deleted": result.stale_deleted, "completed_deleted": result.completed_deleted}
