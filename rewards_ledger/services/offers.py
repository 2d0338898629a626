"""Started-offer tracking, offer history reads and the retention sweep."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from beanie.operators import Set
from pymongo.errors import DuplicateKeyError

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.logging import get_logger
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.started_offer import StartedOffer

log = get_logger(__name__)


@dataclass
class SweepResult:
    stale_deleted: int
    completed_deleted: int


async def start_offer(
    uid: str,
    offer_id: str,
    title: str | None = None,
    source: str | None = None,
    type: str | None = None,
) -> StartedOffer:
    """Track an offer the user opened. An already completed entry is left as is."""
    now = datetime.utcnow()
    existing = await StartedOffer.find_one(StartedOffer.user_uid == uid, StartedOffer.offer_id == offer_id)
    if existing:
        if existing.status == "in_progress":
            await existing.set({"last_updated_at": now})
        return existing
    started = StartedOffer(
        user_uid=uid,
        offer_id=offer_id,
        title=title or "Offer",
        source=source,
        type=type,
    )
    try:
        await started.insert()
    except DuplicateKeyError:
        return await StartedOffer.find_one(StartedOffer.user_uid == uid, StartedOffer.offer_id == offer_id)
    log.info("offer_started", uid=uid, offer_id=offer_id, source=source)
    return started


async def complete_started_offer(
    uid: str,
    offer_id: str,
    payout: float,
    *,
    session=None,
    create: bool = False,
    title: str | None = None,
    type: str | None = None,
) -> None:
    """Mark the user's started offer completed; create it when asked to."""
    now = datetime.utcnow()
    fields = {"status": "completed", "total_payout": payout, "completed_at": now, "last_updated_at": now}
    result = await StartedOffer.find_one(
        StartedOffer.user_uid == uid, StartedOffer.offer_id == offer_id, session=session
    ).update(Set(fields), session=session)
    if result is not None and result.matched_count:
        return
    if create:
        await StartedOffer(
            user_uid=uid,
            offer_id=offer_id,
            title=title or "Offer",
            type=type,
            status="completed",
            total_payout=payout,
            started_at=now,
            completed_at=now,
            last_updated_at=now,
        ).insert(session=session)


async def list_started_offers(uid: str) -> list[StartedOffer]:
    return await StartedOffer.find(StartedOffer.user_uid == uid).sort(-StartedOffer.last_updated_at).to_list()


async def list_offer_history(uid: str, limit: int = 20, offset: int = 0) -> tuple[list[OfferHistoryEntry], int]:
    query = OfferHistoryEntry.find(OfferHistoryEntry.user_uid == uid)
    total = await query.count()
    items = await query.sort(-OfferHistoryEntry.created_at).skip(offset).limit(limit).to_list()
    return items, total


async def sweep_started_offers(now: datetime | None = None) -> SweepResult:
    """Drop in-progress entries nobody touched for a day and completed ones past retention."""
    settings = get_settings()
    now = now or datetime.utcnow()
    stale_cutoff = now - timedelta(hours=settings.started_offer_stale_hours)
    completed_cutoff = now - timedelta(hours=settings.completed_offer_retention_hours)

    stale = await StartedOffer.find(
        StartedOffer.status == "in_progress",
        StartedOffer.last_updated_at < stale_cutoff,
    ).delete()
    completed = await StartedOffer.find(
        StartedOffer.status == "completed",
        StartedOffer.last_updated_at < completed_cutoff,
    ).delete()
    result = SweepResult(
        stale_deleted=stale.deleted_count if stale else 0,
        completed_deleted=completed.deleted_count if completed else 0,
    )
    log.info("started_offers_swept", stale=result.stale_deleted, completed=result.completed_deleted)
    return result
