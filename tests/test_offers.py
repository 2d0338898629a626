from datetime import datetime, timedelta

import pytest

from rewards_ledger.models.failed_job import FailedJob
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.started_offer import StartedOffer
from rewards_ledger.services import offers

pytestmark = pytest.mark.asyncio

NOW = datetime(2025, 5, 10, 12, 0, 0)


async def test_start_offer_is_idempotent(db):
    first = await offers.start_offer("u1", "o1", title="Survey", source="cpx", type="survey")
    second = await offers.start_offer("u1", "o1")
    assert first.status == second.status == "in_progress"
    assert await StartedOffer.find(StartedOffer.user_uid == "u1").count() == 1


async def test_start_does_not_reopen_completed(db):
    await offers.start_offer("u1", "o1")
    await offers.complete_started_offer("u1", "o1", 0.5)
    again = await offers.start_offer("u1", "o1")
    assert again.status == "completed"


async def test_offer_history_newest_first(db):
    for i in range(5):
        await OfferHistoryEntry(
            user_uid="u1", partner="adgem", amount=0.1, external_tx_id=f"t{i}", created_at=NOW + timedelta(minutes=i)
        ).insert()
    items, total = await offers.list_offer_history("u1", limit=2, offset=1)
    assert total == 5
    assert [e.external_tx_id for e in items] == ["t3", "t2"]


async def test_sweep_removes_stale_and_expired(db):
    def started(offer_id, status, hours_ago):
        at = NOW - timedelta(hours=hours_ago)
        return StartedOffer(user_uid="u1", offer_id=offer_id, status=status, started_at=at, last_updated_at=at)

    await started("fresh", "in_progress", 2).insert()
    await started("stale", "in_progress", 25).insert()
    await started("recent-done", "completed", 48).insert()
    await started("old-done", "completed", 73).insert()

    result = await offers.sweep_started_offers(now=NOW)
    assert (result.stale_deleted, result.completed_deleted) == (1, 1)
    remaining = sorted(s.offer_id for s in await StartedOffer.find_all().to_list())
    assert remaining == ["fresh", "recent-done"]


async def test_sweep_job_records_failures(db, monkeypatch):
    from rewards_ledger.worker import cron, tasks

    async def broken(now=None):
        raise RuntimeError("storage down")

    monkeypatch.setattr(cron, "sweep_started_offers", broken)
    with pytest.raises(RuntimeError):
        await tasks.sweep_started_offers({"job_id": "job-1", "job_try": 2})
    failed = await FailedJob.find_one(FailedJob.job_id == "job-1")
    assert failed.job_name == "sweep_started_offers"
    assert failed.reason == "storage down"
    assert failed.attempt == 2


async def test_sweep_job_returns_counts(db):
    from rewards_ledger.worker import tasks
    assert await tasks.sweep_started_offers({}) == {"stale_deleted": 0, "completed_deleted": 0}
