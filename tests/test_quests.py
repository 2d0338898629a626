from datetime import datetime, timedelta

import pytest

from rewards_ledger.core.exceptions import BadRequestError, NotFoundError
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.quest_claim import QuestClaim
from rewards_ledger.models.started_offer import StartedOffer
from rewards_ledger.models.user import User
from rewards_ledger.services import quests
from rewards_ledger.services.quests import claim_key, quest_window_start

pytestmark = pytest.mark.asyncio

UID = "quester-uid-QST001"
# Saturday, 08:00 in New York (EDT)
NOW = datetime(2025, 5, 10, 12, 0, 0)


async def balance() -> float:
    return (await User.find_one(User.uid == UID)).balance


async def test_daily_window_starts_at_new_york_midnight():
    assert quest_window_start("daily", NOW, "America/New_York") == datetime(2025, 5, 10, 4, 0)
    # 22:00 the previous evening in New York (EST)
    assert quest_window_start("daily", datetime(2025, 1, 15, 3, 0), "America/New_York") == datetime(2025, 1, 14, 5, 0)


async def test_weekly_window_starts_monday():
    assert quest_window_start("weekly", NOW, "America/New_York") == datetime(2025, 5, 5, 4, 0)
    # Sunday after the spring-forward change; the week began on standard time.
    assert quest_window_start("weekly", datetime(2025, 3, 9, 18, 0), "America/New_York") == datetime(2025, 3, 3, 5, 0)


async def test_general_window_is_fixed():
    assert quest_window_start("general", NOW) == datetime(1970, 1, 1)
    assert claim_key("home-screen", datetime(1970, 1, 1)) == "home-screen-0"


async def test_claim_pays_once_per_window(make_user):
    await make_user(UID)
    first = await quests.claim_quest_reward(UID, "daily-survey", now=NOW)
    assert first.already_claimed is False
    assert first.balance == 0.01

    again = await quests.claim_quest_reward(UID, "daily-survey", now=NOW + timedelta(hours=3))
    assert again.already_claimed is True
    assert await balance() == 0.01
    assert await QuestClaim.find(QuestClaim.user_uid == UID).count() == 1

    user = await User.find_one(User.uid == UID)
    assert [e.type for e in user.audit_log] == ["quest"]


async def test_next_window_pays_again(make_user):
    await make_user(UID)
    await quests.claim_quest_reward(UID, "daily-game", now=NOW)
    result = await quests.claim_quest_reward(UID, "daily-game", now=NOW + timedelta(days=1))
    assert result.already_claimed is False
    assert await balance() == pytest.approx(0.02)


async def test_claim_records_started_offer_and_history(make_user):
    await make_user(UID)
    await quests.claim_quest_reward(UID, "first-offer", now=NOW)
    started = await StartedOffer.find_one(StartedOffer.user_uid == UID, StartedOffer.offer_id == "first-offer-0")
    assert started.status == "completed"
    assert started.type == "quest"
    assert started.total_payout == 0.02
    entry = await OfferHistoryEntry.find_one(OfferHistoryEntry.user_uid == UID)
    assert (entry.kind, entry.offer_id, entry.amount) == ("quest", "first-offer", 0.02)


async def test_unknown_quest_and_missing_user(make_user):
    with pytest.raises(BadRequestError):
        await quests.claim_quest_reward(UID, "daily-lottery", now=NOW)
    with pytest.raises(NotFoundError):
        await quests.claim_quest_reward(UID, "daily-survey", now=NOW)
    assert await QuestClaim.find_all().count() == 0


async def test_failed_credit_releases_claim(make_user, monkeypatch):
    from pymongo.errors import AutoReconnect
    await make_user(UID)
    original = quests.apply_balance_change
    calls = []

    async def flaky(*args, **kwargs):
        calls.append(args[0])
        if len(calls) == 1:
            raise AutoReconnect("connection reset")
        return await original(*args, **kwargs)

    monkeypatch.setattr(quests, "apply_balance_change", flaky)
    result = await quests.claim_quest_reward(UID, "week-games", now=NOW)
    assert result.already_claimed is False
    assert len(calls) == 2
    assert await balance() == 0.05


async def test_claim_over_http(client, auth_headers, make_user):
    await make_user(UID)
    r = await client.post("/v1/account/quests/claim", json={"quest_id": "home-screen"}, headers=auth_headers(UID))
    assert r.status_code == 200
    assert r.json() == {"quest_id": "home-screen", "cash": 0.05, "already_claimed": False, "balance": 0.05}
    again = await client.post("/v1/account/quests/claim", json={"quest_id": "home-screen"}, headers=auth_headers(UID))
    assert again.json()["already_claimed"] is True
    assert await balance() == 0.05
    unknown = await client.post("/v1/account/quests/claim", json={"quest_id": "nope"}, headers=auth_headers(UID))
    assert unknown.status_code == 400
