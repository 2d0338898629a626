"""Quest rewards: fixed cash per quest, claimable once per daily/weekly window (or once ever)."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from pymongo.errors import DuplicateKeyError, PyMongoError

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.exceptions import BadRequestError, NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.transactions import run_transaction
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.quest_claim import QuestClaim
from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.services import offers as offers_service
from rewards_ledger.services.ledger import apply_balance_change

log = get_logger(__name__)

EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class Quest:
    cash: float
    scope: str  # daily, weekly, general
    title: str


QUESTS: dict[str, Quest] = {
    "daily-survey": Quest(0.01, "daily", "Daily survey quest reward"),
    "daily-game": Quest(0.01, "daily", "Daily game quest reward"),
    "week-surveys": Quest(0.05, "weekly", "Weekly surveys quest reward"),
    "week-games": Quest(0.05, "weekly", "Weekly games quest reward"),
    "week-referral": Quest(0.05, "weekly", "Weekly referral quest reward"),
    "home-screen": Quest(0.05, "general", "Home screen quest reward"),
    "email-verified": Quest(0.01, "general", "Email verification quest reward"),
    "first-offer": Quest(0.02, "general", "First offer quest reward"),
    "first-survey": Quest(0.01, "general", "First survey quest reward"),
}


@dataclass
class QuestClaimResult:
    quest_id: str
    cash: float
    already_claimed: bool
    balance: float | None = None


def quest_window_start(scope: str, now: datetime, tz_name: str | None = None) -> datetime:
    """Start of the window containing now (naive UTC in, naive UTC out)."""
    if scope == "general":
        return EPOCH
    tz = ZoneInfo(tz_name or get_settings().quest_timezone)
    local = now.replace(tzinfo=timezone.utc).astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if scope == "weekly":
        start -= timedelta(days=start.weekday())
    # Rebuild from the wall clock so the offset matches the window's own date (DST).
    start = datetime(start.year, start.month, start.day, tzinfo=tz)
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def claim_key(quest_id: str, window_start: datetime) -> str:
    millis = int((window_start - EPOCH).total_seconds() * 1000)
    return f"{quest_id}-{millis}"


async def claim_quest_reward(uid: str, quest_id: str, now: datetime | None = None) -> QuestClaimResult:
    quest = QUESTS.get((quest_id or "").strip())
    if quest is None:
        raise BadRequestError("Unknown quest", details={"quest_id": quest_id})
    quest_id = quest_id.strip()
    window_start = quest_window_start(quest.scope, now or datetime.utcnow())
    key = claim_key(quest_id, window_start)

    async def work(session) -> QuestClaimResult:
        if await User.find_one(User.uid == uid, session=session) is None:
            raise NotFoundError("User not found")
        claim = QuestClaim(
            user_uid=uid,
            quest_id=quest_id,
            scope=quest.scope,
            window_start=window_start,
            claim_key=key,
            cash=quest.cash,
        )
        try:
            await claim.insert(session=session)
        except DuplicateKeyError:
            return QuestClaimResult(quest_id, quest.cash, already_claimed=True)

        user = None
        if quest.cash > 0:
            entry = AuditEntry(
                type="quest",
                amount=quest.cash,
                offer_id=quest_id,
                metadata={"quest_id": quest_id, "claim_key": key},
            )
            try:
                user = await apply_balance_change(uid, quest.cash, entry, session=session)
            except Exception:
                if session is None:
                    await _release_claim(claim)
                raise
            await offers_service.complete_started_offer(
                uid, key, quest.cash, session=session, create=True, title=quest.title, type="quest"
            )
        await OfferHistoryEntry(
            user_uid=uid,
            partner="quests",
            kind="quest",
            offer_id=quest_id,
            amount=quest.cash,
            gross=quest.cash,
            metadata={"scope": quest.scope, "claim_key": key},
        ).insert(session=session)
        return QuestClaimResult(quest_id, quest.cash, already_claimed=False, balance=user.balance if user else None)

    result = await run_transaction(work, name="quest_reward")
    log.info("quest_reward", uid=uid, quest_id=quest_id, claim_key=key, already_claimed=result.already_claimed)
    return result


async def _release_claim(claim: QuestClaim) -> None:
    try:
        await claim.delete()
    except PyMongoError:
        log.error("quest_claim_release_failed", uid=claim.user_uid, claim_key=claim.claim_key)
