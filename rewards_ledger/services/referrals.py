"""Referral resolution and referral stats."""

from datetime import datetime
from enum import Enum

from beanie import UpdateResponse
from beanie.operators import Set
from pymongo.errors import DuplicateKeyError

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.exceptions import NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.transactions import run_transaction
from rewards_ledger.models.referral import ReferralEdge
from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.services.ledger import apply_balance_change

log = get_logger(__name__)


class ReferralOutcome(str, Enum):
    NO_REFERRAL = "no_referral"
    ALREADY_RESOLVED = "already_resolved"
    NOT_VERIFIED = "email_not_verified"
    PAID_SPECIAL = "paid_special"
    INVALID_CODE = "invalid_code"
    SELF_BLOCKED = "self_blocked"
    CIRCULAR_BLOCKED = "circular_blocked"
    SAME_DEVICE_BLOCKED = "same_device_blocked"
    CAP_REACHED = "cap_reached"
    PAID_NORMAL = "paid_normal"


MESSAGES = {
    ReferralOutcome.NO_REFERRAL: "No referral",
    ReferralOutcome.ALREADY_RESOLVED: "Referral already processed",
    ReferralOutcome.NOT_VERIFIED: "Email not verified yet",
    ReferralOutcome.PAID_SPECIAL: "Admin referral bonus applied",
    ReferralOutcome.INVALID_CODE: "Invalid referral code",
    ReferralOutcome.SELF_BLOCKED: "Self-referral blocked",
    ReferralOutcome.CIRCULAR_BLOCKED: "Circular referral blocked",
    ReferralOutcome.SAME_DEVICE_BLOCKED: "Same device, referrer not rewarded",
    ReferralOutcome.CAP_REACHED: "Referrer reached cap",
    ReferralOutcome.PAID_NORMAL: "Referral processed",
}

# States written to referral_status; the others leave the account untouched.
RESOLVED_STATES = frozenset(
    {
        ReferralOutcome.PAID_SPECIAL,
        ReferralOutcome.INVALID_CODE,
        ReferralOutcome.SELF_BLOCKED,
        ReferralOutcome.CIRCULAR_BLOCKED,
        ReferralOutcome.SAME_DEVICE_BLOCKED,
        ReferralOutcome.CAP_REACHED,
        ReferralOutcome.PAID_NORMAL,
    }
)

PENDING = {"referral_pending": True}


async def _resolve_unpaid(uid: str, outcome: ReferralOutcome, session) -> ReferralOutcome:
    resolved = await User.find_one(User.uid == uid, PENDING, session=session).update(
        Set({"referral_pending": False, "referral_status": outcome.value, "updated_at": datetime.utcnow()}),
        session=session,
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    return outcome if resolved else ReferralOutcome.ALREADY_RESOLVED


async def _record_edge(owner_uid: str, referrer_uid: str, referred_uid: str, earnings: float, session) -> None:
    try:
        await ReferralEdge(
            owner_uid=owner_uid,
            referrer_uid=referrer_uid,
            referred_uid=referred_uid,
            earnings_from_referral=earnings,
        ).insert(session=session)
    except DuplicateKeyError:
        log.info("referral_edge_exists", owner_uid=owner_uid, referred_uid=referred_uid)


async def process_referral(uid: str, email_verified: bool) -> ReferralOutcome:
    """
    Resolve the account's pending referral, at most once.

    Every payment to the referred user is a single update conditional on
    referral_pending still being true, which flips it in the same write.
    """
    settings = get_settings()

    async def work(session) -> ReferralOutcome:
        user = await User.find_one(User.uid == uid, session=session)
        if user is None:
            raise NotFoundError("User not found")
        if not user.referred_by:
            return ReferralOutcome.NO_REFERRAL
        if not user.referral_pending:
            return ReferralOutcome.ALREADY_RESOLVED
        if not email_verified:
            return ReferralOutcome.NOT_VERIFIED

        code = user.referred_by.strip().upper()
        if code == settings.admin_referral_code:
            entry = AuditEntry(type="admin_referral_bonus", amount=settings.admin_referral_bonus, metadata={"code": code})
            paid = await apply_balance_change(
                uid,
                settings.admin_referral_bonus,
                entry,
                session=session,
                set_fields={"referral_pending": False, "referral_status": ReferralOutcome.PAID_SPECIAL.value},
                expect=PENDING,
            )
            return ReferralOutcome.PAID_SPECIAL if paid else ReferralOutcome.ALREADY_RESOLVED

        referrer = await User.find_one(User.referral_code == code, session=session)
        if referrer is None:
            return await _resolve_unpaid(uid, ReferralOutcome.INVALID_CODE, session)
        if referrer.uid == uid:
            return await _resolve_unpaid(uid, ReferralOutcome.SELF_BLOCKED, session)
        if referrer.referred_by and referrer.referred_by.strip().upper() == user.referral_code:
            return await _resolve_unpaid(uid, ReferralOutcome.CIRCULAR_BLOCKED, session)

        if user.device_id and referrer.device_id and user.device_id == referrer.device_id:
            outcome = ReferralOutcome.SAME_DEVICE_BLOCKED
        elif referrer.total_referral_earnings >= settings.referral_cap:
            outcome = ReferralOutcome.CAP_REACHED
        else:
            outcome = ReferralOutcome.PAID_NORMAL

        reward = settings.referral_reward
        entry = AuditEntry(type="referral_reward", amount=reward, metadata={"referrer_uid": referrer.uid})
        paid = await apply_balance_change(
            uid,
            reward,
            entry,
            session=session,
            set_fields={"referral_pending": False, "referral_status": outcome.value},
            expect=PENDING,
        )
        if paid is None:
            return ReferralOutcome.ALREADY_RESOLVED
        await _record_edge(uid, referrer.uid, uid, reward, session)
        if outcome is not ReferralOutcome.PAID_NORMAL:
            return outcome

        # Another resolution may have pushed the referrer to the cap since we read it.
        entry = AuditEntry(type="referral_earning", amount=reward, metadata={"referred_uid": uid})
        credited = await apply_balance_change(
            referrer.uid,
            reward,
            entry,
            session=session,
            inc_fields={"total_referral_earnings": reward},
            expect={"total_referral_earnings": {"$lt": settings.referral_cap}},
        )
        if credited is None:
            await User.find_one(User.uid == uid, session=session).update(
                Set({"referral_status": ReferralOutcome.CAP_REACHED.value}), session=session
            )
            return ReferralOutcome.CAP_REACHED
        await _record_edge(referrer.uid, referrer.uid, uid, reward, session)
        return ReferralOutcome.PAID_NORMAL

    outcome = await run_transaction(work, name="process_referral")
    log.info("referral_processed", uid=uid, outcome=outcome.value)
    return outcome


async def referral_summary(uid: str) -> dict:
    """Own code, people referred and what they earned this account."""
    user = await User.find_one(User.uid == uid)
    if not user:
        raise NotFoundError("User not found")
    edges = await ReferralEdge.find(
        ReferralEdge.owner_uid == uid,
        ReferralEdge.referrer_uid == uid,
    ).sort(-ReferralEdge.joined_at).to_list()
    return {
        "referral_code": user.referral_code,
        "referred_by": user.referred_by,
        "referral_status": user.referral_status,
        "referral_pending": user.referral_pending,
        "referred_count": len(edges),
        "total_referral_earnings": user.total_referral_earnings,
        "referrals": [
            {
                "referred_uid": e.referred_uid,
                "earnings": e.earnings_from_referral,
                "joined_at": e.joined_at,
            }
            for e in edges
        ],
    }
