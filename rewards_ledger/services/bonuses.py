from rewards_ledger.core.config import get_settings
from rewards_ledger.core.exceptions import AlreadyDoneError, NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.transactions import run_transaction
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.services import offers as offers_service
from rewards_ledger.services.ledger import apply_balance_change

log = get_logger(__name__)

SHORTCUT_OFFER_ID = "shortcut_bonus"


async def claim_shortcut_bonus(uid: str) -> User:
    """One-time bonus for adding the home-screen shortcut."""
    amount = get_settings().shortcut_bonus_amount

    async def work(session) -> User:
        entry = AuditEntry(type="shortcut_bonus", amount=amount, offer_id=SHORTCUT_OFFER_ID)
        user = await apply_balance_change(
            uid,
            amount,
            entry,
            session=session,
            set_fields={"shortcut_bonus_claimed": True},
            expect={"shortcut_bonus_claimed": False},
        )
        if user is None:
            if await User.find_one(User.uid == uid, session=session) is None:
                raise NotFoundError("User not found")
            raise AlreadyDoneError("Shortcut bonus already claimed")
        await offers_service.complete_started_offer(
            uid,
            SHORTCUT_OFFER_ID,
            amount,
            session=session,
            create=True,
            title="Add shortcut to home screen",
            type="bonus",
        )
        await OfferHistoryEntry(
            user_uid=uid,
            partner="shortcut",
            kind="bonus",
            offer_id=SHORTCUT_OFFER_ID,
            amount=amount,
            gross=amount,
        ).insert(session=session)
        return user

    user = await run_transaction(work, name="shortcut_bonus")
    log.info("shortcut_bonus_claimed", uid=uid, amount=amount)
    return user
