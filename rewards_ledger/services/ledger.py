"""
Ledger writer: the single path through which balances change.

Every mutation is one atomic update on the account document that increments
the balance and appends the audit entry together (apply_balance_change).
Offer credits additionally claim their (partner, external_tx_id) key in
completed_offers before the balance moves; the unique index on that key makes
a second delivery fail the claim, so a credit is applied at most once even
without multi-document transactions. With transactions enabled the claim, the
balance update and the history entry commit or roll back together; without
them a failed balance write releases the claim before the error propagates, so
the retry (ours or the partner's) applies the credit instead of ignoring it.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from beanie import UpdateResponse
from beanie.operators import Inc, Push, Set
from pymongo.errors import DuplicateKeyError, PyMongoError

from rewards_ledger.core.exceptions import NotFoundError, UserNotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.transactions import OptimisticConflict, run_transaction
from rewards_ledger.models.completed_offer import CompletedOffer
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.partners.base import CreditEvent
from rewards_ledger.services import offers as offers_service
from rewards_ledger.services import users as users_service
from rewards_ledger.services.revenue_share import RevenueSplit, split

log = get_logger(__name__)

# Conditional increments re-read the bonus this many times before applying unconditionally.
BONUS_RECHECKS = 3


class LedgerStatus(str, Enum):
    CREDITED = "credited"
    DUPLICATE_IGNORED = "duplicate_ignored"
    REVERSED = "reversed"
    REVERSAL_RECORDED = "reversal_recorded"  # reversal for a transaction never credited
    VELOCITY_BLOCKED = "velocity_blocked"


@dataclass
class LedgerResult:
    status: LedgerStatus
    partner: str
    tx_id: str
    amount: float = 0.0
    balance_after: float | None = None
    split: RevenueSplit | None = None
    recomputed: bool = False


class DuplicateDelivery(Exception):
    """The dedup key was claimed by a concurrent delivery."""


async def apply_balance_change(
    uid: str,
    amount: float,
    entry: AuditEntry,
    *,
    session=None,
    set_fields: dict[str, Any] | None = None,
    inc_fields: dict[str, Any] | None = None,
    expect: dict[str, Any] | None = None,
) -> User | None:
    """
    Atomically add amount to the balance and append entry to the audit log.

    expect adds conditions to the match (optimistic check); when the account
    is missing or no longer matches, nothing is written and None is returned.
    """
    inc = {"balance": amount}
    inc.update(inc_fields or {})
    fields = {"updated_at": datetime.utcnow()}
    fields.update(set_fields or {})
    criteria = [User.uid == uid]
    if expect:
        criteria.append(expect)
    return await User.find_one(*criteria, session=session).update(
        Inc(inc),
        Push({"audit_log": entry.model_dump()}),
        Set(fields),
        session=session,
        response_type=UpdateResponse.NEW_DOCUMENT,
    )


async def find_record(partner: str, tx_id: str, session=None) -> CompletedOffer | None:
    return await CompletedOffer.find_one(
        CompletedOffer.partner == partner,
        CompletedOffer.external_tx_id == tx_id,
        session=session,
    )


async def _load_user(uid: str, session, *, create: bool) -> User:
    user = await User.find_one(User.uid == uid, session=session)
    if user:
        return user
    if not create:
        raise UserNotFoundError()
    # Partner fired before the profile existed: start a minimal account.
    user = User(uid=uid, referral_code=await users_service.allocate_referral_code(uid, session=session))
    try:
        await user.insert(session=session)
    except DuplicateKeyError as exc:
        raise OptimisticConflict(f"account {uid} created concurrently") from exc
    log.info("account_created_by_credit", uid=uid)
    return user


def _credit_entry(event: CreditEvent, share: RevenueSplit, flagged: bool) -> AuditEntry:
    metadata = dict(event.metadata)
    if flagged:
        metadata["velocity_flagged"] = True
    return AuditEntry(
        type=event.partner,
        amount=share.user_share,
        gross=share.gross,
        user_share=share.user_share,
        platform_share=share.platform_share,
        bonus_percent=share.bonus_percent,
        bonus_amount=share.bonus_amount,
        offer_id=event.offer_id,
        tx_id=event.external_tx_id,
        metadata=metadata,
    )


def _split_fields(share: RevenueSplit) -> dict[str, Any]:
    return {
        "gross": share.gross,
        "user_share": share.user_share,
        "platform_share": share.platform_share,
        "bonus_percent": share.bonus_percent,
        "bonus_amount": share.bonus_amount,
        "effective_user_percent": share.effective_user_percent,
    }


async def _increment_with_fresh_bonus(
    event: CreditEvent,
    user: User,
    share: RevenueSplit,
    record: CompletedOffer,
    flagged: bool,
    session,
) -> tuple[User, RevenueSplit]:
    """
    Apply the credit only if bonus_percent is still the value the split used.
    A check-in landing in between changes it; then re-split and try again.
    """
    for attempt in range(BONUS_RECHECKS + 1):
        last = attempt == BONUS_RECHECKS
        expect = None if last else {"bonus_percent": user.bonus_percent}
        updated = await apply_balance_change(
            user.uid, share.user_share, _credit_entry(event, share, flagged), session=session, expect=expect
        )
        if updated is not None:
            return updated, share
        fresh = await User.find_one(User.uid == user.uid, session=session)
        if fresh is None:
            raise UserNotFoundError()
        user = fresh
        share = split(event.gross_usd, user.bonus_percent)
        await record.set(_split_fields(share), session=session)
        log.info("credit_bonus_changed", uid=user.uid, tx_id=event.external_tx_id, bonus_percent=share.bonus_percent)
    raise OptimisticConflict("balance update did not apply")


async def _release_claim(record: CompletedOffer) -> None:
    """Drop a credit claim whose balance write failed outside a transaction."""
    try:
        await record.delete()
    except PyMongoError:
        log.error("credit_claim_release_failed", partner=record.partner, tx_id=record.external_tx_id)


async def _release_reversal(record: CompletedOffer) -> None:
    """Undo the reversed flag when the debit failed outside a transaction."""
    try:
        await CompletedOffer.find_one(
            CompletedOffer.id == record.id,
            CompletedOffer.reversed == True,  # noqa: E712
        ).update(Set({"reversed": False, "reversal_amount": None, "reversed_at": None}))
    except PyMongoError:
        log.error("reversal_claim_release_failed", partner=record.partner, tx_id=record.external_tx_id)


async def is_duplicate(event: CreditEvent) -> bool:
    return await find_record(event.partner, event.external_tx_id) is not None


async def credit_offer(event: CreditEvent, *, create_missing_user: bool = True, flagged: bool = False) -> LedgerResult:
    """Credit the user's share of event exactly once per (partner, external_tx_id)."""
    duplicate = LedgerResult(LedgerStatus.DUPLICATE_IGNORED, event.partner, event.external_tx_id)

    async def work(session) -> LedgerResult:
        if await find_record(event.partner, event.external_tx_id, session):
            return duplicate
        # Bonus is read inside the unit of work, never from an earlier snapshot.
        user = await _load_user(event.uid, session, create=create_missing_user)
        share = split(event.gross_usd, user.bonus_percent)
        metadata = dict(event.metadata)
        if flagged:
            metadata["velocity_flagged"] = True
        record = CompletedOffer(
            partner=event.partner,
            external_tx_id=event.external_tx_id,
            user_uid=event.uid,
            offer_id=event.offer_id,
            metadata=metadata,
            **_split_fields(share),
        )
        try:
            await record.insert(session=session)
        except DuplicateKeyError as exc:
            raise DuplicateDelivery() from exc

        try:
            updated, share = await _increment_with_fresh_bonus(event, user, share, record, flagged, session)
        except Exception:
            if session is None:
                await _release_claim(record)
            raise
        # Past this point the balance has moved; a failure below must not release the claim.
        await OfferHistoryEntry(
            user_uid=event.uid,
            partner=event.partner,
            kind="credit",
            offer_id=event.offer_id,
            external_tx_id=event.external_tx_id,
            amount=share.user_share,
            gross=share.gross,
            bonus_percent=share.bonus_percent,
            bonus_amount=share.bonus_amount,
            effective_user_percent=share.effective_user_percent,
            metadata=metadata,
        ).insert(session=session)
        if event.offer_id:
            await offers_service.complete_started_offer(event.uid, event.offer_id, share.user_share, session=session)
        return LedgerResult(
            LedgerStatus.CREDITED,
            event.partner,
            event.external_tx_id,
            amount=share.user_share,
            balance_after=updated.balance,
            split=share,
        )

    try:
        result = await run_transaction(work, name=f"credit:{event.partner}")
    except DuplicateDelivery:
        log.info("offer_duplicate_ignored", uid=event.uid, tx_id=event.external_tx_id, concurrent=True)
        return duplicate
    if result.status is LedgerStatus.DUPLICATE_IGNORED:
        log.info("offer_duplicate_ignored", uid=event.uid, tx_id=event.external_tx_id)
    else:
        log.info(
            "offer_credited",
            uid=event.uid,
            tx_id=event.external_tx_id,
            gross=event.gross_usd,
            amount=result.amount,
            bonus_percent=result.split.bonus_percent if result.split else None,
            flagged=flagged,
        )
    return result


async def reverse_offer(event: CreditEvent) -> LedgerResult:
    """
    Claw back the user share of a credited transaction. The platform share is
    never reversed. Idempotent: a second reversal, or a reversal racing another,
    changes nothing. A reversal for a transaction never seen leaves a reversed
    record so a late credit for the same key is ignored.
    """
    duplicate = LedgerResult(LedgerStatus.DUPLICATE_IGNORED, event.partner, event.external_tx_id)

    async def work(session) -> LedgerResult:
        record = await find_record(event.partner, event.external_tx_id, session)
        now = datetime.utcnow()
        if record is None:
            tombstone = CompletedOffer(
                partner=event.partner,
                external_tx_id=event.external_tx_id,
                user_uid=event.uid,
                offer_id=event.offer_id,
                gross=event.gross_usd,
                reversed=True,
                reversal_amount=0.0,
                reversed_at=now,
                metadata=dict(event.metadata),
            )
            try:
                await tombstone.insert(session=session)
            except DuplicateKeyError as exc:
                raise OptimisticConflict("record created concurrently") from exc
            return LedgerResult(LedgerStatus.REVERSAL_RECORDED, event.partner, event.external_tx_id)
        if record.reversed:
            return duplicate

        recomputed = False
        amount = record.user_share
        if amount is None:
            # Known limitation: today's bonus may differ from the one used at credit time.
            owner = await User.find_one(User.uid == record.user_uid, session=session)
            amount = split(record.gross or event.gross_usd, owner.bonus_percent if owner else 0).user_share
            recomputed = True

        claimed = await CompletedOffer.find_one(
            CompletedOffer.id == record.id,
            CompletedOffer.reversed == False,  # noqa: E712
            session=session,
        ).update(
            Set({"reversed": True, "reversal_amount": amount, "reversed_at": now}),
            session=session,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if claimed is None:
            return duplicate

        entry = AuditEntry(
            type=f"{event.partner}_reversal",
            amount=-amount,
            gross=record.gross,
            user_share=record.user_share,
            offer_id=record.offer_id,
            tx_id=record.external_tx_id,
            metadata={"recomputed": True} if recomputed else {},
        )
        try:
            updated = await apply_balance_change(record.user_uid, -amount, entry, session=session)
        except Exception:
            if session is None:
                await _release_reversal(record)
            raise
        if updated is None:
            log.warning("reversal_account_missing", uid=record.user_uid, tx_id=record.external_tx_id)
        await OfferHistoryEntry(
            user_uid=record.user_uid,
            partner=event.partner,
            kind="reversal",
            offer_id=record.offer_id,
            external_tx_id=record.external_tx_id,
            amount=-amount,
            gross=record.gross,
        ).insert(session=session)
        return LedgerResult(
            LedgerStatus.REVERSED,
            event.partner,
            event.external_tx_id,
            amount=amount,
            balance_after=updated.balance if updated else None,
            recomputed=recomputed,
        )

    result = await run_transaction(work, name=f"reversal:{event.partner}")
    log.info(
        "offer_reversal",
        uid=event.uid,
        tx_id=event.external_tx_id,
        status=result.status.value,
        amount=result.amount,
        recomputed=result.recomputed,
    )
    return result


async def adjust_balance(uid: str, amount: float, note: str, admin_uid: str) -> User:
    """Manual admin adjustment (cashouts, corrections) through the same primitive."""
    entry = AuditEntry(type="admin_adjustment", amount=amount, metadata={"note": note, "admin_uid": admin_uid})

    async def work(session) -> User | None:
        return await apply_balance_change(uid, amount, entry, session=session)

    user = await run_transaction(work, name="admin_adjustment")
    if user is None:
        raise NotFoundError("User not found")
    log.info("balance_adjusted", uid=uid, amount=amount, admin_uid=admin_uid)
    return user
