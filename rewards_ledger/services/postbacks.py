"""Partner postbacks: adapter -> velocity guard -> ledger, and the partner-facing reply."""

from dataclasses import dataclass
from typing import Any, Mapping

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.exceptions import UserNotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.models.user import User
from rewards_ledger.partners.base import PartnerAdapter
from rewards_ledger.services import ledger
from rewards_ledger.services import velocity
from rewards_ledger.services.ledger import LedgerResult, LedgerStatus

log = get_logger(__name__)

REPLIES = {
    LedgerStatus.CREDITED: "OK",
    LedgerStatus.DUPLICATE_IGNORED: "OK (duplicate ignored)",
    LedgerStatus.REVERSED: "Reversal OK",
    LedgerStatus.REVERSAL_RECORDED: "Reversal OK (not credited)",
    LedgerStatus.VELOCITY_BLOCKED: "OK (velocity block)",
}


@dataclass
class PostbackReply:
    body: str
    result: LedgerResult


def reply_body(adapter: PartnerAdapter, status: LedgerStatus) -> str:
    # Partners with a fixed ack (KiwiWall "1") always get it.
    if adapter.ack_body != "OK":
        return adapter.ack_body
    return REPLIES[status]


async def handle_postback(adapter: PartnerAdapter, method: str, params: Mapping[str, Any]) -> PostbackReply:
    """
    Parse, guard and apply one partner delivery. Errors raised here are the
    partner taxonomy (AppError subclasses) and map straight to status codes.
    """
    event = adapter.parse(method, params)
    log.info(
        "postback_received",
        uid=event.uid,
        tx_id=event.external_tx_id,
        gross=event.gross_usd,
        reversal=event.is_reversal,
        synthesized_tx=event.tx_id_synthesized,
    )
    if adapter.require_existing_user and await User.find_one(User.uid == event.uid) is None:
        raise UserNotFoundError()

    if event.is_reversal:
        result = await ledger.reverse_offer(event)
        return PostbackReply(reply_body(adapter, result.status), result)

    # Retries of an applied credit skip the guard so they are never counted as new activity.
    if await ledger.is_duplicate(event):
        log.info("offer_duplicate_ignored", uid=event.uid, tx_id=event.external_tx_id)
        result = LedgerResult(LedgerStatus.DUPLICATE_IGNORED, event.partner, event.external_tx_id)
        return PostbackReply(reply_body(adapter, result.status), result)

    verdict = await velocity.check_offer_velocity(event.uid)
    if verdict.blocked:
        enforce = get_settings().velocity_policy == "block"
        await velocity.log_velocity_block(
            event.uid, event.partner, verdict, tx_id=event.external_tx_id, amount=event.gross_usd, enforced=enforce
        )
        if enforce:
            result = LedgerResult(LedgerStatus.VELOCITY_BLOCKED, event.partner, event.external_tx_id)
            return PostbackReply(reply_body(adapter, result.status), result)

    result = await ledger.credit_offer(
        event,
        create_missing_user=not adapter.require_existing_user,
        flagged=verdict.blocked,
    )
    return PostbackReply(reply_body(adapter, result.status), result)
