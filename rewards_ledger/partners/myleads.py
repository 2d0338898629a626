from decimal import Decimal, InvalidOperation

from rewards_ledger.core.exceptions import InvalidAmountError, InvalidAuthError, MissingParameterError, StatusIgnored
from rewards_ledger.core.logging import get_logger
from rewards_ledger.core.security import secrets_match
from rewards_ledger.partners.base import CreditEvent, Params, PartnerAdapter, first_param, parse_amount

log = get_logger(__name__)

REJECTED = frozenset({"rejected", "declined", "canceled", "cancelled", "chargeback", "fraud", "void", "-1", "0", "2"})
PENDING = frozenset({"pending", "hold", "holding", "waiting", "processing"})
APPROVED = frozenset(
    {"", "approved", "confirm", "confirmed", "paid", "payout", "sale", "lead", "accepted", "completed", "success", "ok", "1", "3"}
)
PAYOUT_FIELDS = ("payout_decimal", "payout", "virtual_amount", "cart_value", "cart_value_original")
METADATA_FIELDS = (
    "program_id",
    "program_name",
    "program_config_id",
    "destination_program_id",
    "destination_program_name",
    "goal_id",
    "goal_name",
    "country_code",
    "currency",
)


def _status_number(status: str) -> Decimal | None:
    if not status:
        return None
    try:
        n = Decimal(status)
    except InvalidOperation:
        return None
    return n if n.is_finite() else None


def classify_status(status: str) -> str:
    """rejected -> "reversal", pending -> "pending", approved -> "credit", else "ignored"."""
    n = _status_number(status)
    if status in REJECTED or (n is not None and n < 0):
        return "reversal"
    if status in PENDING or (n is not None and n == 0):
        return "pending"
    if status in APPROVED or (n is not None and n > 0):
        return "credit"
    return "ignored"


class MyLeadsAdapter(PartnerAdapter):
    """
    MyLeads CPA network. It cannot be configured to send a secret, so one is
    only enforced when the request carries it.
    """

    name = "myleads"

    def authenticate(self, params: Params) -> None:
        provided = first_param(params, "secret", "key", "token")
        if self.secret and provided and not secrets_match(provided, self.secret):
            log.warning("myleads_invalid_secret")
            raise InvalidAuthError()

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(
            params, "player_id", "ml_sub1", "ml_sub2", "ml_sub3", "ml_sub4", "ml_sub5", "user_id", "uid"
        )
        tx_id = first_param(params, "transaction_id")
        if not uid or not tx_id:
            raise MissingParameterError("Missing uid / transaction_id")

        gross = None
        for name in PAYOUT_FIELDS:
            raw = first_param(params, name)
            if not raw:
                continue
            try:
                gross = parse_amount(raw)
                break
            except InvalidAmountError:
                continue
        if gross is None:
            raise InvalidAmountError()

        status = first_param(params, "status").lower()
        outcome = classify_status(status)
        if outcome == "pending":
            raise StatusIgnored("OK (pending status)")
        if outcome == "ignored":
            raise StatusIgnored("OK (ignored status)")

        metadata = {name: first_param(params, name) for name in METADATA_FIELDS if first_param(params, name)}
        if status:
            metadata["status"] = status
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=first_param(params, "goal_id", "goal_name", "program_id", "program_name", "program_config_id")
            or "myleads_offer",
            external_tx_id=tx_id,
            gross_usd=gross,
            is_reversal=outcome == "reversal",
            metadata=metadata,
        )
