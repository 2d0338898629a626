from rewards_ledger.core.exceptions import MissingParameterError
from rewards_ledger.partners.base import (
    CreditEvent,
    Params,
    SharedSecretAdapter,
    first_param,
    parse_amount,
    status_is_reversal,
)


class MagicReceiptsAdapter(SharedSecretAdapter):
    """Receipt scanning. The receipt id takes the place of an offer id."""

    name = "magic_receipts"

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "user_id")
        receipt_id = first_param(params, "receipt_id")
        payout_raw = first_param(params, "payout", "reward")
        tx_id = first_param(params, "tx")
        if not uid or not receipt_id or not payout_raw or not tx_id:
            raise MissingParameterError("Missing uid / receiptId / payout / tx")
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=receipt_id,
            external_tx_id=tx_id,
            gross_usd=parse_amount(payout_raw),
            is_reversal=status_is_reversal(first_param(params, "status")),
            metadata={"receipt_id": receipt_id},
        )
