from rewards_ledger.core.exceptions import MissingParameterError
from rewards_ledger.partners.base import (
    CreditEvent,
    Params,
    SharedSecretAdapter,
    first_param,
    parse_amount,
    status_is_reversal,
)


class AdGemAdapter(SharedSecretAdapter):
    """AdGem game/app installs. Amount arrives in cents."""

    name = "adgem"

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "sub_id", "user_id")
        offer_id = first_param(params, "offer_id")
        amount_raw = first_param(params, "amount")
        tx_id = first_param(params, "transaction_id")
        if not uid or not offer_id or not amount_raw or not tx_id:
            raise MissingParameterError("Missing uid / offerId / amount / transaction_id")
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=offer_id,
            external_tx_id=tx_id,
            gross_usd=parse_amount(amount_raw, cents=True),
            is_reversal=status_is_reversal(first_param(params, "status")),
        )
