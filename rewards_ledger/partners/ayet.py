from rewards_ledger.core.exceptions import MissingParameterError, StatusIgnored
from rewards_ledger.partners.base import (
    REVERSAL_STATUSES,
    CreditEvent,
    Params,
    SharedSecretAdapter,
    first_param,
    parse_amount,
)

APPROVED = frozenset({"1", "approved", "success"})


class AyetAdapter(SharedSecretAdapter):
    name = "ayet"
    secret_params = ("secret", "key", "token")

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "user_id", "subid", "sub_id", "subid2")
        tx_id = first_param(params, "tx", "trans_id", "transaction_id", "clickid")
        payout_raw = first_param(params, "amount", "payout", "reward")
        if not uid or not payout_raw or not tx_id:
            raise MissingParameterError("Missing uid / payout / tx")

        status = (first_param(params, "status") or "1").lower()
        if status in REVERSAL_STATUSES:
            is_reversal = True
        elif status in APPROVED:
            is_reversal = False
        else:
            raise StatusIgnored("Ignored (status)")

        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=first_param(params, "offer_id", "campaign_id", "goal_id") or "ayet_offer",
            external_tx_id=tx_id,
            gross_usd=parse_amount(payout_raw),
            is_reversal=is_reversal,
        )
