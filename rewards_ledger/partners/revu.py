import time

from rewards_ledger.core.exceptions import MissingParameterError
from rewards_ledger.partners.base import (
    CreditEvent,
    Params,
    SharedSecretAdapter,
    first_param,
    parse_amount,
    status_is_reversal,
)


class RevUAdapter(SharedSecretAdapter):
    """
    RevU offerwall, including its postback test form (uid in sid2, reward in
    "currency", no transaction id). Rewards arrive in cents.
    """

    name = "revu"
    secret_params = ("secret", "key", "token")

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "sid", "user_id", "sub_id", "sid2")
        reward_raw = first_param(params, "rate", "reward", "payout", "amount", "value", "goal_reward", "currency")
        if not uid or not reward_raw:
            raise MissingParameterError("Missing uid / reward")
        gross = parse_amount(reward_raw, cents=True)

        tx_id = first_param(params, "actionid", "transaction_id", "tx", "trans_id", "oid")
        synthesized = not tx_id
        if synthesized:
            tx_id = f"revu_test_{int(time.time() * 1000)}"

        sid3 = first_param(params, "sid3", "sub3")
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=first_param(params, "offer_id", "campaign") or "unknown",
            external_tx_id=tx_id,
            gross_usd=gross,
            is_reversal=status_is_reversal(first_param(params, "status")),
            tx_id_synthesized=synthesized,
            metadata={"sid3": sid3} if sid3 else {},
        )
