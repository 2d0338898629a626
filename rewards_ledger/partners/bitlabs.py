from typing import Literal

from rewards_ledger.core.exceptions import MissingParameterError
from rewards_ledger.partners.base import (
    CreditEvent,
    Params,
    SharedSecretAdapter,
    first_param,
    parse_amount,
    status_is_reversal,
)

BitLabsKind = Literal["survey", "receipt", "game"]


class BitLabsAdapter(SharedSecretAdapter):
    """
    BitLabs surveys, receipts and games, one endpoint each. BitLabs does not
    always send a transaction id; a user can complete a given offer once, so
    "{uid}:{offer_id}" stands in for it.
    """

    def __init__(self, secret: str = "", kind: BitLabsKind = "survey"):
        super().__init__(secret)
        self.kind = kind
        self.name = f"bitlabs_{kind}"

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "user_id")
        offer_id = first_param(params, "offer_id")
        payout_raw = first_param(params, "payout", "reward")
        if not uid or not offer_id or not payout_raw:
            raise MissingParameterError("Missing uid / offerId / payout")
        gross = parse_amount(payout_raw)

        tx_id = first_param(params, "tx", "transaction_id")
        synthesized = not tx_id
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=offer_id,
            external_tx_id=f"{uid}:{offer_id}" if synthesized else tx_id,
            gross_usd=gross,
            is_reversal=status_is_reversal(first_param(params, "status")),
            tx_id_synthesized=synthesized,
            metadata={"kind": self.kind},
        )
