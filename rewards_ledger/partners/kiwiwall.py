from rewards_ledger.core.exceptions import InvalidAuthError, MissingParameterError, StatusIgnored
from rewards_ledger.core.logging import get_logger
from rewards_ledger.core.security import md5_hex, signature_matches
from rewards_ledger.partners.base import CreditEvent, Params, PartnerAdapter, first_param, param_list, parse_amount

log = get_logger(__name__)

STATUS_CREDIT = "1"
STATUS_CHARGEBACK = "2"


def expected_signature(sub_id: str, amount: str, secret: str) -> str:
    return md5_hex(f"{sub_id}:{amount}:{secret}")


class KiwiWallAdapter(PartnerAdapter):
    """
    KiwiWall offerwall. signature = md5("{sub_id}:{amount}:{secret}"), possibly
    repeated or comma-joined. The raw secret is accepted in its place.
    KiwiWall only stops retrying on a body of "1".
    """

    name = "kiwiwall"
    ack_body = "1"

    def _sub_id(self, params: Params) -> str:
        return first_param(params, "sub_id", "uid", "subid", "user_id")

    def authenticate(self, params: Params) -> None:
        sub_id = self._sub_id(params)
        amount = first_param(params, "amount")
        signatures = param_list(params, "signature")
        if not sub_id or not amount:
            raise MissingParameterError()
        if not signatures or not signature_matches(signatures, expected_signature(sub_id, amount, self.secret), self.secret):
            log.warning("kiwiwall_invalid_signature", sub_id=sub_id, signatures=len(signatures))
            raise InvalidAuthError("Invalid signature")

    def normalize(self, params: Params) -> CreditEvent:
        uid = first_param(params, "uid", "sub_id", "subid", "user_id")
        tx_id = first_param(params, "tx", "trans_id")
        offer_id = first_param(params, "offer_id")
        amount_raw = first_param(params, "amount")
        if not uid or not tx_id or not offer_id or not amount_raw:
            raise MissingParameterError()
        status = first_param(params, "status")
        if status not in (STATUS_CREDIT, STATUS_CHARGEBACK):
            raise StatusIgnored(self.ack_body)
        return CreditEvent(
            partner=self.name,
            uid=uid,
            offer_id=offer_id,
            external_tx_id=tx_id,
            gross_usd=parse_amount(amount_raw),
            is_reversal=status == STATUS_CHARGEBACK,
        )
