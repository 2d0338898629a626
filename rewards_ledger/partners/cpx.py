from rewards_ledger.core.exceptions import InvalidAuthError, MissingParameterError, StatusIgnored
from rewards_ledger.core.logging import get_logger
from rewards_ledger.core.security import md5_hex, signature_matches
from rewards_ledger.partners.base import CreditEvent, Params, PartnerAdapter, first_param, param_list, parse_amount

log = get_logger(__name__)

STATUS_COMPLETED = "1"
STATUS_REVERSED = "2"


class CPXAdapter(PartnerAdapter):
    """
    CPX Research surveys. hash = md5("{trans_id}-{secret}"); the raw secret is
    also accepted. amount_usd is canonical, amount_local is kept for reference.
    Multi-goal offers reuse trans_id, so the goal is appended to the dedup key.
    """

    name = "cpx"
    require_existing_user = True

    def authenticate(self, params: Params) -> None:
        trans_id = first_param(params, "trans_id")
        hashes = param_list(params, "hash")
        if not hashes or not signature_matches(hashes, md5_hex(f"{trans_id}-{self.secret}"), self.secret):
            log.warning("cpx_invalid_hash", trans_id=trans_id)
            raise InvalidAuthError("Invalid hash")

    def parse(self, method: str, params: Params) -> CreditEvent:
        # Required params are checked before the hash, as CPX expects.
        if method.upper() in self.allowed_methods:
            self._require(params)
        return super().parse(method, params)

    def _require(self, params: Params) -> None:
        if not all(first_param(params, name) for name in ("user_id", "amount_usd", "trans_id", "status")):
            raise MissingParameterError("Missing required params")

    def normalize(self, params: Params) -> CreditEvent:
        gross = parse_amount(first_param(params, "amount_usd"))
        status = first_param(params, "status")
        if status not in (STATUS_COMPLETED, STATUS_REVERSED):
            raise StatusIgnored()

        tx_id = first_param(params, "trans_id")
        goal = first_param(params, "goal_id", "g", "et", "event_id")
        if goal:
            tx_id = f"{tx_id}_goal_{goal}"

        metadata = {}
        if goal:
            metadata["goal"] = goal
        amount_local = first_param(params, "amount_local")
        if amount_local:
            metadata["amount_local"] = amount_local
        return CreditEvent(
            partner=self.name,
            uid=first_param(params, "user_id"),
            offer_id=first_param(params, "offer_id") or None,
            external_tx_id=tx_id,
            gross_usd=gross,
            is_reversal=status == STATUS_REVERSED,
            metadata=metadata,
        )
