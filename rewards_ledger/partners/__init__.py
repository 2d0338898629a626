"""Partner adapters: one per offerwall, each producing a CreditEvent."""

from rewards_ledger.core.config import Settings, get_settings
from rewards_ledger.partners.adgem import AdGemAdapter
from rewards_ledger.partners.ayet import AyetAdapter
from rewards_ledger.partners.base import CreditEvent, PartnerAdapter
from rewards_ledger.partners.bitlabs import BitLabsAdapter
from rewards_ledger.partners.cpx import CPXAdapter
from rewards_ledger.partners.kiwiwall import KiwiWallAdapter
from rewards_ledger.partners.magic_receipts import MagicReceiptsAdapter
from rewards_ledger.partners.myleads import MyLeadsAdapter
from rewards_ledger.partners.revu import RevUAdapter


def build_adapters(settings: Settings) -> dict[str, PartnerAdapter]:
    adapters: list[PartnerAdapter] = [
        AdGemAdapter(settings.offers_secret),
        KiwiWallAdapter(settings.kiwi_secret),
        RevUAdapter(settings.revu_secret),
        CPXAdapter(settings.cpx_secret),
        MagicReceiptsAdapter(settings.offers_secret),
        AyetAdapter(settings.offers_secret),
        MyLeadsAdapter(settings.offers_secret),
        BitLabsAdapter(settings.offers_secret, kind="survey"),
        BitLabsAdapter(settings.offers_secret, kind="receipt"),
        BitLabsAdapter(settings.offers_secret, kind="game"),
    ]
    return {a.name: a for a in adapters}


def get_adapter(name: str) -> PartnerAdapter | None:
    return build_adapters(get_settings()).get(name)


__all__ = ["CreditEvent", "PartnerAdapter", "build_adapters", "get_adapter"]
