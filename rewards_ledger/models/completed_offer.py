from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel


class CompletedOffer(Document):
    """Global dedup gate: at most one record per (partner, external_tx_id), ever."""
    partner: str
    external_tx_id: str
    user_uid: str
    offer_id: str | None = None
    gross: float = 0.0
    user_share: float | None = None  # None only on reversal tombstones for never-seen transactions
    platform_share: float | None = None
    bonus_percent: float = 0.0
    bonus_amount: float = 0.0
    effective_user_percent: float = 50.0
    reversed: bool = False
    reversal_amount: float | None = None
    reversed_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)  # partner extras: goal, sid3, program ids
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "completed_offers"
        indexes = [
            IndexModel([("partner", ASCENDING), ("external_tx_id", ASCENDING)], unique=True, name="partner_tx_unique"),
            IndexModel([("user_uid", ASCENDING), ("created_at", DESCENDING)]),
        ]
