from datetime import datetime
from typing import Any, Literal

from beanie import Document
from pydantic import Field


class OfferHistoryEntry(Document):
    """Per-user copy of a credit for display and velocity sampling. Not used for dedup."""
    user_uid: str
    partner: str
    kind: Literal["credit", "reversal", "bonus", "quest"] = "credit"
    offer_id: str | None = None
    external_tx_id: str | None = None
    amount: float  # signed amount applied to balance
    gross: float | None = None
    bonus_percent: float = 0.0
    bonus_amount: float = 0.0
    effective_user_percent: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "offer_history"
        indexes = [
            [("user_uid", 1), ("kind", 1), ("created_at", -1)],
        ]
