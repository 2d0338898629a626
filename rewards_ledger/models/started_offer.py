from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class StartedOffer(Document):
    user_uid: str
    offer_id: str
    status: Literal["in_progress", "completed"] = "in_progress"
    title: str = "Offer"
    source: str | None = None
    type: str | None = None  # survey, game, receipt, bonus
    total_payout: float | None = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    last_updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "started_offers"
        indexes = [
            IndexModel([("user_uid", ASCENDING), ("offer_id", ASCENDING)], unique=True, name="user_offer_unique"),
            IndexModel([("status", ASCENDING), ("last_updated_at", ASCENDING)]),
        ]
