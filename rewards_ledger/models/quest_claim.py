from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class QuestClaim(Document):
    """One claimed quest reward per user per quest window; the unique key is the claim."""
    user_uid: str
    quest_id: str
    scope: Literal["daily", "weekly", "general"]
    window_start: datetime
    claim_key: str  # <quest_id>-<window start, epoch ms>
    cash: float
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "quest_claims"
        indexes = [
            IndexModel([("user_uid", ASCENDING), ("claim_key", ASCENDING)], unique=True, name="user_claim_unique"),
        ]
