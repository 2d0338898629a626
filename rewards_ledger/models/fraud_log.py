from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class FraudLog(Document):
    type: str  # velocity | fingerprint
    user_uid: str
    source: str | None = None  # partner name for velocity entries
    tx_id: str | None = None
    amount: float | None = None
    reasons: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "fraud_logs"
        indexes = [
            [("user_uid", 1), ("created_at", -1)],
            [("type", 1), ("created_at", -1)],
        ]
