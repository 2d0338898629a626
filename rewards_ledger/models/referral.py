from datetime import datetime

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class ReferralEdge(Document):
    """
    Referrer -> referred link, stored under the account it is shown to (owner_uid).
    The referred user always gets one; the referrer only when they were paid.
    """
    owner_uid: str
    referrer_uid: str
    referred_uid: str
    earnings_from_referral: float = 0.0
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "referral_edges"
        indexes = [
            IndexModel(
                [("owner_uid", ASCENDING), ("referrer_uid", ASCENDING), ("referred_uid", ASCENDING)],
                unique=True,
                name="owner_edge_unique",
            ),
        ]
