from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class AuditEntry(BaseModel):
    """One credit/debit record embedded in the account; appended in the same update as the balance change."""
    type: str  # adgem, kiwiwall_reversal, referral_reward, admin_adjustment, ...
    amount: float  # signed change applied to balance
    gross: float | None = None
    user_share: float | None = None
    platform_share: float | None = None
    bonus_percent: float | None = None
    bonus_amount: float | None = None
    offer_id: str | None = None
    tx_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=datetime.utcnow)


class User(Document):
    uid: Indexed(str, unique=True)  # stable id from the auth provider
    email: str = ""
    email_verified: bool = False
    balance: float = 0.0
    bonus_percent: float = 0.0
    daily_streak: int = 0
    last_check_in: datetime | None = None
    referral_code: Indexed(str, unique=True)
    referred_by: str | None = None  # referral code of the referrer
    referral_pending: bool = False
    referral_status: str | None = None
    total_referral_earnings: float = 0.0
    device_id: str | None = None  # first fingerprint seen, used for same-device checks
    last_device_id: str | None = None
    last_ip_masked: str | None = None
    last_ip_hash: str | None = None
    shortcut_bonus_claimed: bool = False
    audit_log: list[AuditEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        indexes = [[("referred_by", 1)]]
