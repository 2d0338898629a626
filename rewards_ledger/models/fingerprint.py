from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class DeviceCluster(Document):
    """User ids seen on one device fingerprint (most recent 50)."""
    device_id: Indexed(str, unique=True)
    user_uids: list[str] = Field(default_factory=list)
    count: int = 0
    last_ip_masked: str | None = None
    last_ip_hash: str | None = None
    last_seen: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "device_clusters"


class IpCluster(Document):
    """User ids seen behind one hashed IP (most recent 100)."""
    ip_hash: Indexed(str, unique=True)
    user_uids: list[str] = Field(default_factory=list)
    count: int = 0
    last_ip_masked: str | None = None
    last_seen: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "ip_clusters"
