"""Device and IP fingerprints: which accounts share a device or a network."""

from dataclasses import dataclass
from datetime import datetime

from beanie import Document
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from rewards_ledger.core.exceptions import NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.core.security import sha256_hex
from rewards_ledger.models.fingerprint import DeviceCluster, IpCluster
from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.user import User

log = get_logger(__name__)

DEVICE_CLUSTER_CAP = 50
IP_CLUSTER_CAP = 100


@dataclass
class FingerprintResult:
    device_user_count: int
    ip_user_count: int
    ip_hash: str | None


def mask_ip(ip: str) -> str:
    """Hide the last octet (IPv4) or group (IPv6)."""
    if "." in ip:
        head, _, _ = ip.rpartition(".")
        return f"{head}.***"
    head, sep, _ = ip.rpartition(":")
    return f"{head}{sep}****" if sep else "***"


async def _add_to_cluster(model: type[Document], key_field: str, key: str, uid: str, cap: int, fields: dict) -> int:
    """Move uid to the end of the cluster's list and keep only the most recently seen cap entries."""
    collection = model.get_motor_collection()
    await collection.update_one({key_field: key}, {"$pull": {"user_uids": uid}})
    for attempt in range(2):
        try:
            doc = await collection.find_one_and_update(
                {key_field: key},
                {"$push": {"user_uids": {"$each": [uid], "$slice": -cap}}, "$set": fields},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            break
        except DuplicateKeyError:
            # Two first sightings upserted at once; the second pass matches the winner.
            if attempt:
                raise
    count = len(doc.get("user_uids", []))
    await collection.update_one({key_field: key}, {"$set": {"count": count}})
    return count


async def log_fingerprint(uid: str, device_id: str | None, user_agent: str | None, ip: str | None) -> FingerprintResult:
    device_id = (device_id or "").strip() or None
    user_agent = (user_agent or "").strip() or None
    ip = (ip or "").strip()
    ip_hash = sha256_hex(ip) if ip else None
    ip_masked = mask_ip(ip) if ip else None
    now = datetime.utcnow()

    user = await User.find_one(User.uid == uid)
    if user is None:
        raise NotFoundError("User not found")
    fields = {"last_device_id": device_id, "last_ip_masked": ip_masked, "last_ip_hash": ip_hash, "updated_at": now}
    if device_id and not user.device_id:
        # First device seen sticks; later ones only update last_device_id.
        fields["device_id"] = device_id
    await user.set(fields)

    device_user_count = 1
    if device_id:
        device_user_count = await _add_to_cluster(
            DeviceCluster,
            "device_id",
            device_id,
            uid,
            DEVICE_CLUSTER_CAP,
            {"last_ip_masked": ip_masked, "last_ip_hash": ip_hash, "last_seen": now},
        )
    ip_user_count = 1
    if ip_hash:
        ip_user_count = await _add_to_cluster(
            IpCluster, "ip_hash", ip_hash, uid, IP_CLUSTER_CAP, {"last_ip_masked": ip_masked, "last_seen": now}
        )

    await FraudLog(
        type="fingerprint",
        user_uid=uid,
        metadata={
            "device_id": device_id,
            "ip_masked": ip_masked,
            "ip_hash": ip_hash,
            "user_agent": user_agent,
            "device_user_count": device_user_count,
            "ip_user_count": ip_user_count,
        },
    ).insert()
    if device_user_count > 1 or ip_user_count > 1:
        log.info("fingerprint_shared", uid=uid, device_users=device_user_count, ip_users=ip_user_count)
    return FingerprintResult(device_user_count, ip_user_count, ip_hash)
