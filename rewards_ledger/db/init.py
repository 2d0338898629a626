import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from rewards_ledger.core.config import get_settings
from rewards_ledger.models.completed_offer import CompletedOffer
from rewards_ledger.models.failed_job import FailedJob
from rewards_ledger.models.fingerprint import DeviceCluster, IpCluster
from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.quest_claim import QuestClaim
from rewards_ledger.models.referral import ReferralEdge
from rewards_ledger.models.started_offer import StartedOffer
from rewards_ledger.models.user import User

DOCUMENT_MODELS = [
    User,
    CompletedOffer,
    OfferHistoryEntry,
    ReferralEdge,
    FraudLog,
    StartedOffer,
    DeviceCluster,
    IpCluster,
    FailedJob,
    QuestClaim,
]

_client = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client():
    """Client bound by init_db; ledger transactions open their sessions on it."""
    if _client is None:
        raise RuntimeError("init_db() has not been called")
    return _client


async def init_db(client=None) -> None:
    """Connect and register documents. Tests pass an in-memory Motor-compatible client."""
    global _client
    settings = get_settings()
    if client is None:
        # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    _client = client
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
