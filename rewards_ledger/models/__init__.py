from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.models.completed_offer import CompletedOffer
from rewards_ledger.models.offer_history import OfferHistoryEntry
from rewards_ledger.models.referral import ReferralEdge
from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.started_offer import StartedOffer
from rewards_ledger.models.fingerprint import DeviceCluster, IpCluster
from rewards_ledger.models.failed_job import FailedJob
from rewards_ledger.models.quest_claim import QuestClaim

__all__ = [
    "AuditEntry",
    "User",
    "CompletedOffer",
    "OfferHistoryEntry",
    "ReferralEdge",
    "FraudLog",
    "StartedOffer",
    "DeviceCluster",
    "IpCluster",
    "FailedJob",
    "QuestClaim",
]
