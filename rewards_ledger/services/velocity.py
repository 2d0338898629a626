"""
Velocity guard: how many offer credits a user received in sliding windows.

A breach is logged to fraud_logs. Whether the credit still goes through is the
VELOCITY_POLICY setting ("flag" credits and logs, "block" refuses); the partner
gets an acknowledgement either way.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from rewards_ledger.core.logging import get_logger
from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.offer_history import OfferHistoryEntry

log = get_logger(__name__)


@dataclass(frozen=True)
class VelocityRule:
    label: str
    window: timedelta
    max_count: int


VELOCITY_RULES = (
    VelocityRule("15m", timedelta(minutes=15), 8),
    VelocityRule("1h", timedelta(hours=1), 20),
    VelocityRule("24h", timedelta(hours=24), 120),
)
MAX_SAMPLED_EVENTS = 200


@dataclass
class VelocityVerdict:
    blocked: bool = False
    reasons: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    sampled: int = 0


def classify(timestamps: Iterable[datetime], now: datetime, rules=VELOCITY_RULES) -> VelocityVerdict:
    """Count credits per window; a window at or over its limit blocks the next one."""
    stamps = list(timestamps)
    verdict = VelocityVerdict(sampled=len(stamps))
    for rule in rules:
        cutoff = now - rule.window
        count = sum(1 for t in stamps if t >= cutoff)
        verdict.counts[rule.label] = count
        if count >= rule.max_count:
            verdict.reasons.append(f"{count} offers in {rule.label} (limit {rule.max_count})")
    verdict.blocked = bool(verdict.reasons)
    return verdict


async def check_offer_velocity(uid: str, now: datetime | None = None) -> VelocityVerdict:
    if not uid:
        return VelocityVerdict()
    now = now or datetime.utcnow()
    widest = max(rule.window for rule in VELOCITY_RULES)
    entries = (
        await OfferHistoryEntry.find(
            OfferHistoryEntry.user_uid == uid,
            OfferHistoryEntry.kind == "credit",
            OfferHistoryEntry.created_at >= now - widest,
        )
        .sort(-OfferHistoryEntry.created_at)
        .limit(MAX_SAMPLED_EVENTS)
        .to_list()
    )
    return classify((e.created_at for e in entries), now)


async def log_velocity_block(
    uid: str,
    source: str,
    verdict: VelocityVerdict,
    tx_id: str | None = None,
    amount: float | None = None,
    enforced: bool = False,
) -> FraudLog:
    entry = FraudLog(
        type="velocity",
        user_uid=uid,
        source=source,
        tx_id=tx_id,
        amount=amount,
        reasons=verdict.reasons,
        metadata={"counts": verdict.counts, "sampled": verdict.sampled, "enforced": enforced},
    )
    await entry.insert()
    log.warning("velocity_breach", uid=uid, source=source, tx_id=tx_id, reasons=verdict.reasons, enforced=enforced)
    return entry
