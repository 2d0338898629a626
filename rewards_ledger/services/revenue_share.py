"""
Revenue split between user and platform.

The partner reports the gross payout (100% of revenue). The user's share is
50% plus their streak bonus percent (clamped to 0-10), so 50-60% of gross;
the platform keeps the rest. Amounts are rounded half-up to the cent.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

BASE_USER_PERCENT = Decimal("50")
MAX_BONUS_PERCENT = Decimal("10")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class RevenueSplit:
    gross: float
    user_share: float
    platform_share: float
    baseline_user_share: float
    bonus_amount: float
    bonus_percent: float
    effective_user_percent: float


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_bonus_percent(raw: Any) -> Decimal:
    """Non-numeric or missing clamps to 0; otherwise bounded to [0, 10]."""
    d = _to_decimal(raw)
    if d is None or d < 0:
        return Decimal("0")
    if d > MAX_BONUS_PERCENT:
        return MAX_BONUS_PERCENT
    return d


def split(gross: Any, bonus_percent: Any) -> RevenueSplit:
    """Deterministic split of a gross payout. Raises ValueError for a non-numeric gross."""
    g = _to_decimal(gross)
    if g is None:
        raise ValueError(f"gross is not a finite number: {gross!r}")
    bonus = clamp_bonus_percent(bonus_percent)
    effective = BASE_USER_PERCENT + bonus
    user_share = _cents(g * effective / 100)
    baseline = _cents(g * BASE_USER_PERCENT / 100)
    bonus_amount = _cents(user_share - baseline)
    platform_share = _cents(g - user_share)
    return RevenueSplit(
        gross=float(g),
        user_share=float(user_share),
        platform_share=float(platform_share),
        baseline_user_share=float(baseline),
        bonus_amount=float(bonus_amount),
        bonus_percent=float(bonus),
        effective_user_percent=float(effective),
    )
