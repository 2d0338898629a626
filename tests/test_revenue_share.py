"""Revenue split: pure arithmetic, no storage."""

from decimal import Decimal

import pytest

from rewards_ledger.services.revenue_share import clamp_bonus_percent, split


def test_split_with_bonus():
    s = split(10.00, 4)
    assert s.user_share == 5.40
    assert s.platform_share == 4.60
    assert s.bonus_amount == 0.40
    assert s.baseline_user_share == 5.00
    assert s.effective_user_percent == 54.0


def test_split_without_bonus_is_half():
    s = split(2.00, 0)
    assert s.user_share == 1.00
    assert s.platform_share == 1.00
    assert s.bonus_amount == 0.0


@pytest.mark.parametrize("raw,expected", [(-3, 0), (None, 0), ("abc", 0), (15, 10), (2.5, 2.5), (True, 0)])
def test_clamp_bonus_percent(raw, expected):
    assert clamp_bonus_percent(raw) == Decimal(str(expected))


def test_bonus_above_cap_is_clamped():
    assert split(10, 25).user_share == 6.00


@pytest.mark.parametrize("gross", [0, 0.01, 0.03, 0.99, 1.37, 12.345, 100])
@pytest.mark.parametrize("bonus", [0, 0.5, 3.5, 10])
def test_shares_add_up_and_never_below_baseline(gross, bonus):
    s = split(gross, bonus)
    assert abs(s.user_share + s.platform_share - s.gross) < 0.0051
    assert s.user_share >= s.baseline_user_share


def test_rounds_half_up_to_cents():
    # 0.05 * 55% = 0.0275 -> 0.03
    assert split(0.05, 5).user_share == 0.03


def test_non_numeric_gross_raises():
    with pytest.raises(ValueError):
        split("ten", 0)
