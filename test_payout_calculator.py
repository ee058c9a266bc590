"""
Тесты распределения пула и реферальных бонусов
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from decimal import Decimal
from fractions import Fraction

import pytest

from core.domain import (
    InteractionCounts, InteractionScore, ScoringResult, PoolBreakdown, PayoutRecord, Profile
)
from core.exceptions import InvalidPool
from core.payout_calculator import PayoutCalculator, largest_remainder_split
from core.pool_calculator import calculate_pools
from core.referral_calculator import ReferralBonusCalculator
from conftest import sol


def scoring(**scores) -> ScoringResult:
    items = [
        InteractionScore(user_id=user_id, counts=InteractionCounts(), is_premium=False, score=Decimal(score))
        for user_id, score in sorted(scores.items())
    ]
    return ScoringResult(scores=items, total_score=sum((s.score for s in items), Decimal(0)))


def pool(total: int, chain: int = 0) -> PoolBreakdown:
    return PoolBreakdown(
        chain_fees=0, platform_fees=0, chain_pool=chain, platform_pool=total - chain,
        total_pool=total, chain_pool_ratio=Decimal("0.4"), platform_pool_ratio=Decimal("0.5")
    )


# ----------------------------------------------------------------------
# largest_remainder_split
# ----------------------------------------------------------------------

def test_split_is_exact_and_deterministic():
    amounts = largest_remainder_split(10, [("b", Fraction(1)), ("a", Fraction(1)), ("c", Fraction(1))])
    assert amounts == {"a": 4, "b": 3, "c": 3}
    assert sum(amounts.values()) == 10


def test_split_prefers_largest_remainder():
    amounts = largest_remainder_split(10, [("a", Fraction(1)), ("b", Fraction(2))])
    assert amounts == {"a": 3, "b": 7}


def test_split_rejects_zero_weights():
    with pytest.raises(ValueError):
        largest_remainder_split(10, [("a", Fraction(0))])


# ----------------------------------------------------------------------
# PayoutCalculator
# ----------------------------------------------------------------------

def test_example_payouts(config):
    """Пул 5 SOL, очки 40 и 10: A получает 4 SOL, B получает 1 SOL"""
    pools = calculate_pools(sol("2.5"), sol("8"), config=config)
    result = PayoutCalculator(config).compute(pools, scoring(user_a=40, user_b=10))

    amounts = {p.user_id: p.amount for p in result.payouts}
    assert amounts == {"user_a": sol("4"), "user_b": sol("1")}
    assert result.total_amount == pools.total_pool
    a = result.payouts[0]
    assert a.chain_share == sol("0.8")
    assert a.platform_share == sol("3.2")


def test_sum_equals_pool_with_remainder(config):
    result = PayoutCalculator(config).compute(pool(100, chain=33), scoring(a=1, b=1, c=1))
    assert [p.amount for p in result.payouts] == [34, 33, 33]
    assert result.total_amount == 100
    assert sum(p.chain_share for p in result.payouts) == 33
    for payout in result.payouts:
        assert payout.chain_share + payout.platform_share == payout.amount


def test_zero_score_users_get_zero(config):
    result = PayoutCalculator(config).compute(pool(1000), scoring(active=5, idle=0))
    amounts = {p.user_id: p.amount for p in result.payouts}
    assert amounts == {"active": 1000, "idle": 0}


def test_pool_smaller_than_recipients(config):
    result = PayoutCalculator(config).compute(pool(2), scoring(a=1, b=1, c=1))
    assert [p.amount for p in result.payouts] == [1, 1, 0]
    assert result.total_amount == 2
    assert result.warnings


def test_zero_total_score_routes_pool_to_sink(config):
    result = PayoutCalculator(config).compute(pool(sol("5")), scoring(idle=0))
    assert result.payouts == []
    assert result.unassigned_sink == config.unassigned_pool_sink
    assert result.unassigned_amount == sol("5")
    assert result.warnings


def test_empty_pool_pays_zero(config):
    result = PayoutCalculator(config).compute(pool(0), scoring(a=3))
    assert [p.amount for p in result.payouts] == [0]


def test_negative_pool_rejected(config):
    with pytest.raises(InvalidPool):
        PayoutCalculator(config).compute(pool(-1), scoring(a=1))


# ----------------------------------------------------------------------
# ReferralBonusCalculator
# ----------------------------------------------------------------------

def test_referral_bonus_is_additive(config):
    payouts = [PayoutRecord("user_a", Decimal(40), sol("4")), PayoutRecord("user_b", Decimal(10), sol("1"))]
    profiles = {
        "user_a": Profile("user_a", referred_by="ref"),
        "user_b": Profile("user_b", referred_by="ref"),
        "ref": Profile("ref"),
    }
    result = ReferralBonusCalculator(config).compute(payouts, profiles)

    assert [(b.referred_user_id, b.amount) for b in result.bonuses] == [
        ("user_a", sol("0.2")), ("user_b", sol("0.05"))
    ]
    assert result.totals_by_referrer == {"ref": sol("0.25")}
    assert payouts[0].amount == sol("4")


def test_referral_bonus_truncates_and_skips_zero(config):
    payouts = [PayoutRecord("tiny", Decimal(1), 19), PayoutRecord("small", Decimal(1), 39)]
    profiles = {
        "tiny": Profile("tiny", referred_by="ref"),
        "small": Profile("small", referred_by="ref"),
        "ref": Profile("ref"),
    }
    result = ReferralBonusCalculator(config).compute(payouts, profiles)
    assert [(b.referred_user_id, b.amount) for b in result.bonuses] == [("small", 1)]


def test_referral_skips_self_and_missing_referrers(config):
    payouts = [
        PayoutRecord("self", Decimal(1), 1000),
        PayoutRecord("orphan", Decimal(1), 1000),
        PayoutRecord("plain", Decimal(1), 1000),
        PayoutRecord("unpaid", Decimal(0), 0),
    ]
    profiles = {
        "self": Profile("self", referred_by="self"),
        "orphan": Profile("orphan", referred_by="ghost"),
        "plain": Profile("plain"),
        "unpaid": Profile("unpaid", referred_by="plain"),
    }
    result = ReferralBonusCalculator(config).compute(payouts, profiles)
    assert result.bonuses == []
    assert result.skipped_count == 2
    assert len(result.warnings) == 2


def test_referral_rate_override(config):
    payouts = [PayoutRecord("a", Decimal(1), 1000)]
    profiles = {"a": Profile("a", referred_by="r"), "r": Profile("r")}
    result = ReferralBonusCalculator(config, rate=Decimal("0.1")).compute(payouts, profiles)
    assert result.totals_by_referrer == {"r": 100}
