"""
Тесты разрешения расчетного периода
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from core.domain import RevenueSnapshot
from core.exceptions import PeriodNotFound, AmbiguousPeriod, NoCurrentPeriod
from core.period_resolver import PeriodResolver, build_biweekly_schedule
from conftest import (
    InMemoryPeriodStore, make_period, UTC, PERIOD_START, PERIOD_END, AFTER_PERIOD, CREATOR_WALLET
)


def fixed(moment):
    return lambda: moment


@pytest.fixture
def store():
    second = make_period(2, PERIOD_END, PERIOD_END + timedelta(days=14))
    return InMemoryPeriodStore(
        [make_period(), second],
        {1: RevenueSnapshot(period_id=1, creator_wallet_address=CREATOR_WALLET)}
    )


def test_resolve_by_explicit_bounds(store):
    resolved = PeriodResolver(store, fixed(AFTER_PERIOD)).resolve("2025-01-01", "2025-01-15")
    assert resolved.period.id == 1
    assert resolved.creator_wallet_address == CREATOR_WALLET
    assert not resolved.period.is_current
    assert not resolved.period.is_future


def test_resolve_current_period_by_clock(store):
    resolved = PeriodResolver(store, fixed(AFTER_PERIOD)).resolve()
    assert resolved.period.id == 2
    assert resolved.period.is_current
    assert resolved.snapshot is None


def test_boundary_belongs_to_next_period(store):
    """Окна полуоткрытые: момент end принадлежит следующему периоду"""
    resolved = PeriodResolver(store, fixed(PERIOD_END)).resolve()
    assert resolved.period.id == 2


def test_flags_recomputed_from_clock(store):
    """Сохраненные флаги игнорируются"""
    store.periods[1] = replace(make_period(), is_current=True, is_future=False)
    before = datetime(2024, 12, 20, tzinfo=UTC)
    resolved = PeriodResolver(store, fixed(before)).resolve(PERIOD_START, PERIOD_END)
    assert resolved.period.is_future
    assert not resolved.period.is_current


def test_unknown_bounds_raise_period_not_found(store):
    resolver = PeriodResolver(store, fixed(AFTER_PERIOD))
    with pytest.raises(PeriodNotFound):
        resolver.resolve("2025-01-02", "2025-01-16")


@pytest.mark.parametrize("start,end", [
    ("2025-01-15", "2025-01-01"),
    ("2025-01-01", "2025-01-01"),
    ("2025-01-01", None),
    (None, "2025-01-15"),
    ("garbage", "2025-01-15"),
])
def test_invalid_bounds_raise_period_not_found(store, start, end):
    with pytest.raises(PeriodNotFound):
        PeriodResolver(store, fixed(AFTER_PERIOD)).resolve(start, end)


def test_no_current_period():
    resolver = PeriodResolver(InMemoryPeriodStore([make_period()]), fixed(datetime(2026, 1, 1, tzinfo=UTC)))
    with pytest.raises(NoCurrentPeriod):
        resolver.resolve()


def test_ambiguous_period():
    store = InMemoryPeriodStore([make_period(1), make_period(7)])
    with pytest.raises(AmbiguousPeriod):
        PeriodResolver(store, fixed(AFTER_PERIOD)).resolve(PERIOD_START, PERIOD_END)


def test_resolve_latest_completed(store):
    resolved = PeriodResolver(store, fixed(AFTER_PERIOD)).resolve_latest_completed()
    assert resolved.period.id == 1

    early = PeriodResolver(store, fixed(datetime(2025, 1, 5, tzinfo=UTC)))
    with pytest.raises(NoCurrentPeriod):
        early.resolve_latest_completed()


def test_biweekly_schedule_is_contiguous():
    schedule = build_biweekly_schedule("2025-01-01", 3)
    assert len(schedule) == 3
    assert schedule[0][0] == PERIOD_START
    assert schedule[0][1] == PERIOD_END
    assert schedule[0][2] == "Period 1: 2025-01-01 - 2025-01-14"
    for (_, end, _), (next_start, _, _) in zip(schedule, schedule[1:]):
        assert end == next_start
    assert build_biweekly_schedule("2025-01-01", 0) == []
