"""
Общие фикстуры и in-memory фейки хранилищ для тестов RevShare Payout Engine
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# До импорта настроек: без файла логов и без реальных пауз retry
os.environ.setdefault("PAYOUT_LOG_FILE", "")
os.environ.setdefault("PAYOUT_RETRY_DELAY_BASE", "0")
os.environ.setdefault("PAYOUT_RETRY_MAX_DELAY", "0")

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest

from config.constants import PeriodStatus
from config.settings import create_test_settings
from core.domain import (
    Period, RevenueSnapshot, UserActivity, FeeBucket, RevenueEvent, Profile,
    PayoutRecord, LedgerBatch, EntitlementEvent, ReferralBonusRecord, PayoutHistoryEntry
)
from core.exceptions import (
    StoreUnavailableError, GuardError, ConcurrencyError, NotFoundError, ValidationError,
    PeriodNotFound
)
from core.interfaces import (
    PeriodStore, ScoreSource, FeeSource, PlatformRevenueSource, ProfileDirectory,
    Ledger, EntitlementNotifier
)

UTC = timezone.utc
CREATOR_WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
USER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
TX_HASH = "5" * 64 + "KfQ2nSxYz"

PERIOD_START = datetime(2025, 1, 1, tzinfo=UTC)
PERIOD_END = datetime(2025, 1, 15, tzinfo=UTC)
AFTER_PERIOD = datetime(2025, 1, 20, 12, 0, tzinfo=UTC)


def sol(amount: str) -> int:
    """Сумма в SOL -> lamports"""
    return int(Decimal(amount) * 10 ** 9)


class InMemoryPeriodStore(PeriodStore):
    def __init__(self, periods: Iterable[Period] = (), snapshots: Optional[Dict[int, RevenueSnapshot]] = None):
        self.periods: Dict[int, Period] = {p.id: p for p in periods}
        self.snapshots: Dict[int, RevenueSnapshot] = dict(snapshots or {})

    def find_by_bounds(self, start, end):
        return [p for p in self.periods.values() if p.start == start and p.end == end]

    def find_containing(self, moment):
        return [p for p in self.periods.values() if p.start <= moment < p.end]

    def find_latest_ended(self, moment):
        ended = [p for p in self.periods.values() if p.end <= moment]
        return max(ended, key=lambda p: p.end) if ended else None

    def get_period(self, period_id):
        return self.periods.get(period_id)

    def get_snapshot(self, period_id):
        return self.snapshots.get(period_id)

    def set_status(self, period_id: int, status: str):
        self.periods[period_id] = replace(self.periods[period_id], status=status)


class FakeScoreSource(ScoreSource):
    def __init__(self, activities: Iterable[UserActivity] = (), unavailable: bool = False):
        self.activities = list(activities)
        self.unavailable = unavailable
        self.calls = 0

    def fetch_user_activity(self, start, end):
        self.calls += 1
        if self.unavailable:
            raise StoreUnavailableError("activity store is down")
        return list(self.activities)


class FakeFeeSource(FeeSource):
    """Ответы по очереди: список бакетов или исключение"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    def fetch_fee_buckets(self, wallet, start, end):
        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return [b for b in response if start <= b.timestamp < end]


class FakeRevenueSource(PlatformRevenueSource):
    def __init__(self, events: Iterable[RevenueEvent] = ()):
        self.events = list(events)

    def fetch_revenue_events(self, start, end):
        return [e for e in self.events if start <= e.occurred_at < end]


class FakeProfileDirectory(ProfileDirectory):
    def __init__(self, profiles: Iterable[Profile] = ()):
        self.profiles: Dict[str, Profile] = {p.user_id: p for p in profiles}

    def get_profiles(self, user_ids):
        return {uid: self.profiles[uid] for uid in user_ids if uid in self.profiles}


class InMemoryLedger(Ledger):
    """Ledger в памяти с той же семантикой блокировок, что и SqlLedger"""

    def __init__(self, store: InMemoryPeriodStore, profiles: FakeProfileDirectory,
                 stale_after: timedelta = timedelta(minutes=60), fail_commit: bool = False):
        self.store = store
        self.profiles = profiles
        self.stale_after = stale_after
        self.fail_commit = fail_commit
        self.payouts: Dict[int, Dict[str, PayoutRecord]] = {}
        self.bonuses: Dict[int, List[ReferralBonusRecord]] = {}
        self.scores: Dict[int, list] = {}
        self.events: List[EntitlementEvent] = []
        self.locks: Dict[int, tuple] = {}
        self.writes = 0
        self.commits = 0

    def acquire_period_lock(self, period_id, now):
        period = self.store.get_period(period_id)
        if period is None:
            raise PeriodNotFound(f"Period #{period_id} not found")
        if period.status == PeriodStatus.PAID:
            raise GuardError("period is paid", period_id=period_id)
        if period.status == PeriodStatus.IN_PROGRESS:
            locked_at, previous = self.locks.get(period_id, (None, PeriodStatus.PENDING))
            if locked_at is None or now - locked_at < self.stale_after:
                raise ConcurrencyError("period is locked", period_id=period_id)
        else:
            previous = period.status
        self.locks[period_id] = (now, previous)
        self.store.set_status(period_id, PeriodStatus.IN_PROGRESS)
        self.writes += 1
        return previous

    def release_period_lock(self, period_id, previous_status):
        if self.store.get_period(period_id).status == PeriodStatus.IN_PROGRESS:
            self.store.set_status(period_id, previous_status)
            self.locks.pop(period_id, None)
            self.writes += 1

    def commit_period(self, batch: LedgerBatch):
        period_id = batch.period.id
        if self.fail_commit:
            raise StoreUnavailableError("ledger write failed")
        if self.store.get_period(period_id).status != PeriodStatus.IN_PROGRESS:
            raise ConcurrencyError("lock not held")
        if any(p.claimed_at is not None for p in self.payouts.get(period_id, {}).values()):
            raise GuardError("period has claimed payouts", period_id=period_id)

        for bonus in self.bonuses.get(period_id, []):
            self.profiles.profiles[bonus.referrer_id].pending_referral_bonus -= bonus.amount
        for bonus in batch.bonuses:
            self.profiles.profiles[bonus.referrer_id].pending_referral_bonus += bonus.amount

        for event in self.events:
            if event.period_id == period_id:
                event.superseded = True

        self.payouts[period_id] = {p.user_id: replace(p) for p in batch.payouts}
        self.bonuses[period_id] = list(batch.bonuses)
        self.scores[period_id] = list(batch.scores)
        self.store.snapshots[period_id] = batch.snapshot

        stored = []
        for event in batch.events:
            stored_event = replace(event, id=len(self.events) + 1, created_at=AFTER_PERIOD)
            self.events.append(stored_event)
            stored.append(stored_event)

        self.store.set_status(period_id, PeriodStatus.CALCULATED)
        self.locks.pop(period_id, None)
        self.writes += 1
        self.commits += 1
        return stored

    def list_payouts(self, period_id):
        return [replace(p) for _, p in sorted(self.payouts.get(period_id, {}).items())]

    def get_payout(self, period_id, user_id):
        record = self.payouts.get(period_id, {}).get(user_id)
        return replace(record) if record else None

    def list_user_payouts(self, user_id, limit=10, offset=0):
        entries = []
        for period_id, payouts in self.payouts.items():
            if user_id not in payouts:
                continue
            score = next((s for s in self.scores.get(period_id, []) if s.user_id == user_id), None)
            bonuses = [b for b in self.bonuses.get(period_id, []) if b.referrer_id == user_id]
            entries.append(PayoutHistoryEntry(self.store.get_period(period_id), replace(payouts[user_id]),
                                              score, bonuses))
        entries.sort(key=lambda e: e.period.start, reverse=True)
        return entries[offset:offset + limit]

    def mark_payout_claimable(self, period_id, user_id):
        record = self._require(period_id, user_id)
        record.claimable = True
        return replace(record)

    def confirm_payout_claim(self, period_id, user_id, tx_hash, claimed_at):
        record = self._require(period_id, user_id)
        if record.claimed_at is not None:
            raise ValidationError("already claimed")
        record.claimed_at = claimed_at
        record.claim_tx_hash = tx_hash
        return replace(record)

    def settle_referral_balance(self, user_id, amount):
        profile = self.profiles.profiles[user_id]
        if amount <= 0 or amount > profile.pending_referral_bonus:
            raise ValidationError("invalid settle amount")
        profile.pending_referral_bonus -= amount
        return profile.pending_referral_bonus

    def mark_period_paid(self, period_id):
        period = self.store.get_period(period_id)
        if period.status == PeriodStatus.PAID:
            raise GuardError("already paid")
        if period.status != PeriodStatus.CALCULATED:
            raise ValidationError("not calculated")
        self.store.set_status(period_id, PeriodStatus.PAID)

    def list_events(self, period_id, include_superseded=False):
        return [e for e in self.events
                if e.period_id == period_id and (include_superseded or not e.superseded)]

    def _require(self, period_id, user_id):
        record = self.payouts.get(period_id, {}).get(user_id)
        if record is None:
            raise NotFoundError("no payout")
        return record


class RecordingNotifier(EntitlementNotifier):
    def __init__(self, fail: bool = False):
        self.batches: List[List[EntitlementEvent]] = []
        self.fail = fail

    def notify(self, events):
        if self.fail:
            raise RuntimeError("notification service down")
        self.batches.append(list(events))


def make_period(period_id: int = 1, start: datetime = PERIOD_START, end: datetime = PERIOD_END,
                status: str = PeriodStatus.PENDING) -> Period:
    return Period(id=period_id, start=start, end=end, name=f"Period {period_id}", status=status)


def activity(user_id, posts=0, comments=0, follows=0, likes=0, premium=False,
             banned=False, flagged=False) -> UserActivity:
    return UserActivity(
        user_id=user_id,
        posts_created=posts,
        comments_created=comments,
        follows_received=follows,
        likes_received=likes,
        is_premium=premium,
        is_banned=banned,
        is_flagged=flagged
    )


def bucket(day: int, lamports: int, month: int = 1) -> FeeBucket:
    return FeeBucket(timestamp=datetime(2025, month, day, tzinfo=UTC), fee=lamports)


@pytest.fixture
def config():
    """Веса из примера: post=10, like=1, premium x2"""
    return create_test_settings(
        weight_post=Decimal("10"),
        weight_comment=Decimal("5"),
        weight_follow=Decimal("2"),
        weight_like=Decimal("1"),
        premium_multiplier=Decimal("2"),
        chain_pool_ratio=Decimal("0.40"),
        platform_pool_ratio=Decimal("0.50"),
        referral_bonus_rate=Decimal("0.05"),
        creator_wallet_address=CREATOR_WALLET,
        log_file="",
    )


@pytest.fixture
def clock():
    return lambda: AFTER_PERIOD


@pytest.fixture
def period():
    return make_period()
