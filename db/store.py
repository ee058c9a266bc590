"""
Модуль: SQLAlchemy реализации хранилищ RevShare Payout Engine
Описание: PeriodStore, ScoreSource, PlatformRevenueSource, ProfileDirectory
и Ledger поверх DatabaseManager. Ошибки драйвера БД превращаются в
StoreUnavailableError, запись результатов периода - одна транзакция.
Зависимости: sqlalchemy
Автор: RevShare Payout Team
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from config.constants import PeriodStatus, LOCKABLE_STATUSES
from config.settings import PayoutSettings, get_settings
from core.domain import (
    Period, RevenueSnapshot, UserActivity, RevenueEvent, Profile, PayoutRecord,
    LedgerBatch, EntitlementEvent, ReferralBonusRecord, InteractionCounts, InteractionScore,
    PayoutHistoryEntry
)
from core.exceptions import (
    StoreUnavailableError, PeriodNotFound, GuardError, ConcurrencyError,
    NotFoundError, ValidationError
)
from core.interfaces import (
    PeriodStore, ScoreSource, PlatformRevenueSource, ProfileDirectory, Ledger
)
from core.period_resolver import build_biweekly_schedule, Clock, utc_now
from db.database import DatabaseManager
from db.models import (
    BiweeklyPeriod, RevenueSnapshotModel, ProfileModel, PostModel, ReplyModel,
    LikeModel, FollowModel, RevenueEventModel, InteractionScoreModel,
    PayoutRecordModel, ReferralBonusRecordModel, EntitlementEventModel
)
from utils.converters import as_utc, to_utc_naive, format_token_amount
from utils.logger import get_logger

logger = get_logger("Store")


class SqlRepository:
    """Общая часть: сессии и отображение ошибок драйвера"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    @contextmanager
    def _session(self):
        try:
            with self.db.get_session() as session:
                yield session
        except DBAPIError as e:
            logger.error(f"❌ Database unavailable: {e}")
            raise StoreUnavailableError(f"Database unavailable: {e.orig}") from e


def _to_period(row: BiweeklyPeriod) -> Period:
    # is_current / is_future из БД не читаются, их пересчитывает резолвер
    return Period(
        id=row.id,
        start=as_utc(row.period_start),
        end=as_utc(row.period_end),
        name=row.period_name,
        status=row.status
    )


def _to_snapshot(row: RevenueSnapshotModel) -> RevenueSnapshot:
    return RevenueSnapshot(
        period_id=row.period_id,
        creator_wallet_address=row.creator_wallet_address,
        status=row.status,
        chain_fees=row.chain_fees or 0,
        platform_fees=row.platform_fees or 0,
        platform_breakdown=dict(row.platform_breakdown or {}),
        chain_pool=row.chain_pool or 0,
        platform_pool=row.platform_pool or 0,
        total_pool=row.total_pool or 0,
        unassigned_sink=row.unassigned_sink,
        unassigned_amount=row.unassigned_amount or 0
    )


def _to_profile(row: ProfileModel) -> Profile:
    return Profile(
        user_id=row.user_id,
        username=row.username,
        payout_wallet_address=row.payout_wallet_address,
        is_premium=bool(row.is_premium),
        is_banned=bool(row.is_banned),
        is_flagged=bool(row.is_flagged),
        referred_by=row.referred_by,
        pending_referral_bonus=row.pending_referral_bonus or 0
    )


def _to_payout(row: PayoutRecordModel) -> PayoutRecord:
    return PayoutRecord(
        user_id=row.user_id,
        score=Decimal(row.score),
        amount=row.amount,
        chain_share=row.chain_share,
        platform_share=row.platform_share,
        claimable=bool(row.claimable),
        claimed_at=as_utc(row.claimed_at) if row.claimed_at else None,
        claim_tx_hash=row.claim_tx_hash
    )


def _to_score(row: InteractionScoreModel) -> InteractionScore:
    return InteractionScore(
        user_id=row.user_id,
        counts=InteractionCounts(
            posts_created=row.posts_created,
            comments_created=row.comments_created,
            follows_received=row.follows_received,
            likes_received=row.likes_received
        ),
        is_premium=bool(row.is_premium),
        score=Decimal(row.score)
    )


def _to_bonus(row: ReferralBonusRecordModel) -> ReferralBonusRecord:
    return ReferralBonusRecord(
        referrer_id=row.referrer_id,
        referred_user_id=row.referred_user_id,
        amount=row.amount
    )


def _to_event(row: EntitlementEventModel) -> EntitlementEvent:
    return EntitlementEvent(
        id=row.id,
        period_id=row.period_id,
        user_id=row.user_id,
        kind=row.kind,
        amount=row.amount,
        payload=dict(row.payload or {}),
        superseded=bool(row.superseded),
        created_at=as_utc(row.created_at) if row.created_at else None
    )


class SqlPeriodStore(SqlRepository, PeriodStore):
    """Периоды и снимки выручки"""

    def find_by_bounds(self, start: datetime, end: datetime) -> List[Period]:
        with self._session() as session:
            rows = session.execute(
                select(BiweeklyPeriod)
                .where(BiweeklyPeriod.period_start == to_utc_naive(start))
                .where(BiweeklyPeriod.period_end == to_utc_naive(end))
            ).scalars().all()
            return [_to_period(r) for r in rows]

    def find_containing(self, moment: datetime) -> List[Period]:
        naive = to_utc_naive(moment)
        with self._session() as session:
            rows = session.execute(
                select(BiweeklyPeriod)
                .where(BiweeklyPeriod.period_start <= naive)
                .where(BiweeklyPeriod.period_end > naive)
            ).scalars().all()
            return [_to_period(r) for r in rows]

    def find_latest_ended(self, moment: datetime) -> Optional[Period]:
        with self._session() as session:
            row = session.execute(
                select(BiweeklyPeriod)
                .where(BiweeklyPeriod.period_end <= to_utc_naive(moment))
                .order_by(BiweeklyPeriod.period_end.desc())
                .limit(1)
            ).scalars().first()
            return _to_period(row) if row else None

    def get_period(self, period_id: int) -> Optional[Period]:
        with self._session() as session:
            row = session.get(BiweeklyPeriod, period_id)
            return _to_period(row) if row else None

    def get_snapshot(self, period_id: int) -> Optional[RevenueSnapshot]:
        with self._session() as session:
            row = session.execute(
                select(RevenueSnapshotModel).where(RevenueSnapshotModel.period_id == period_id)
            ).scalars().first()
            return _to_snapshot(row) if row else None

    def list_periods(self) -> List[Period]:
        with self._session() as session:
            rows = session.execute(
                select(BiweeklyPeriod).order_by(BiweeklyPeriod.period_start)
            ).scalars().all()
            return [_to_period(r) for r in rows]

    def extend_schedule(self, count: int, anchor: Optional[datetime] = None,
                        length_days: Optional[int] = None) -> List[Period]:
        """
        Добавить count периодов после последнего существующего

        Args:
            count: Сколько периодов добавить
            anchor: Начало первого периода, если таблица пуста
            length_days: Длина периода (по умолчанию из настроек)
        """
        length_days = length_days or get_settings().period_length_days
        with self._session() as session:
            last = session.execute(
                select(BiweeklyPeriod).order_by(BiweeklyPeriod.period_end.desc()).limit(1)
            ).scalars().first()
            existing = session.execute(select(func.count(BiweeklyPeriod.id))).scalar_one()

            if last is not None:
                anchor = as_utc(last.period_end)
            elif anchor is None:
                raise ValidationError("Anchor date is required to create the first period")

            created = []
            for start, end, name in build_biweekly_schedule(anchor, count, length_days, existing + 1):
                row = BiweeklyPeriod(
                    period_start=to_utc_naive(start),
                    period_end=to_utc_naive(end),
                    period_name=name,
                    status=PeriodStatus.PENDING
                )
                session.add(row)
                created.append(row)
            session.flush()
            logger.info(f"📅 Added {len(created)} periods to schedule")
            return [_to_period(r) for r in created]

    def register_creator_wallet(self, period_id: int, wallet: str) -> RevenueSnapshot:
        """Привязать кошелек создателя к снимку периода (действие оператора)"""
        with self._session() as session:
            period = session.get(BiweeklyPeriod, period_id)
            if period is None:
                raise PeriodNotFound(f"Period #{period_id} not found", period_id=period_id)
            if period.status == PeriodStatus.PAID:
                raise GuardError(f"Period #{period_id} is paid, snapshot is immutable", period_id=period_id)
            row = session.execute(
                select(RevenueSnapshotModel).where(RevenueSnapshotModel.period_id == period_id)
            ).scalars().first()
            if row is None:
                row = RevenueSnapshotModel(period_id=period_id, status=PeriodStatus.PENDING,
                                           platform_breakdown={})
                session.add(row)
            row.creator_wallet_address = wallet
            session.flush()
            return _to_snapshot(row)


class SqlScoreSource(SqlRepository, ScoreSource):
    """Счетчики активности из таблиц постов, ответов, лайков и подписок"""

    def fetch_user_activity(self, start: datetime, end: datetime) -> List[UserActivity]:
        lo, hi = to_utc_naive(start), to_utc_naive(end)
        counts: Dict[str, Dict[str, int]] = {}

        def add(field_name: str, rows):
            for user_id, value in rows:
                entry = counts.setdefault(user_id, {})
                entry[field_name] = entry.get(field_name, 0) + value

        with self._session() as session:
            add("posts_created", session.execute(
                select(PostModel.author_id, func.count(PostModel.id))
                .where(PostModel.created_at >= lo, PostModel.created_at < hi)
                .group_by(PostModel.author_id)
            ).all())
            add("comments_created", session.execute(
                select(ReplyModel.author_id, func.count(ReplyModel.id))
                .where(ReplyModel.created_at >= lo, ReplyModel.created_at < hi)
                .group_by(ReplyModel.author_id)
            ).all())
            add("follows_received", session.execute(
                select(FollowModel.following_id, func.count(FollowModel.id))
                .where(FollowModel.created_at >= lo, FollowModel.created_at < hi)
                .group_by(FollowModel.following_id)
            ).all())
            # Лайки, поставленные в окне на контент автора (посты и ответы)
            add("likes_received", session.execute(
                select(PostModel.author_id, func.count(LikeModel.id))
                .join(PostModel, LikeModel.post_id == PostModel.id)
                .where(LikeModel.created_at >= lo, LikeModel.created_at < hi)
                .group_by(PostModel.author_id)
            ).all())
            add("likes_received", session.execute(
                select(ReplyModel.author_id, func.count(LikeModel.id))
                .join(ReplyModel, LikeModel.reply_id == ReplyModel.id)
                .where(LikeModel.created_at >= lo, LikeModel.created_at < hi)
                .group_by(ReplyModel.author_id)
            ).all())

            profiles = {}
            if counts:
                profiles = {
                    row.user_id: row for row in session.execute(
                        select(ProfileModel).where(ProfileModel.user_id.in_(list(counts)))
                    ).scalars().all()
                }

            activities = []
            for user_id in sorted(counts):
                profile = profiles.get(user_id)
                activities.append(UserActivity(
                    user_id=user_id,
                    is_premium=bool(profile.is_premium) if profile else False,
                    is_banned=bool(profile.is_banned) if profile else False,
                    is_flagged=bool(profile.is_flagged) if profile else False,
                    **counts[user_id]
                ))

        logger.debug(f"🔍 Loaded activity for {len(activities)} users")
        return activities


class SqlPlatformRevenueSource(SqlRepository, PlatformRevenueSource):
    """Записи выручки платформы"""

    def fetch_revenue_events(self, start: datetime, end: datetime) -> List[RevenueEvent]:
        with self._session() as session:
            rows = session.execute(
                select(RevenueEventModel)
                .where(RevenueEventModel.occurred_at >= to_utc_naive(start))
                .where(RevenueEventModel.occurred_at < to_utc_naive(end))
                .order_by(RevenueEventModel.occurred_at, RevenueEventModel.id)
            ).scalars().all()
            return [
                RevenueEvent(
                    category=row.category,
                    amount=row.amount,
                    occurred_at=as_utc(row.occurred_at),
                    source_id=row.source_ref or str(row.id)
                )
                for row in rows
            ]


class SqlProfileDirectory(SqlRepository, ProfileDirectory):
    """Профили пользователей"""

    def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        with self._session() as session:
            rows = session.execute(
                select(ProfileModel).where(ProfileModel.user_id.in_(ids))
            ).scalars().all()
            return {row.user_id: _to_profile(row) for row in rows}


class SqlLedger(SqlRepository, Ledger):
    """Ledger выплат: блокировка периода, атомарная запись, claim flow"""

    def __init__(self, db: DatabaseManager, config: Optional[PayoutSettings] = None,
                 clock: Optional[Clock] = None):
        super().__init__(db)
        self.config = config or get_settings()
        self.clock = clock or utc_now

    def acquire_period_lock(self, period_id: int, now: datetime) -> str:
        now_naive = to_utc_naive(now)
        with self._session() as session:
            period = session.get(BiweeklyPeriod, period_id)
            if period is None:
                raise PeriodNotFound(f"Period #{period_id} not found", period_id=period_id)
            if period.status == PeriodStatus.PAID:
                raise GuardError(
                    f"Period {period.period_name} is already paid, recompute is forbidden",
                    period_id=period_id
                )

            if period.status == PeriodStatus.IN_PROGRESS:
                stale_before = now_naive - timedelta(minutes=self.config.lock_stale_after_minutes)
                if period.locked_at is None or period.locked_at > stale_before:
                    raise ConcurrencyError(
                        f"Period {period.period_name} is locked by another run since {period.locked_at}",
                        period_id=period_id
                    )
                restore_status = period.locked_from_status or PeriodStatus.PENDING
                stmt = (
                    update(BiweeklyPeriod)
                    .where(BiweeklyPeriod.id == period_id)
                    .where(BiweeklyPeriod.status == PeriodStatus.IN_PROGRESS)
                    .where(BiweeklyPeriod.locked_at == period.locked_at)
                    .values(locked_at=now_naive)
                )
                logger.warning(f"⚠️ Taking over stale lock of period {period.period_name} (locked at {period.locked_at})")
            elif period.status in LOCKABLE_STATUSES:
                restore_status = period.status
                stmt = (
                    update(BiweeklyPeriod)
                    .where(BiweeklyPeriod.id == period_id)
                    .where(BiweeklyPeriod.status == restore_status)
                    .values(status=PeriodStatus.IN_PROGRESS, locked_at=now_naive,
                            locked_from_status=restore_status)
                )
            else:
                raise ValidationError(f"Unknown period status: {period.status}", period_id=period_id)

            result = session.execute(stmt)
            if result.rowcount != 1:
                raise ConcurrencyError(f"Period #{period_id} was locked concurrently", period_id=period_id)

        logger.info(f"🔐 Period #{period_id} locked (was {restore_status})")
        return restore_status

    def release_period_lock(self, period_id: int, previous_status: str) -> None:
        with self._session() as session:
            session.execute(
                update(BiweeklyPeriod)
                .where(BiweeklyPeriod.id == period_id)
                .where(BiweeklyPeriod.status == PeriodStatus.IN_PROGRESS)
                .values(status=previous_status, locked_at=None, locked_from_status=None)
            )

    def commit_period(self, batch: LedgerBatch) -> List[EntitlementEvent]:
        """
        Заменить результаты периода одной транзакцией

        Порядок: откат прошлых реферальных бонусов с балансов, удаление старых
        очков / выплат / бонусов, пометка старых событий superseded, вставка
        новых строк, начисление бонусов, снимок, события, статус calculated.
        Период с уже выплаченными (claimed) выплатами не пересчитывается: GuardError.
        """
        period_id = batch.period.id
        now_naive = to_utc_naive(self.clock())

        with self._session() as session:
            period = session.get(BiweeklyPeriod, period_id)
            if period is None:
                raise PeriodNotFound(f"Period #{period_id} not found", period_id=period_id)
            if period.status != PeriodStatus.IN_PROGRESS:
                raise ConcurrencyError(
                    f"Period {period.period_name} is not locked by this run (status={period.status})",
                    period_id=period_id
                )
            claimed = session.execute(
                select(func.count(PayoutRecordModel.id))
                .where(PayoutRecordModel.period_id == period_id)
                .where(PayoutRecordModel.claimed_at.is_not(None))
            ).scalar_one()
            if claimed:
                raise GuardError(
                    f"Period {period.period_name} has {claimed} claimed payout(s), recompute would erase them",
                    period_id=period_id
                )

            self._reverse_previous_bonuses(session, period_id)

            for model in (InteractionScoreModel, PayoutRecordModel, ReferralBonusRecordModel):
                session.execute(delete(model).where(model.period_id == period_id))
            session.execute(
                update(EntitlementEventModel)
                .where(EntitlementEventModel.period_id == period_id)
                .where(EntitlementEventModel.superseded.is_(False))
                .values(superseded=True)
            )

            for score in batch.scores:
                session.add(InteractionScoreModel(
                    period_id=period_id,
                    user_id=score.user_id,
                    posts_created=score.counts.posts_created,
                    comments_created=score.counts.comments_created,
                    follows_received=score.counts.follows_received,
                    likes_received=score.counts.likes_received,
                    is_premium=score.is_premium,
                    score=score.score
                ))

            for payout in batch.payouts:
                session.add(PayoutRecordModel(
                    period_id=period_id,
                    user_id=payout.user_id,
                    score=payout.score,
                    amount=payout.amount,
                    chain_share=payout.chain_share,
                    platform_share=payout.platform_share,
                    claimable=payout.claimable
                ))

            totals: Dict[str, int] = {}
            for bonus in batch.bonuses:
                session.add(ReferralBonusRecordModel(
                    period_id=period_id,
                    referrer_id=bonus.referrer_id,
                    referred_user_id=bonus.referred_user_id,
                    amount=bonus.amount
                ))
                totals[bonus.referrer_id] = totals.get(bonus.referrer_id, 0) + bonus.amount
            for referrer_id, total in totals.items():
                self._adjust_referral_balance(session, referrer_id, total)

            self._write_snapshot(session, batch.snapshot, now_naive)

            event_rows = []
            for event in batch.events:
                row = EntitlementEventModel(
                    period_id=period_id,
                    user_id=event.user_id,
                    kind=event.kind,
                    amount=event.amount,
                    payload=event.payload,
                    superseded=False,
                    created_at=now_naive
                )
                session.add(row)
                event_rows.append(row)

            period.status = PeriodStatus.CALCULATED
            period.locked_at = None
            period.locked_from_status = None
            session.flush()
            stored_events = [_to_event(row) for row in event_rows]

        logger.info(
            f"💾 Ledger committed for period #{period_id}: {len(batch.payouts)} payouts, "
            f"{len(batch.bonuses)} referral bonuses, {len(stored_events)} events, "
            f"total pool {format_token_amount(batch.snapshot.total_pool)}"
        )
        return stored_events

    def _reverse_previous_bonuses(self, session: Session, period_id: int) -> None:
        previous = session.execute(
            select(ReferralBonusRecordModel.referrer_id, func.sum(ReferralBonusRecordModel.amount))
            .where(ReferralBonusRecordModel.period_id == period_id)
            .group_by(ReferralBonusRecordModel.referrer_id)
        ).all()
        for referrer_id, total in previous:
            self._adjust_referral_balance(session, referrer_id, -int(total))
        if previous:
            logger.info(f"↩️ Reversed previous referral bonuses of {len(previous)} referrers for period #{period_id}")

    @staticmethod
    def _adjust_referral_balance(session: Session, user_id: str, delta: int) -> None:
        result = session.execute(
            update(ProfileModel)
            .where(ProfileModel.user_id == user_id)
            .values(pending_referral_bonus=ProfileModel.pending_referral_bonus + delta)
        )
        if result.rowcount != 1:
            logger.warning(f"⚠️ Referrer profile {user_id} not found, balance not adjusted by {delta}")
            return
        if delta < 0:
            balance = session.execute(
                select(ProfileModel.pending_referral_bonus).where(ProfileModel.user_id == user_id)
            ).scalar_one()
            if balance < 0:
                logger.warning(
                    f"⚠️ Referral balance of {user_id} is negative ({balance}) after recompute: "
                    f"previous bonus was already settled"
                )

    @staticmethod
    def _write_snapshot(session: Session, snapshot: RevenueSnapshot, now_naive: datetime) -> None:
        row = session.execute(
            select(RevenueSnapshotModel).where(RevenueSnapshotModel.period_id == snapshot.period_id)
        ).scalars().first()
        if row is None:
            row = RevenueSnapshotModel(period_id=snapshot.period_id)
            session.add(row)
        row.creator_wallet_address = snapshot.creator_wallet_address
        row.status = PeriodStatus.CALCULATED
        row.chain_fees = snapshot.chain_fees
        row.platform_fees = snapshot.platform_fees
        row.platform_breakdown = dict(snapshot.platform_breakdown)
        row.chain_pool = snapshot.chain_pool
        row.platform_pool = snapshot.platform_pool
        row.total_pool = snapshot.total_pool
        row.unassigned_sink = snapshot.unassigned_sink
        row.unassigned_amount = snapshot.unassigned_amount
        row.calculated_at = now_naive
        if snapshot.unassigned_sink and snapshot.unassigned_amount:
            logger.warning(
                f"🪣 Unassigned pool {format_token_amount(snapshot.unassigned_amount)} "
                f"recorded for sink '{snapshot.unassigned_sink}'"
            )

    def list_payouts(self, period_id: int) -> List[PayoutRecord]:
        with self._session() as session:
            rows = session.execute(
                select(PayoutRecordModel)
                .where(PayoutRecordModel.period_id == period_id)
                .order_by(PayoutRecordModel.user_id)
            ).scalars().all()
            return [_to_payout(r) for r in rows]

    def get_payout(self, period_id: int, user_id: str) -> Optional[PayoutRecord]:
        with self._session() as session:
            row = self._payout_row(session, period_id, user_id)
            return _to_payout(row) if row else None

    def list_referral_bonuses(self, period_id: int) -> List[ReferralBonusRecord]:
        with self._session() as session:
            rows = session.execute(
                select(ReferralBonusRecordModel)
                .where(ReferralBonusRecordModel.period_id == period_id)
                .order_by(ReferralBonusRecordModel.referred_user_id)
            ).scalars().all()
            return [_to_bonus(r) for r in rows]

    def list_user_payouts(self, user_id: str, limit: int = 10, offset: int = 0) -> List[PayoutHistoryEntry]:
        """
        История выплат пользователя по всем периодам

        Новые периоды первыми. К каждой выплате добавляются очки активности
        пользователя за период и реферальные бонусы, заработанные им как реферером.
        """
        if limit <= 0 or offset < 0:
            raise ValidationError(f"Invalid pagination: limit={limit}, offset={offset}")

        with self._session() as session:
            rows = session.execute(
                select(PayoutRecordModel, BiweeklyPeriod, InteractionScoreModel)
                .join(BiweeklyPeriod, BiweeklyPeriod.id == PayoutRecordModel.period_id)
                .outerjoin(
                    InteractionScoreModel,
                    and_(
                        InteractionScoreModel.period_id == PayoutRecordModel.period_id,
                        InteractionScoreModel.user_id == PayoutRecordModel.user_id
                    )
                )
                .where(PayoutRecordModel.user_id == user_id)
                .order_by(BiweeklyPeriod.period_start.desc())
                .limit(limit)
                .offset(offset)
            ).all()

            bonuses: Dict[int, List[ReferralBonusRecord]] = {}
            period_ids = [period.id for _, period, _ in rows]
            if period_ids:
                bonus_rows = session.execute(
                    select(ReferralBonusRecordModel)
                    .where(ReferralBonusRecordModel.referrer_id == user_id)
                    .where(ReferralBonusRecordModel.period_id.in_(period_ids))
                    .order_by(ReferralBonusRecordModel.referred_user_id)
                ).scalars().all()
                for row in bonus_rows:
                    bonuses.setdefault(row.period_id, []).append(_to_bonus(row))

            return [
                PayoutHistoryEntry(
                    period=_to_period(period),
                    payout=_to_payout(payout),
                    interactions=_to_score(score) if score is not None else None,
                    referral_bonuses=bonuses.get(period.id, [])
                )
                for payout, period, score in rows
            ]

    def mark_payout_claimable(self, period_id: int, user_id: str) -> PayoutRecord:
        with self._session() as session:
            row = self._require_payout(session, period_id, user_id)
            row.claimable = True
            session.flush()
            return _to_payout(row)

    def confirm_payout_claim(self, period_id: int, user_id: str,
                             tx_hash: str, claimed_at: datetime) -> PayoutRecord:
        with self._session() as session:
            row = self._require_payout(session, period_id, user_id)
            if row.claimed_at is not None:
                raise ValidationError(f"Payout of {user_id} in period #{period_id} already claimed",
                                      period_id=period_id)
            if not row.claimable:
                raise ValidationError(f"Payout of {user_id} in period #{period_id} is not claimable",
                                      period_id=period_id)
            row.claimed_at = to_utc_naive(claimed_at)
            row.claim_tx_hash = tx_hash
            session.flush()
            return _to_payout(row)

    def settle_referral_balance(self, user_id: str, amount: int) -> int:
        if amount <= 0:
            raise ValidationError(f"Settled amount must be positive: {amount}")
        with self._session() as session:
            profile = session.get(ProfileModel, user_id)
            if profile is None:
                raise NotFoundError(f"Profile {user_id} not found")
            if amount > profile.pending_referral_bonus:
                raise ValidationError(
                    f"Settled amount {amount} exceeds pending referral bonus {profile.pending_referral_bonus}"
                )
            profile.pending_referral_bonus -= amount
            session.flush()
            return profile.pending_referral_bonus

    def mark_period_paid(self, period_id: int) -> None:
        with self._session() as session:
            period = session.get(BiweeklyPeriod, period_id)
            if period is None:
                raise PeriodNotFound(f"Period #{period_id} not found", period_id=period_id)
            if period.status == PeriodStatus.PAID:
                raise GuardError(f"Period {period.period_name} is already paid", period_id=period_id)
            if period.status != PeriodStatus.CALCULATED:
                raise ValidationError(
                    f"Only calculated periods can be marked paid, status={period.status}",
                    period_id=period_id
                )
            period.status = PeriodStatus.PAID
            session.execute(
                update(RevenueSnapshotModel)
                .where(RevenueSnapshotModel.period_id == period_id)
                .values(status=PeriodStatus.PAID)
            )
        logger.info(f"🏁 Period #{period_id} marked as paid")

    def list_events(self, period_id: int, include_superseded: bool = False) -> List[EntitlementEvent]:
        with self._session() as session:
            stmt = select(EntitlementEventModel).where(EntitlementEventModel.period_id == period_id)
            if not include_superseded:
                stmt = stmt.where(EntitlementEventModel.superseded.is_(False))
            rows = session.execute(stmt.order_by(EntitlementEventModel.id)).scalars().all()
            return [_to_event(r) for r in rows]

    @staticmethod
    def _payout_row(session: Session, period_id: int, user_id: str) -> Optional[PayoutRecordModel]:
        return session.execute(
            select(PayoutRecordModel)
            .where(PayoutRecordModel.period_id == period_id)
            .where(PayoutRecordModel.user_id == user_id)
        ).scalars().first()

    def _require_payout(self, session: Session, period_id: int, user_id: str) -> PayoutRecordModel:
        row = self._payout_row(session, period_id, user_id)
        if row is None:
            raise NotFoundError(f"No payout for user {user_id} in period #{period_id}", period_id=period_id)
        return row


__all__ = [
    'SqlRepository', 'SqlPeriodStore', 'SqlScoreSource', 'SqlPlatformRevenueSource',
    'SqlProfileDirectory', 'SqlLedger'
]
