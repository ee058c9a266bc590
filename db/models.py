"""
Модуль: Модели базы данных для RevShare Payout Engine
Описание: SQLAlchemy модели периодов, снимков выручки, источников активности,
ledger выплат и outbox событий. Денежные поля - BigInteger subunits,
время - naive UTC.
Автор: RevShare Payout Team
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Numeric, Boolean, JSON,
    ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from config.constants import PeriodStatus

Base = declarative_base()


class BiweeklyPeriod(Base):
    """Расчетный период [period_start, period_end)"""
    __tablename__ = 'biweekly_periods'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    period_name = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=PeriodStatus.PENDING, index=True)

    # Неавторитетный кэш для быстрых списков, резолвер его не читает
    is_current = Column(Boolean, default=False)
    is_future = Column(Boolean, default=False)

    # Advisory lock
    locked_at = Column(DateTime)
    locked_from_status = Column(String(20))

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_period_bounds', 'period_start', 'period_end'),
        CheckConstraint('period_end > period_start', name='ck_period_window'),
    )


class RevenueSnapshotModel(Base):
    """Снимок выручки и пулов периода"""
    __tablename__ = 'revenue_snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey('biweekly_periods.id'), nullable=False, unique=True)
    creator_wallet_address = Column(String(64))
    status = Column(String(20), nullable=False, default=PeriodStatus.PENDING)

    chain_fees = Column(BigInteger, nullable=False, default=0)
    platform_fees = Column(BigInteger, nullable=False, default=0)
    platform_breakdown = Column(JSON, nullable=False, default=dict)
    chain_pool = Column(BigInteger, nullable=False, default=0)
    platform_pool = Column(BigInteger, nullable=False, default=0)
    total_pool = Column(BigInteger, nullable=False, default=0)

    unassigned_sink = Column(String(100))
    unassigned_amount = Column(BigInteger, nullable=False, default=0)

    calculated_at = Column(DateTime)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class ProfileModel(Base):
    """Профиль пользователя (внешний источник)"""
    __tablename__ = 'profiles'

    user_id = Column(String(64), primary_key=True)
    username = Column(String(100))
    payout_wallet_address = Column(String(64))
    is_premium = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)
    is_flagged = Column(Boolean, nullable=False, default=False)
    referred_by = Column(String(64), ForeignKey('profiles.user_id'))
    pending_referral_bonus = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=func.now())


class PostModel(Base):
    __tablename__ = 'posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, index=True)


class ReplyModel(Base):
    """Комментарий / ответ на пост"""
    __tablename__ = 'replies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey('posts.id'), nullable=False)
    author_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, index=True)


class LikeModel(Base):
    """Лайк поста или ответа"""
    __tablename__ = 'likes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    post_id = Column(Integer, ForeignKey('posts.id'))
    reply_id = Column(Integer, ForeignKey('replies.id'))
    created_at = Column(DateTime, nullable=False, index=True)


class FollowModel(Base):
    __tablename__ = 'follows'

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(String(64), nullable=False)
    following_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, index=True)


class RevenueEventModel(Base):
    """Запись выручки платформы (подписки, продвижение и т.д.)"""
    __tablename__ = 'revenue_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    category = Column(String(50), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    source_ref = Column(String(100))


class InteractionScoreModel(Base):
    """Очки пользователя за период (аудит расчета)"""
    __tablename__ = 'interaction_scores'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey('biweekly_periods.id'), nullable=False)
    user_id = Column(String(64), nullable=False)
    posts_created = Column(Integer, nullable=False, default=0)
    comments_created = Column(Integer, nullable=False, default=0)
    follows_received = Column(Integer, nullable=False, default=0)
    likes_received = Column(Integer, nullable=False, default=0)
    is_premium = Column(Boolean, nullable=False, default=False)
    score = Column(Numeric(30, 12), nullable=False)

    __table_args__ = (
        UniqueConstraint('period_id', 'user_id', name='uq_score_period_user'),
    )


class PayoutRecordModel(Base):
    """Выплата пользователю за период"""
    __tablename__ = 'payout_records'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey('biweekly_periods.id'), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    score = Column(Numeric(30, 12), nullable=False)
    amount = Column(BigInteger, nullable=False)
    chain_share = Column(BigInteger, nullable=False, default=0)
    platform_share = Column(BigInteger, nullable=False, default=0)
    claimable = Column(Boolean, nullable=False, default=False)
    claimed_at = Column(DateTime)
    claim_tx_hash = Column(String(100))
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('period_id', 'user_id', name='uq_payout_period_user'),
        CheckConstraint('amount >= 0', name='ck_payout_amount'),
    )


class ReferralBonusRecordModel(Base):
    """Реферальный бонус за выплату приглашенного пользователя"""
    __tablename__ = 'referral_bonus_records'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey('biweekly_periods.id'), nullable=False, index=True)
    referrer_id = Column(String(64), nullable=False, index=True)
    referred_user_id = Column(String(64), nullable=False)
    amount = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('period_id', 'referred_user_id', name='uq_bonus_period_referred'),
        CheckConstraint('referrer_id <> referred_user_id', name='ck_no_self_referral'),
    )


class EntitlementEventModel(Base):
    """Outbox событий начислений"""
    __tablename__ = 'entitlement_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey('biweekly_periods.id'), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    amount = Column(BigInteger, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    superseded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_event_period_active', 'period_id', 'superseded'),
    )


__all__ = [
    'Base', 'BiweeklyPeriod', 'RevenueSnapshotModel', 'ProfileModel', 'PostModel',
    'ReplyModel', 'LikeModel', 'FollowModel', 'RevenueEventModel', 'InteractionScoreModel',
    'PayoutRecordModel', 'ReferralBonusRecordModel', 'EntitlementEventModel'
]
