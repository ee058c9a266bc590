"""
Модуль: Доменные типы RevShare Payout Engine
Описание: Dataclass'ы периодов, очков, пулов, выплат, реферальных бонусов,
событий начислений и отчета пайплайна. Все денежные поля - int subunits.
Автор: RevShare Payout Team
"""

from dataclasses import dataclass, field, replace, is_dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from config.constants import PeriodStatus
from core.exceptions import PayoutEngineError
from utils.converters import to_decimal_string


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def to_jsonable(value: Any) -> Any:
    """Привести результат шага к JSON-совместимому виду"""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if is_dataclass(value):
        return {k: to_jsonable(v) for k, v in value.__dict__.items()}
    return value


@dataclass(frozen=True)
class Period:
    """Расчетный период [start, end) в UTC"""
    id: int
    start: datetime
    end: datetime
    name: str
    status: str = PeriodStatus.PENDING
    is_current: bool = False
    is_future: bool = False

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def with_clock(self, now: datetime) -> "Period":
        """Пересчитать is_current / is_future относительно now"""
        return replace(self, is_current=self.contains(now), is_future=self.start > now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "status": self.status,
            "is_current": self.is_current,
            "is_future": self.is_future,
        }


@dataclass
class RevenueSnapshot:
    """Снимок выручки периода"""
    period_id: int
    creator_wallet_address: Optional[str] = None
    status: str = PeriodStatus.PENDING
    chain_fees: int = 0
    platform_fees: int = 0
    platform_breakdown: Dict[str, int] = field(default_factory=dict)
    chain_pool: int = 0
    platform_pool: int = 0
    total_pool: int = 0
    unassigned_sink: Optional[str] = None
    unassigned_amount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "creator_wallet_address": self.creator_wallet_address,
            "status": self.status,
            "chain_fees": to_decimal_string(self.chain_fees),
            "platform_fees": to_decimal_string(self.platform_fees),
            "platform_breakdown": {k: to_decimal_string(v) for k, v in self.platform_breakdown.items()},
            "chain_pool": to_decimal_string(self.chain_pool),
            "platform_pool": to_decimal_string(self.platform_pool),
            "total_pool": to_decimal_string(self.total_pool),
            "unassigned_sink": self.unassigned_sink,
            "unassigned_amount": to_decimal_string(self.unassigned_amount),
        }


@dataclass(frozen=True)
class ResolvedPeriod:
    period: Period
    snapshot: Optional[RevenueSnapshot] = None

    @property
    def creator_wallet_address(self) -> Optional[str]:
        return self.snapshot.creator_wallet_address if self.snapshot else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "creator_wallet_address": self.creator_wallet_address,
            "revenue_status": self.snapshot.status if self.snapshot else None,
        }


@dataclass
class UserActivity:
    """Сырые счетчики активности пользователя из хранилища"""
    user_id: Optional[str]
    posts_created: Any = 0
    comments_created: Any = 0
    follows_received: Any = 0
    likes_received: Any = 0
    is_premium: bool = False
    is_banned: bool = False
    is_flagged: bool = False


@dataclass(frozen=True)
class InteractionCounts:
    posts_created: int = 0
    comments_created: int = 0
    follows_received: int = 0
    likes_received: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "posts_created": self.posts_created,
            "comments_created": self.comments_created,
            "follows_received": self.follows_received,
            "likes_received": self.likes_received,
        }


@dataclass(frozen=True)
class InteractionScore:
    user_id: str
    counts: InteractionCounts
    is_premium: bool
    score: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "counts": self.counts.to_dict(),
            "is_premium": self.is_premium,
            "score": str(self.score),
        }


@dataclass
class ScoringResult:
    scores: List[InteractionScore] = field(default_factory=list)
    total_score: Decimal = Decimal(0)
    excluded_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_score": str(self.total_score),
            "user_count": len(self.scores),
            "excluded_count": self.excluded_count,
            "scores": [s.to_dict() for s in self.scores],
        }


@dataclass(frozen=True)
class FeeBucket:
    """Дневной бакет комиссий из сервиса индексации"""
    timestamp: datetime
    fee: int
    num_trades: int = 0


@dataclass
class ChainFeeResult:
    wallet: str
    total_fees: int
    bucket_count: int = 0
    attempts: int = 1
    fallback_used: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet": self.wallet,
            "total_fees": to_decimal_string(self.total_fees),
            "bucket_count": self.bucket_count,
            "attempts": self.attempts,
            "fallback_used": self.fallback_used,
        }


@dataclass(frozen=True)
class RevenueEvent:
    """Запись внутренней выручки платформы"""
    category: str
    amount: int
    occurred_at: datetime
    source_id: Optional[str] = None


@dataclass
class PlatformFeeResult:
    total: int = 0
    breakdown: Dict[str, int] = field(default_factory=dict)
    event_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": to_decimal_string(self.total),
            "breakdown": {k: to_decimal_string(v) for k, v in self.breakdown.items()},
            "event_counts": dict(self.event_counts),
        }


@dataclass(frozen=True)
class PoolBreakdown:
    chain_fees: int
    platform_fees: int
    chain_pool: int
    platform_pool: int
    total_pool: int
    chain_pool_ratio: Decimal
    platform_pool_ratio: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_fees": to_decimal_string(self.chain_fees),
            "platform_fees": to_decimal_string(self.platform_fees),
            "chain_pool": to_decimal_string(self.chain_pool),
            "platform_pool": to_decimal_string(self.platform_pool),
            "total_pool": to_decimal_string(self.total_pool),
            "chain_pool_ratio": str(self.chain_pool_ratio),
            "platform_pool_ratio": str(self.platform_pool_ratio),
        }


@dataclass
class PayoutRecord:
    user_id: str
    score: Decimal
    amount: int
    chain_share: int = 0
    platform_share: int = 0
    claimable: bool = False
    claimed_at: Optional[datetime] = None
    claim_tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": str(self.score),
            "amount": to_decimal_string(self.amount),
            "chain_share": to_decimal_string(self.chain_share),
            "platform_share": to_decimal_string(self.platform_share),
            "claimable": self.claimable,
            "claimed_at": _iso(self.claimed_at),
            "claim_tx_hash": self.claim_tx_hash,
        }


@dataclass
class PayoutComputation:
    payouts: List[PayoutRecord] = field(default_factory=list)
    total_pool: int = 0
    total_score: Decimal = Decimal(0)
    unassigned_sink: Optional[str] = None
    unassigned_amount: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return sum(p.amount for p in self.payouts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_pool": to_decimal_string(self.total_pool),
            "total_score": str(self.total_score),
            "total_amount": to_decimal_string(self.total_amount),
            "unassigned_sink": self.unassigned_sink,
            "unassigned_amount": to_decimal_string(self.unassigned_amount),
            "payouts": [p.to_dict() for p in self.payouts],
        }


@dataclass(frozen=True)
class ReferralBonusRecord:
    referrer_id: str
    referred_user_id: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "referrer_id": self.referrer_id,
            "referred_user_id": self.referred_user_id,
            "amount": to_decimal_string(self.amount),
        }


@dataclass
class ReferralComputation:
    bonuses: List[ReferralBonusRecord] = field(default_factory=list)
    totals_by_referrer: Dict[str, int] = field(default_factory=dict)
    skipped_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bonuses": [b.to_dict() for b in self.bonuses],
            "totals_by_referrer": {k: to_decimal_string(v) for k, v in self.totals_by_referrer.items()},
            "skipped_count": self.skipped_count,
        }


@dataclass
class Profile:
    """Профиль пользователя (внешний коллаборатор)"""
    user_id: str
    username: Optional[str] = None
    payout_wallet_address: Optional[str] = None
    is_premium: bool = False
    is_banned: bool = False
    is_flagged: bool = False
    referred_by: Optional[str] = None
    pending_referral_bonus: int = 0


@dataclass
class EntitlementEvent:
    """Событие начисления (outbox) для подсистемы уведомлений"""
    period_id: int
    user_id: str
    kind: str
    amount: int
    payload: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    superseded: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "period_id": self.period_id,
            "user_id": self.user_id,
            "kind": self.kind,
            "amount": to_decimal_string(self.amount),
            "payload": to_jsonable(self.payload),
            "superseded": self.superseded,
            "created_at": _iso(self.created_at),
        }


@dataclass
class LedgerBatch:
    """Все результаты периода для одной атомарной транзакции"""
    period: Period
    snapshot: RevenueSnapshot
    scores: List[InteractionScore] = field(default_factory=list)
    payouts: List[PayoutRecord] = field(default_factory=list)
    bonuses: List[ReferralBonusRecord] = field(default_factory=list)
    events: List[EntitlementEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period.id,
            "snapshot": self.snapshot.to_dict(),
            "payout_count": len(self.payouts),
            "bonus_count": len(self.bonuses),
            "event_count": len(self.events),
        }


@dataclass(frozen=True)
class ClaimTicket:
    """Данные для downstream подсистемы перевода средств"""
    user_id: str
    kind: str
    amount: int
    wallet_address: str
    period_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "kind": self.kind,
            "amount": to_decimal_string(self.amount),
            "wallet_address": self.wallet_address,
            "period_id": self.period_id,
        }


@dataclass
class PayoutHistoryEntry:
    """Выплата пользователя за один период с очками активности и заработанными реферальными бонусами"""
    period: Period
    payout: PayoutRecord
    interactions: Optional[InteractionScore] = None
    referral_bonuses: List[ReferralBonusRecord] = field(default_factory=list)

    @property
    def referral_bonus_total(self) -> int:
        return sum(b.amount for b in self.referral_bonuses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "payout": self.payout.to_dict(),
            "referral_bonus": {
                "total": to_decimal_string(self.referral_bonus_total),
                "count": len(self.referral_bonuses),
            },
            "interactions": self.interactions.to_dict() if self.interactions else None,
        }


@dataclass
class PayoutHistoryPage:
    entries: List[PayoutHistoryEntry]
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return len(self.entries) == self.limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payouts": [e.to_dict() for e in self.entries],
            "pagination": {"limit": self.limit, "offset": self.offset, "has_more": self.has_more},
        }


@dataclass
class StepResult:
    """Результат одного шага пайплайна: Ok(data) | Err(error)"""
    name: str
    success: bool
    data: Any = None
    error: Optional[Exception] = None
    duration: float = 0.0

    @classmethod
    def ok(cls, name: str, data: Any = None, duration: float = 0.0) -> "StepResult":
        return cls(name=name, success=True, data=data, duration=duration)

    @classmethod
    def err(cls, name: str, error: Exception, duration: float = 0.0) -> "StepResult":
        return cls(name=name, success=False, error=error, duration=duration)

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "kind", type(self.error).__name__)

    def unwrap(self) -> Any:
        """Данные шага или исходное исключение"""
        if not self.success:
            raise self.error
        return self.data

    def to_dict(self) -> Dict[str, Any]:
        result = {"name": self.name, "success": self.success, "duration": round(self.duration, 3)}
        if self.success:
            result["data"] = to_jsonable(self.data)
        else:
            result["error"] = str(self.error)
            result["error_kind"] = self.error_kind
        return result


@dataclass
class PipelineReport:
    """Структурированный отчет запуска для оператора"""
    mode: str
    period: Optional[Period] = None
    committed: bool = False
    step_results: List[StepResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add_step(self, step: StepResult) -> StepResult:
        self.step_results.append(step)
        if not step.success:
            self.errors.append(f"{step.name}: {step.error_kind}: {step.error}")
        return step

    def get_step(self, name: str) -> Optional[StepResult]:
        for step in self.step_results:
            if step.name == name:
                return step
        return None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def failed_steps(self) -> List[StepResult]:
        return [s for s in self.step_results if not s.success]

    def raise_for_errors(self) -> None:
        """Пробросить первую ошибку шага"""
        for step in self.step_results:
            if not step.success:
                raise step.error
        if self.errors:
            raise PayoutEngineError(self.errors[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.to_dict() if self.period else None,
            "mode": self.mode,
            "committed": self.committed,
            "step_results": [s.to_dict() for s in self.step_results],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }
