"""
Модуль: Константы проекта RevShare Payout Engine
Описание: Неизменяемые параметры нативного токена, периодов и пулов выплат
Автор: RevShare Payout Team
"""

from decimal import Decimal
from typing import Final

# 🚫 Параметры нативного токена - НЕ ИЗМЕНЯЙ!
TOKEN_DECIMALS: Final[int] = 9  # 1 SOL = 10**9 lamports
TOKEN_SYMBOL: Final[str] = "SOL"
SUBUNITS_PER_TOKEN: Final[int] = 10 ** TOKEN_DECIMALS

# Периоды выплат
PERIOD_LENGTH_DAYS: Final[int] = 14


class PeriodStatus:
    PENDING = "pending"          # Период еще не рассчитан
    IN_PROGRESS = "in_progress"  # Идет расчет (advisory lock)
    CALCULATED = "calculated"    # Ledger записан, можно пересчитать
    PAID = "paid"                # Выплачено, изменения запрещены


LOCKABLE_STATUSES: Final[tuple] = (PeriodStatus.PENDING, PeriodStatus.CALCULATED)


# Веса взаимодействий по умолчанию
DEFAULT_INTERACTION_WEIGHTS: Final[dict] = {
    'post': Decimal('3.0'),      # Создание поста - самый высокий вес
    'comment': Decimal('1.0'),   # Комментарий / ответ
    'follow': Decimal('0.5'),    # Полученная подписка
    'like': Decimal('0.25'),     # Полученный лайк
}
DEFAULT_PREMIUM_MULTIPLIER: Final[Decimal] = Decimal('1.5')

# Доли пулов
DEFAULT_CHAIN_POOL_RATIO: Final[Decimal] = Decimal('0.40')     # 40% on-chain комиссий
DEFAULT_PLATFORM_POOL_RATIO: Final[Decimal] = Decimal('0.50')  # 50% выручки платформы
DEFAULT_REFERRAL_BONUS_RATE: Final[Decimal] = Decimal('0.05')  # 5% от выплаты реферала


class RevenueCategory:
    PRO_SUBSCRIPTION = "pro_subscription"
    FEATURED_TOKEN = "featured_token"
    PROMOTION = "promotion"
    OTHER = "other"


class EntitlementKind:
    PAYOUT = "payout"
    REFERRAL_BONUS = "referral_bonus"


# Сервис индексации комиссий (pump.fun creator fees API)
FEE_INDEX_API_URL: Final[str] = "https://swap-api.pump.fun/v1"
FEE_INDEX_INTERVAL: Final[str] = "24h"
FEE_INDEX_BUCKET_LIMIT: Final[int] = 30  # 14-дневное окно + запас

# Retry для внешнего сервиса
RETRY_ATTEMPTS: Final[int] = 3
RETRY_DELAY_BASE: Final[float] = 1.0
RETRY_MAX_DELAY: Final[float] = 8.0
RETRY_MAX_TOTAL_WAIT: Final[float] = 20.0
REQUEST_TIMEOUT: Final[int] = 30

# Куда уходит пул, если никто не набрал очков
DEFAULT_UNASSIGNED_POOL_SINK: Final[str] = "platform_treasury"

# Названия шагов пайплайна
PIPELINE_STEPS: Final[tuple] = (
    "validate_period",
    "acquire_period_lock",
    "compute_interaction_scores",
    "fetch_chain_fees",
    "compute_platform_fees",
    "calculate_pools",
    "compute_user_payouts",
    "compute_referral_bonuses",
    "commit_ledger",
)

# Шаги, доступные для отдельного диагностического запуска
DIAGNOSTIC_STEPS: Final[tuple] = (
    "validate_period",
    "compute_interaction_scores",
    "fetch_chain_fees",
    "compute_platform_fees",
    "compute_user_payouts",
    "compute_referral_bonuses",
)
