"""
Модуль: Сборщики комиссий
Описание: ChainFeeCollector - on-chain комиссии кошелька создателя через
внешний сервис с retry/backoff/timeout; PlatformFeeAggregator - внутренняя
выручка платформы с разбивкой по категориям.
Зависимости: tenacity (через utils.retry)
Автор: RevShare Payout Team
"""

from typing import Optional

from config.settings import PayoutSettings, get_settings
from core.domain import Period, ChainFeeResult, PlatformFeeResult
from core.exceptions import ExternalServiceError, ValidationError
from core.interfaces import FeeSource, PlatformRevenueSource
from utils.converters import format_token_amount
from utils.logger import get_logger
from utils.retry import build_fee_source_retrying, FeeSourceError
from utils.validators import validate_wallet

logger = get_logger("FeeCollectors")


class ChainFeeCollector:
    """Сбор on-chain комиссий, начисленных кошельку создателя за период"""

    def __init__(self, source: FeeSource, config: Optional[PayoutSettings] = None):
        self.source = source
        self.config = config or get_settings()

    def collect(self, period: Period, wallet: Optional[str] = None) -> ChainFeeResult:
        """
        Сумма комиссий за [start, end)

        Args:
            period: Разрешенный период
            wallet: Кошелек создателя из снимка выручки (по умолчанию из настроек)

        Returns:
            ChainFeeResult: сумма в subunits и число попыток

        Raises:
            ValidationError: кошелек не задан или некорректен
            ExternalServiceError: сервис недоступен после всех попыток
        """
        wallet = wallet or self.config.creator_wallet_address
        if not wallet:
            raise ValidationError("Creator wallet address is not set for period", period_id=period.id)
        wallet = validate_wallet(wallet)

        attempts = 0

        def fetch_once():
            nonlocal attempts
            attempts += 1
            return self.source.fetch_fee_buckets(wallet, period.start, period.end)

        retrying = build_fee_source_retrying("fetch_chain_fees", self.config)
        try:
            buckets = retrying(fetch_once)
        except FeeSourceError as e:
            message = f"Chain fee source failed after {attempts} attempt(s): {e}"
            if not self.config.chain_fee_zero_fallback:
                logger.error(f"❌ {message}")
                raise ExternalServiceError(message, attempts=attempts, period_id=period.id) from e

            warning = f"{message}; chain fees set to 0 by operator fallback policy"
            logger.warning(f"⚠️ {warning}")
            return ChainFeeResult(
                wallet=wallet,
                total_fees=0,
                attempts=attempts,
                fallback_used=True,
                warnings=[warning]
            )

        total = sum(bucket.fee for bucket in buckets)
        logger.info(
            f"⛓️ Chain fees for {period.name}: {format_token_amount(total)} "
            f"from {len(buckets)} buckets ({attempts} attempt(s))"
        )
        return ChainFeeResult(
            wallet=wallet,
            total_fees=total,
            bucket_count=len(buckets),
            attempts=attempts
        )


class PlatformFeeAggregator:
    """Агрегация внутренней выручки платформы по категориям"""

    def __init__(self, source: PlatformRevenueSource):
        self.source = source

    def aggregate(self, period: Period) -> PlatformFeeResult:
        """
        Сумма выручки за [start, end) с разбивкой по категориям

        Raises:
            StoreUnavailableError: хранилище недоступно
        """
        events = self.source.fetch_revenue_events(period.start, period.end)
        result = PlatformFeeResult()

        for event in events:
            if not period.contains(event.occurred_at):
                logger.debug(f"🔍 Revenue event {event.source_id} outside window skipped")
                continue
            result.breakdown[event.category] = result.breakdown.get(event.category, 0) + event.amount
            result.event_counts[event.category] = result.event_counts.get(event.category, 0) + 1

        result.breakdown = dict(sorted(result.breakdown.items()))
        result.event_counts = dict(sorted(result.event_counts.items()))
        result.total = sum(result.breakdown.values())

        logger.info(
            f"🏦 Platform revenue for {period.name}: {format_token_amount(result.total)} "
            f"in {sum(result.event_counts.values())} events"
        )
        for category, amount in result.breakdown.items():
            logger.debug(f"    📌 {category}: {format_token_amount(amount)} ({result.event_counts[category]} events)")
        return result
