"""
Модуль: Pool Calculator
Описание: Чистый расчет распределяемых пулов из собранных комиссий.
chain_pool = floor(chain_fees * chain_ratio), platform_pool = floor(platform_fees * platform_ratio)
Автор: RevShare Payout Team
"""

from decimal import Decimal
from typing import Optional

from config.settings import PayoutSettings, get_settings
from core.domain import PoolBreakdown
from core.exceptions import InvalidPool
from utils.converters import apply_ratio


def calculate_pools(chain_fees: int, platform_fees: int,
                    chain_pool_ratio: Optional[Decimal] = None,
                    platform_pool_ratio: Optional[Decimal] = None,
                    config: Optional[PayoutSettings] = None) -> PoolBreakdown:
    """
    Рассчитать пулы периода в subunits

    Args:
        chain_fees: On-chain комиссии (subunits)
        platform_fees: Выручка платформы (subunits)
        chain_pool_ratio: Доля on-chain комиссий (по умолчанию из настроек)
        platform_pool_ratio: Доля выручки платформы (по умолчанию из настроек)

    Returns:
        PoolBreakdown: пулы с усечением к нулю

    Raises:
        InvalidPool: отрицательные комиссии или доля вне (0, 1]
    """
    config = config or get_settings()
    chain_ratio = Decimal(chain_pool_ratio if chain_pool_ratio is not None else config.chain_pool_ratio)
    platform_ratio = Decimal(platform_pool_ratio if platform_pool_ratio is not None else config.platform_pool_ratio)

    for name, ratio in (("chain_pool_ratio", chain_ratio), ("platform_pool_ratio", platform_ratio)):
        if not (Decimal(0) < ratio <= Decimal(1)):
            raise InvalidPool(f"{name} must be in (0, 1], got {ratio}")

    for name, value in (("chain_fees", chain_fees), ("platform_fees", platform_fees)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidPool(f"{name} must be an integer amount of subunits, got {value!r}")
        if value < 0:
            raise InvalidPool(f"{name} cannot be negative: {value}")

    chain_pool = apply_ratio(chain_fees, chain_ratio)
    platform_pool = apply_ratio(platform_fees, platform_ratio)

    return PoolBreakdown(
        chain_fees=chain_fees,
        platform_fees=platform_fees,
        chain_pool=chain_pool,
        platform_pool=platform_pool,
        total_pool=chain_pool + platform_pool,
        chain_pool_ratio=chain_ratio,
        platform_pool_ratio=platform_ratio,
    )
