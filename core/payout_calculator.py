"""
Модуль: Payout Calculator
Описание: Распределение пула между пользователями пропорционально score.
Доли считаются точными рациональными числами, суммы усекаются до subunits,
остаток раздается методом наибольших остатков (по одному subunit, при
равенстве остатков - по возрастанию user_id), так что сумма выплат равна
пулу ровно.
Зависимости: fractions
Автор: RevShare Payout Team
"""

from decimal import Decimal
from fractions import Fraction
from typing import Dict, List, Optional, Sequence, Tuple

from config.settings import PayoutSettings, get_settings
from core.domain import PoolBreakdown, ScoringResult, PayoutRecord, PayoutComputation
from core.exceptions import InvalidPool, LedgerImbalance
from utils.converters import format_token_amount
from utils.logger import get_payout_logger

payout_logger = get_payout_logger("PayoutCalculator")
logger = payout_logger.get_logger()


def largest_remainder_split(total: int, weights: Sequence[Tuple[str, Fraction]]) -> Dict[str, int]:
    """
    Разделить total subunits пропорционально весам

    Args:
        total: Неотрицательная сумма
        weights: Пары (key, weight), weight >= 0, сумма весов > 0

    Returns:
        Dict[key, amount]: сумма значений ровно total
    """
    weight_sum = sum((w for _, w in weights), Fraction(0))
    if weight_sum <= 0:
        raise ValueError("Sum of weights must be positive")

    floors: Dict[str, int] = {}
    remainders: List[Tuple[Fraction, str]] = []
    for key, weight in weights:
        exact = Fraction(total) * weight / weight_sum
        floor = exact.numerator // exact.denominator
        floors[key] = floor
        remainders.append((exact - floor, key))

    leftover = total - sum(floors.values())
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, key in remainders[:leftover]:
        floors[key] += 1
    return floors


class PayoutCalculator:
    """Пул + очки -> точные выплаты в subunits"""

    def __init__(self, config: Optional[PayoutSettings] = None):
        self.config = config or get_settings()

    def compute(self, pool: PoolBreakdown, scoring: ScoringResult) -> PayoutComputation:
        """
        Рассчитать выплаты

        Args:
            pool: Пулы периода
            scoring: Результат подсчета очков

        Returns:
            PayoutComputation: записи по всем оцененным пользователям (сортировка по user_id)

        Raises:
            InvalidPool: total_pool < 0
            LedgerImbalance: сумма выплат не совпала с пулом
        """
        total_pool = pool.total_pool
        if total_pool < 0 or pool.chain_pool < 0 or pool.platform_pool < 0:
            raise InvalidPool(f"Pool cannot be negative: total={total_pool}")

        total_score = sum((s.score for s in scoring.scores), Decimal(0))
        result = PayoutComputation(total_pool=total_pool, total_score=total_score)

        if total_score == 0:
            result.unassigned_sink = self.config.unassigned_pool_sink
            result.unassigned_amount = total_pool
            message = (
                f"Total score is 0, pool {format_token_amount(total_pool)} "
                f"routed to sink '{result.unassigned_sink}'"
            )
            logger.warning(f"🪣 {message}")
            result.warnings.append(message)
            return result

        scores = sorted(scoring.scores, key=lambda s: s.user_id)
        amounts = largest_remainder_split(
            total_pool,
            [(s.user_id, Fraction(s.score)) for s in scores]
        )

        # Разбивка каждой выплаты на on-chain и platform части
        positive = [(s.user_id, Fraction(amounts[s.user_id])) for s in scores if amounts[s.user_id] > 0]
        chain_shares = largest_remainder_split(pool.chain_pool, positive) if positive and total_pool > 0 else {}

        starved = 0
        for score in scores:
            amount = amounts[score.user_id]
            chain_share = chain_shares.get(score.user_id, 0)
            if score.score > 0 and amount == 0:
                starved += 1
            result.payouts.append(PayoutRecord(
                user_id=score.user_id,
                score=score.score,
                amount=amount,
                chain_share=chain_share,
                platform_share=amount - chain_share,
            ))

        if starved:
            message = f"{starved} user(s) with positive score received 0 subunits: pool smaller than recipients"
            logger.warning(f"⚠️ {message}")
            result.warnings.append(message)

        actual = result.total_amount
        if actual != total_pool:
            raise LedgerImbalance(
                f"Payout sum {actual} does not match total pool {total_pool}",
                expected=total_pool,
                actual=actual
            )

        paid_users = sum(1 for p in result.payouts if p.amount > 0)
        payout_logger.log_checkpoint("compute_user_payouts", "SUCCESS", {
            "total_pool": format_token_amount(total_pool),
            "total_score": total_score,
            "paid_users": paid_users,
            "zero_score_users": len(result.payouts) - paid_users - starved,
        })
        return result
