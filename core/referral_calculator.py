"""
Модуль: Referral Bonus Calculator
Описание: Бонусы рефереров от выплат приглашенных пользователей.
bonus = floor(amount * referral_bonus_rate). Бонус начисляется сверх пула
и не вычитается из выплаты реферала.
Автор: RevShare Payout Team
"""

from decimal import Decimal
from typing import Dict, List, Optional

from config.settings import PayoutSettings, get_settings
from core.domain import PayoutRecord, Profile, ReferralBonusRecord, ReferralComputation
from utils.converters import apply_ratio, format_token_amount
from utils.logger import get_logger

logger = get_logger("ReferralBonus")


class ReferralBonusCalculator:
    """Расчет реферальных бонусов за период"""

    def __init__(self, config: Optional[PayoutSettings] = None,
                 rate: Optional[Decimal] = None):
        self.config = config or get_settings()
        self.rate = Decimal(rate) if rate is not None else self.config.referral_bonus_rate

    def compute(self, payouts: List[PayoutRecord],
                profiles: Dict[str, Profile]) -> ReferralComputation:
        """
        Рассчитать бонусы

        Args:
            payouts: Выплаты периода
            profiles: Профили получателей и их рефереров по user_id

        Returns:
            ReferralComputation: записи (referrer, referred, amount) и суммы по реферерам
        """
        result = ReferralComputation()

        for payout in sorted(payouts, key=lambda p: p.user_id):
            if payout.amount <= 0:
                continue

            profile = profiles.get(payout.user_id)
            if profile is None or not profile.referred_by:
                continue

            referrer_id = profile.referred_by
            if referrer_id == payout.user_id:
                self._skip(result, f"Self-referral of user {payout.user_id} skipped")
                continue
            if referrer_id not in profiles:
                self._skip(result, f"Referrer {referrer_id} of user {payout.user_id} not found, bonus skipped")
                continue

            bonus = apply_ratio(payout.amount, self.rate)
            if bonus == 0:
                continue

            result.bonuses.append(ReferralBonusRecord(
                referrer_id=referrer_id,
                referred_user_id=payout.user_id,
                amount=bonus
            ))
            result.totals_by_referrer[referrer_id] = result.totals_by_referrer.get(referrer_id, 0) + bonus

        result.totals_by_referrer = dict(sorted(result.totals_by_referrer.items()))
        logger.info(
            f"🤝 Referral bonuses: {len(result.bonuses)} records for "
            f"{len(result.totals_by_referrer)} referrers, total "
            f"{format_token_amount(sum(result.totals_by_referrer.values()))}, skipped {result.skipped_count}"
        )
        return result

    @staticmethod
    def _skip(result: ReferralComputation, message: str):
        logger.warning(f"⚠️ {message}")
        result.warnings.append(message)
        result.skipped_count += 1
