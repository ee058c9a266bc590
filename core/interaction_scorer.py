"""
Модуль: Interaction Scorer
Описание: Взвешенный engagement score пользователя за период.
score = w_post*posts + w_comment*comments + w_follow*follows + w_like*likes,
для premium пользователей результат умножается на premium_multiplier.
Арифметика - точный Decimal.
Зависимости: decimal
Автор: RevShare Payout Team
"""

from decimal import Decimal
from typing import Callable, Dict, List, Optional

from config.settings import PayoutSettings, get_settings
from core.domain import (
    Period, UserActivity, InteractionCounts, InteractionScore, ScoringResult
)
from core.interfaces import ScoreSource
from utils.logger import get_logger
from utils.validators import ActivityValidator

logger = get_logger("InteractionScorer")

EligibilityFilter = Callable[[UserActivity], bool]

COUNT_FIELDS = ("posts_created", "comments_created", "follows_received", "likes_received")


def default_eligibility_filter(activity: UserActivity) -> bool:
    """Забаненные и помеченные пользователи не участвуют"""
    return not (activity.is_banned or activity.is_flagged)


class InteractionScorer:
    """Подсчет очков вовлеченности"""

    def __init__(self, source: ScoreSource, config: Optional[PayoutSettings] = None):
        self.source = source
        self.config = config or get_settings()
        self.weights: Dict[str, Decimal] = self.config.get_interaction_weights()
        self.premium_multiplier: Decimal = self.config.premium_multiplier

    def compute(self, period: Period,
                eligibility_filter: Optional[EligibilityFilter] = None) -> ScoringResult:
        """
        Рассчитать очки всех допущенных пользователей за период

        Args:
            period: Разрешенный период
            eligibility_filter: Фильтр допуска (по умолчанию исключает banned/flagged)

        Returns:
            ScoringResult: очки, отсортированные по user_id, и total_score

        Raises:
            StoreUnavailableError: хранилище недоступно (фатально для шага)
        """
        eligibility_filter = eligibility_filter or default_eligibility_filter
        activities = self.source.fetch_user_activity(period.start, period.end)

        result = ScoringResult()
        seen = set()

        for activity in activities:
            if not activity.user_id:
                message = "Skipping activity record without user id"
                logger.warning(f"⚠️ {message}")
                result.warnings.append(message)
                continue

            user_id = str(activity.user_id)
            if user_id in seen:
                message = f"Duplicate activity record for user {user_id} ignored"
                logger.warning(f"⚠️ {message}")
                result.warnings.append(message)
                continue
            seen.add(user_id)

            if not eligibility_filter(activity):
                result.excluded_count += 1
                continue

            result.scores.append(self._score_user(user_id, activity, result.warnings))

        result.scores.sort(key=lambda s: s.user_id)
        result.total_score = sum((s.score for s in result.scores), Decimal(0))

        logger.info(
            f"🧮 Scored {len(result.scores)} users for {period.name}: "
            f"total_score={result.total_score}, excluded={result.excluded_count}, "
            f"warnings={len(result.warnings)}"
        )
        return result

    def score_counts(self, counts: InteractionCounts, is_premium: bool) -> Decimal:
        """Чистая функция подсчета очков по счетчикам"""
        score = (
            self.weights['post'] * counts.posts_created
            + self.weights['comment'] * counts.comments_created
            + self.weights['follow'] * counts.follows_received
            + self.weights['like'] * counts.likes_received
        )
        if is_premium:
            score *= self.premium_multiplier
        return score

    def _score_user(self, user_id: str, activity: UserActivity,
                    warnings: List[str]) -> InteractionScore:
        try:
            counts = InteractionCounts(**{
                name: ActivityValidator.validate_count(name, getattr(activity, name))
                for name in COUNT_FIELDS
            })
        except ValueError as e:
            message = f"Malformed activity for user {user_id}, scoring 0: {e}"
            logger.warning(f"⚠️ {message}")
            warnings.append(message)
            return InteractionScore(
                user_id=user_id,
                counts=InteractionCounts(),
                is_premium=bool(activity.is_premium),
                score=Decimal(0)
            )

        is_premium = bool(activity.is_premium)
        return InteractionScore(
            user_id=user_id,
            counts=counts,
            is_premium=is_premium,
            score=self.score_counts(counts, is_premium)
        )
