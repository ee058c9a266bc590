"""
Модуль: Period Resolver
Описание: Определение и проверка расчетного периода. is_current / is_future
всегда пересчитываются от часов, сохраненные флаги не используются.
Зависимости: datetime
Автор: RevShare Payout Team
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Union

from config.constants import PERIOD_LENGTH_DAYS
from core.domain import Period, ResolvedPeriod
from core.exceptions import PeriodNotFound, AmbiguousPeriod, NoCurrentPeriod
from core.interfaces import PeriodStore
from utils.converters import parse_period_bound, as_utc
from utils.logger import get_logger

logger = get_logger("PeriodResolver")

Clock = Callable[[], datetime]
BoundLike = Union[str, date, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PeriodResolver:
    """Разрешение окна [start, end) по явным границам или по текущему времени"""

    def __init__(self, store: PeriodStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or utc_now

    def resolve(self, period_start: Optional[BoundLike] = None,
                period_end: Optional[BoundLike] = None) -> ResolvedPeriod:
        """
        Разрешить период

        Args:
            period_start: Явное начало (datetime, date или ISO строка)
            period_end: Явный конец

        Returns:
            ResolvedPeriod: период с пересчитанными флагами и снимком выручки

        Raises:
            PeriodNotFound: границы не совпали ни с одним периодом или некорректны
            NoCurrentPeriod: ни один период не содержит текущий момент
            AmbiguousPeriod: найдено больше одного периода
        """
        now = as_utc(self.clock())

        if period_start is None and period_end is None:
            matches = self.store.find_containing(now)
            if not matches:
                raise NoCurrentPeriod(f"No period contains current time {now.isoformat()}")
            label = f"current time {now.isoformat()}"
        else:
            start, end = self._parse_bounds(period_start, period_end)
            matches = self.store.find_by_bounds(start, end)
            if not matches:
                raise PeriodNotFound(
                    f"Period {start.isoformat()} to {end.isoformat()} not found in period schedule"
                )
            label = f"{start.isoformat()} - {end.isoformat()}"

        if len(matches) > 1:
            raise AmbiguousPeriod(f"{len(matches)} periods match {label}")

        return self._with_snapshot(matches[0], now)

    def resolve_latest_completed(self) -> ResolvedPeriod:
        """Последний завершившийся период (для планировщика)"""
        now = as_utc(self.clock())
        period = self.store.find_latest_ended(now)
        if period is None:
            raise NoCurrentPeriod("No processable period found, all periods may be in the future")
        return self._with_snapshot(period, now)

    def _with_snapshot(self, period: Period, now: datetime) -> ResolvedPeriod:
        period = period.with_clock(now)
        snapshot = self.store.get_snapshot(period.id)
        logger.info(
            f"📅 Resolved period #{period.id} {period.name} "
            f"[{period.start.isoformat()}, {period.end.isoformat()}) status={period.status} "
            f"current={period.is_current} future={period.is_future}"
        )
        return ResolvedPeriod(period=period, snapshot=snapshot)

    @staticmethod
    def _parse_bounds(period_start: Optional[BoundLike],
                      period_end: Optional[BoundLike]) -> Tuple[datetime, datetime]:
        if period_start is None or period_end is None:
            raise PeriodNotFound("Both period start and period end are required")
        try:
            start = parse_period_bound(period_start)
            end = parse_period_bound(period_end)
        except (TypeError, ValueError) as e:
            raise PeriodNotFound(f"Invalid period bounds: {e}") from e
        if end <= start:
            raise PeriodNotFound(f"Period start must be before period end: {start} >= {end}")
        return start, end


def build_biweekly_schedule(anchor: BoundLike, count: int,
                            length_days: int = PERIOD_LENGTH_DAYS,
                            first_number: int = 1) -> List[Tuple[datetime, datetime, str]]:
    """
    Построить непрерывную сетку периодов

    Args:
        anchor: Начало первого периода
        count: Количество периодов
        length_days: Длина периода в днях
        first_number: Номер первого периода в имени

    Returns:
        List[(start, end, name)]: окна [start, end) без разрывов и пересечений
    """
    if count < 0:
        raise ValueError(f"count must be non-negative: {count}")
    if length_days <= 0:
        raise ValueError(f"length_days must be positive: {length_days}")

    start = parse_period_bound(anchor)
    step = timedelta(days=length_days)
    schedule = []
    for offset in range(count):
        end = start + step
        last_day = end - timedelta(days=1)
        name = f"Period {first_number + offset}: {start:%Y-%m-%d} - {last_day:%Y-%m-%d}"
        schedule.append((start, end, name))
        start = end
    return schedule
