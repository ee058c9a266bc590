"""
Модуль: Конвертеры данных для RevShare Payout Engine
Описание: Конвертация между subunits (lamports) и токенами, доли пула,
работа с UTC границами периодов, форматирование для отчетов
Зависимости: decimal, datetime
Автор: RevShare Payout Team
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from datetime import datetime, date, timezone, timedelta
from fractions import Fraction
from typing import Union

from config.constants import TOKEN_DECIMALS, TOKEN_SYMBOL, SUBUNITS_PER_TOKEN
from utils.logger import get_logger

logger = get_logger("Converters")

AmountLike = Union[int, str, Decimal]


class TokenConverter:
    """Конвертер между нативным токеном и его subunits (10^-9)"""

    @staticmethod
    def subunits_to_token(subunits: Union[int, str]) -> Decimal:
        """
        Конвертировать subunits в токены

        Args:
            subunits: Целое количество subunits

        Returns:
            Decimal: Количество токенов с точностью 9 знаков
        """
        value = int(subunits)
        return (Decimal(value) / Decimal(SUBUNITS_PER_TOKEN)).quantize(
            Decimal(10) ** -TOKEN_DECIMALS,
            rounding=ROUND_DOWN
        )

    @staticmethod
    def token_to_subunits(token_amount: AmountLike) -> int:
        """
        Конвертировать токены в subunits (усечение до 9 знаков)

        Args:
            token_amount: Количество токенов (str, int или Decimal, но не float)

        Returns:
            int: Количество subunits
        """
        if isinstance(token_amount, float):
            raise TypeError("float суммы запрещены, используйте str или Decimal")
        try:
            amount = Decimal(str(token_amount))
        except InvalidOperation as e:
            raise ValueError(f"Некорректная сумма: {token_amount!r}") from e
        if not amount.is_finite():
            raise ValueError(f"Некорректная сумма: {token_amount!r}")
        return int((amount * SUBUNITS_PER_TOKEN).to_integral_value(rounding=ROUND_DOWN))

    @staticmethod
    def format_token_amount(subunits: int,
                            include_symbol: bool = True,
                            precision: int = 4) -> str:
        """Форматировать subunits для отображения в логах"""
        rounded = TokenConverter.subunits_to_token(subunits).quantize(
            Decimal(10) ** -precision,
            rounding=ROUND_HALF_UP
        )
        formatted = f"{rounded:,}"
        if include_symbol:
            formatted += f" {TOKEN_SYMBOL}"
        return formatted

    @staticmethod
    def to_decimal_string(subunits: int) -> str:
        """Точное десятичное представление суммы (для JSON отчетов)"""
        return str(TokenConverter.subunits_to_token(subunits))


class RatioConverter:
    """Целочисленная арифметика долей пула"""

    @staticmethod
    def apply_ratio(subunits: int, ratio: Decimal) -> int:
        """
        floor(subunits × ratio) без float

        Args:
            subunits: Неотрицательная сумма в subunits
            ratio: Доля в виде Decimal

        Returns:
            int: Усеченная сумма
        """
        if subunits < 0:
            raise ValueError(f"Сумма не может быть отрицательной: {subunits}")
        exact = Fraction(int(subunits)) * Fraction(Decimal(ratio))
        return exact.numerator // exact.denominator


class TimeConverter:
    """Работа с UTC временем и границами периодов"""

    @staticmethod
    def as_utc(dt: datetime) -> datetime:
        """Aware datetime в UTC (naive значения считаются UTC)"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_utc_naive(dt: datetime) -> datetime:
        """Naive UTC datetime для хранения в БД"""
        return TimeConverter.as_utc(dt).replace(tzinfo=None)

    @staticmethod
    def parse_period_bound(value: Union[str, date, datetime]) -> datetime:
        """
        Разобрать границу периода

        Args:
            value: datetime, date или ISO строка (YYYY-MM-DD или полный timestamp)

        Returns:
            datetime: Aware datetime в UTC
        """
        if isinstance(value, datetime):
            return TimeConverter.as_utc(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return TimeConverter.as_utc(datetime.fromisoformat(text))
            except ValueError as e:
                raise ValueError(f"Некорректная граница периода: {value!r}") from e
        raise TypeError(f"Неподдерживаемый тип границы периода: {type(value).__name__}")

    @staticmethod
    def format_duration(seconds: Union[int, float]) -> str:
        """Форматировать длительность для логов"""
        if seconds < 60:
            return f"{seconds:.1f}s"
        return str(timedelta(seconds=int(seconds)))

    @staticmethod
    def interval_to_timedelta(interval: str) -> timedelta:
        """Интервал вида '24h', '30m', '1d' в timedelta"""
        text = str(interval).strip().lower()
        units = {"m": "minutes", "h": "hours", "d": "days"}
        if len(text) < 2 or text[-1] not in units or not text[:-1].isdigit() or int(text[:-1]) <= 0:
            raise ValueError(f"Некорректный интервал: {interval!r}")
        return timedelta(**{units[text[-1]]: int(text[:-1])})


# Удобные функции

def to_subunits(token_amount: AmountLike) -> int:
    return TokenConverter.token_to_subunits(token_amount)


def from_subunits(subunits: Union[int, str]) -> Decimal:
    return TokenConverter.subunits_to_token(subunits)


def format_token_amount(subunits: int, precision: int = 4) -> str:
    return TokenConverter.format_token_amount(subunits, precision=precision)


def to_decimal_string(subunits: int) -> str:
    return TokenConverter.to_decimal_string(subunits)


def apply_ratio(subunits: int, ratio: Decimal) -> int:
    return RatioConverter.apply_ratio(subunits, ratio)


def as_utc(dt: datetime) -> datetime:
    return TimeConverter.as_utc(dt)


def to_utc_naive(dt: datetime) -> datetime:
    return TimeConverter.to_utc_naive(dt)


def format_duration(seconds: Union[int, float]) -> str:
    return TimeConverter.format_duration(seconds)


def parse_period_bound(value: Union[str, date, datetime]) -> datetime:
    return TimeConverter.parse_period_bound(value)


def interval_to_timedelta(interval: str) -> timedelta:
    return TimeConverter.interval_to_timedelta(interval)
