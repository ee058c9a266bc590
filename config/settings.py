"""
Модуль: Настройки для RevShare Payout Engine
Описание: Pydantic класс для настроек с валидацией и загрузкой из .env
Зависимости: pydantic, pydantic-settings, python-dotenv
Автор: RevShare Payout Team
"""

from typing import Optional, Literal, Dict
from decimal import Decimal
from pydantic import field_validator, model_validator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Константы по умолчанию из файла констант
from .constants import (
    TOKEN_DECIMALS, DEFAULT_INTERACTION_WEIGHTS, DEFAULT_PREMIUM_MULTIPLIER,
    DEFAULT_CHAIN_POOL_RATIO, DEFAULT_PLATFORM_POOL_RATIO, DEFAULT_REFERRAL_BONUS_RATE,
    FEE_INDEX_API_URL, FEE_INDEX_INTERVAL, FEE_INDEX_BUCKET_LIMIT,
    RETRY_ATTEMPTS, RETRY_DELAY_BASE, RETRY_MAX_DELAY, RETRY_MAX_TOTAL_WAIT,
    REQUEST_TIMEOUT, DEFAULT_UNASSIGNED_POOL_SINK, PERIOD_LENGTH_DAYS
)


class PayoutSettings(BaseSettings):
    """Настройки для RevShare Payout Engine с валидацией"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAYOUT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Нативный токен (НЕ ИЗМЕНЯТЬ!)
    token_decimals: int = Field(default=TOKEN_DECIMALS, description="Количество знаков после запятой")

    # База данных
    database_url: str = Field(default="sqlite:///revshare_payouts.db", description="URL базы данных")
    debug_sql: bool = Field(default=False, description="Включить отладку SQL запросов")

    # Веса взаимодействий
    weight_post: Decimal = Field(default=DEFAULT_INTERACTION_WEIGHTS['post'], description="Вес созданного поста")
    weight_comment: Decimal = Field(default=DEFAULT_INTERACTION_WEIGHTS['comment'], description="Вес комментария/ответа")
    weight_follow: Decimal = Field(default=DEFAULT_INTERACTION_WEIGHTS['follow'], description="Вес полученной подписки")
    weight_like: Decimal = Field(default=DEFAULT_INTERACTION_WEIGHTS['like'], description="Вес полученного лайка")
    premium_multiplier: Decimal = Field(default=DEFAULT_PREMIUM_MULTIPLIER, description="Множитель для premium пользователей")

    # Пулы и рефералы
    chain_pool_ratio: Decimal = Field(default=DEFAULT_CHAIN_POOL_RATIO, description="Доля on-chain комиссий в пуле")
    platform_pool_ratio: Decimal = Field(default=DEFAULT_PLATFORM_POOL_RATIO, description="Доля выручки платформы в пуле")
    referral_bonus_rate: Decimal = Field(default=DEFAULT_REFERRAL_BONUS_RATE, description="Процент реферального бонуса")
    unassigned_pool_sink: str = Field(default=DEFAULT_UNASSIGNED_POOL_SINK, description="Получатель пула при нулевом totalScore")

    # Периоды
    period_length_days: int = Field(default=PERIOD_LENGTH_DAYS, description="Длина периода в днях")
    lock_stale_after_minutes: int = Field(default=60, description="Через сколько минут in_progress считается зависшим")

    # Сервис индексации комиссий
    creator_wallet_address: str = Field(default="", description="Кошелек создателя по умолчанию")
    fee_api_url: str = Field(default=FEE_INDEX_API_URL, description="Endpoint сервиса индексации комиссий")
    fee_api_interval: str = Field(default=FEE_INDEX_INTERVAL, description="Интервал бакетов комиссий")
    fee_api_bucket_limit: int = Field(default=FEE_INDEX_BUCKET_LIMIT, description="Максимум бакетов за запрос")
    request_timeout: int = Field(default=REQUEST_TIMEOUT, description="Таймаут одной попытки в секундах")
    chain_fee_zero_fallback: bool = Field(default=False, description="Явный выбор оператора: 0 вместо ошибки сервиса")

    # Retry настройки
    retry_attempts: int = Field(default=RETRY_ATTEMPTS, description="Количество попыток")
    retry_delay_base: float = Field(default=RETRY_DELAY_BASE, description="Базовая задержка retry в секундах")
    retry_max_delay: float = Field(default=RETRY_MAX_DELAY, description="Максимальная задержка между попытками")
    retry_max_total_wait: float = Field(default=RETRY_MAX_TOTAL_WAIT, description="Ограничение суммарного ожидания")

    # Логирование
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="Уровень логирования")
    log_file: str = Field(default="logs/revshare_payouts.log", description="Файл для логов (пусто - без файла)")

    @field_validator("token_decimals")
    @classmethod
    def validate_decimals(cls, v):
        """Критическая проверка: decimals должен быть 9 для нативного токена"""
        if v != 9:
            raise ValueError(f"КРИТИЧЕСКАЯ ОШИБКА: token_decimals должен быть 9, получен {v}")
        return v

    @field_validator("weight_post", "weight_comment", "weight_follow", "weight_like")
    @classmethod
    def validate_positive_weights(cls, v):
        """Все веса строго положительные"""
        if v <= 0:
            raise ValueError(f"Вес должен быть больше 0: {v}")
        return v

    @field_validator("premium_multiplier")
    @classmethod
    def validate_premium_multiplier(cls, v):
        """Premium множитель обязан усиливать score"""
        if v <= 1:
            raise ValueError(f"premium_multiplier должен быть больше 1: {v}")
        return v

    @field_validator("chain_pool_ratio", "platform_pool_ratio")
    @classmethod
    def validate_pool_ratio(cls, v):
        """Доля пула в диапазоне (0, 1]"""
        if v <= 0 or v > 1:
            raise ValueError(f"Доля пула должна быть в диапазоне (0, 1]: {v}")
        return v

    @field_validator("referral_bonus_rate")
    @classmethod
    def validate_referral_rate(cls, v):
        if v < 0 or v >= 1:
            raise ValueError(f"referral_bonus_rate должен быть в диапазоне [0, 1): {v}")
        return v

    @field_validator("fee_api_url")
    @classmethod
    def validate_urls(cls, v):
        """Валидация URL endpoints"""
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError(f"Неверный формат URL: {v}")
        return v.rstrip("/")

    @field_validator("fee_api_interval")
    @classmethod
    def validate_interval(cls, v):
        """Интервал бакетов: число и единица m/h/d"""
        v = v.strip().lower()
        if len(v) < 2 or v[-1] not in "mhd" or not v[:-1].isdigit() or int(v[:-1]) <= 0:
            raise ValueError(f"Неверный интервал бакетов: {v}")
        return v

    @field_validator("retry_attempts", "request_timeout", "period_length_days",
                     "fee_api_bucket_limit", "lock_stale_after_minutes")
    @classmethod
    def validate_positive_ints(cls, v):
        if v <= 0:
            raise ValueError(f"Значение должно быть больше 0: {v}")
        return v

    @field_validator("retry_delay_base", "retry_max_delay", "retry_max_total_wait")
    @classmethod
    def validate_non_negative_delays(cls, v):
        if v < 0:
            raise ValueError(f"Задержка не может быть отрицательной: {v}")
        return v

    @model_validator(mode="after")
    def validate_weight_order(self):
        """Проверка порядка весов: post > comment > follow > like"""
        if not (self.weight_post > self.weight_comment > self.weight_follow > self.weight_like):
            raise ValueError(
                "Веса должны удовлетворять weight_post > weight_comment > weight_follow > weight_like, "
                f"получено {self.weight_post}, {self.weight_comment}, {self.weight_follow}, {self.weight_like}"
            )
        return self

    def get_interaction_weights(self) -> Dict[str, Decimal]:
        """Получить веса взаимодействий в виде словаря"""
        return {
            'post': self.weight_post,
            'comment': self.weight_comment,
            'follow': self.weight_follow,
            'like': self.weight_like,
        }

    def is_debug(self) -> bool:
        """Проверка debug режима"""
        return self.log_level == "DEBUG"


# Глобальный экземпляр настроек
settings = PayoutSettings()


def get_settings() -> PayoutSettings:
    """Получить глобальный экземпляр настроек"""
    return settings


# Функция для перезагрузки настроек
def reload_settings(env_file: Optional[str] = None) -> PayoutSettings:
    """Перезагрузить настройки из файла окружения"""
    global settings
    if env_file:
        settings = PayoutSettings(_env_file=env_file)
    else:
        settings = PayoutSettings()
    return settings


# Функция для создания тестовых настроек
def create_test_settings(**overrides) -> PayoutSettings:
    """Создать настройки для тестирования с переопределениями"""
    test_data = {
        "database_url": "sqlite:///:memory:",
        "log_level": "DEBUG",
        "retry_delay_base": 0.0,
        "retry_max_delay": 0.0,
        **overrides
    }
    return PayoutSettings(**test_data)
