"""
Модуль: Retry политика для внешнего сервиса индексации комиссий
Описание: Ограниченный экспоненциальный backoff на tenacity, классификация
временных и постоянных ошибок, счетчик retry для мониторинга
Зависимости: tenacity, functools, time
Автор: RevShare Payout Team
"""

import time
from typing import Optional

from tenacity import (
    Retrying, stop_after_attempt, stop_after_delay, wait_exponential,
    retry_if_exception_type
)

from utils.logger import get_logger
from config.settings import PayoutSettings, get_settings

logger = get_logger("Retry")


class FeeSourceError(Exception):
    """Базовый класс ошибок источника комиссий"""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFeeSourceError(FeeSourceError):
    """Временная ошибка: timeout, обрыв соединения, HTTP 429/5xx"""
    pass


class PermanentFeeSourceError(FeeSourceError):
    """Постоянная ошибка: прочие 4xx, некорректный ответ"""
    pass


def extract_error_type(exception: Exception) -> str:
    """Определить тип ошибки по коду ответа или сообщению"""
    status_code = getattr(exception, "status_code", None)
    if status_code == 429:
        return "rate_limit"
    if status_code is not None and status_code >= 500:
        return "server_error"
    if status_code is not None and status_code >= 400:
        return "client_error"

    error_msg = str(exception).lower()
    if "timeout" in error_msg or "timed out" in error_msg:
        return "timeout"
    elif "connection" in error_msg or "network" in error_msg:
        return "connection"
    elif "payload" in error_msg or "json" in error_msg:
        return "malformed_payload"
    else:
        return "unknown"


class RetryCounter:
    """Счетчик retry попыток для мониторинга"""

    def __init__(self):
        self.counters = {}
        self.reset_time = time.time()

    def increment(self, operation: str, error_type: str):
        """Увеличить счетчик для операции и типа ошибки"""
        key = f"{operation}:{error_type}"
        self.counters[key] = self.counters.get(key, 0) + 1

    def get_stats(self) -> dict:
        """Получить статистику retry попыток"""
        total_retries = sum(self.counters.values())
        uptime_hours = (time.time() - self.reset_time) / 3600

        return {
            "total_retries": total_retries,
            "retries_per_hour": total_retries / uptime_hours if uptime_hours > 0 else 0,
            "by_operation": dict(self.counters),
            "uptime_hours": uptime_hours
        }

    def reset(self):
        """Сбросить счетчики"""
        self.counters.clear()
        self.reset_time = time.time()


# Глобальный счетчик retry
retry_counter = RetryCounter()


def _make_before_sleep(operation: str):
    def log_retry_attempt(retry_state):
        """Логирование неудачной попытки перед ожиданием"""
        exception = retry_state.outcome.exception()
        error_type = extract_error_type(exception)
        retry_counter.increment(operation, error_type)
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"⏳ {operation} attempt {retry_state.attempt_number} failed ({error_type}), "
            f"retrying in {delay:.2f}s: {exception}"
        )
    return log_retry_attempt


def build_fee_source_retrying(operation: str = "fee_source",
                              config: Optional[PayoutSettings] = None) -> Retrying:
    """
    Собрать tenacity Retrying для запросов к сервису комиссий

    Args:
        operation: Имя операции для логов и счетчика
        config: Настройки (по умолчанию глобальные)

    Returns:
        Retrying: повторяет только TransientFeeSourceError, после исчерпания
        попыток пробрасывает последнюю ошибку
    """
    config = config or get_settings()
    return Retrying(
        stop=stop_after_attempt(config.retry_attempts) | stop_after_delay(config.retry_max_total_wait),
        wait=wait_exponential(multiplier=config.retry_delay_base, max=config.retry_max_delay),
        retry=retry_if_exception_type(TransientFeeSourceError),
        before_sleep=_make_before_sleep(operation),
        reraise=True,
    )
