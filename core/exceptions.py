"""
Модуль: Иерархия ошибок RevShare Payout Engine
Описание: Типизированные ошибки пайплайна выплат. Фатальные ошибки прерывают
авторитетный запуск до записи в ledger, в диагностическом режиме попадают в отчет.
Автор: RevShare Payout Team
"""

from typing import Optional


class PayoutEngineError(Exception):
    """Базовый класс ошибок движка выплат"""

    kind = "payout_engine_error"

    def __init__(self, message: str, *, period_id: Optional[int] = None):
        super().__init__(message)
        self.period_id = period_id


class ValidationError(PayoutEngineError):
    """Неизвестный или некорректный период, неверные входные данные"""
    kind = "validation_error"


class PeriodNotFound(ValidationError):
    """Явно заданные границы не совпадают ни с одним периодом"""
    kind = "period_not_found"


class AmbiguousPeriod(ValidationError):
    """Найдено больше одного периода для заданных границ"""
    kind = "ambiguous_period"


class InvalidPool(ValidationError):
    """Отрицательный пул или отрицательные комиссии"""
    kind = "invalid_pool"


class NotFoundError(PayoutEngineError):
    kind = "not_found"


class NoCurrentPeriod(NotFoundError):
    """Ни один период не содержит текущий момент"""
    kind = "no_current_period"


class ExternalServiceError(PayoutEngineError):
    """Сервис индексации комиссий недоступен после всех попыток"""
    kind = "external_service_error"

    def __init__(self, message: str, *, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class DataIntegrityError(PayoutEngineError):
    kind = "data_integrity_error"


class LedgerImbalance(DataIntegrityError):
    """Сумма выплат не совпадает с totalPool (не должно происходить)"""
    kind = "ledger_imbalance"

    def __init__(self, message: str, *, expected: int = 0, actual: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class ConcurrencyError(PayoutEngineError):
    """Период заблокирован другим запуском (status == in_progress)"""
    kind = "concurrency_error"


class GuardError(PayoutEngineError):
    """Попытка пересчета выплаченного периода"""
    kind = "guard_error"


class StoreUnavailableError(PayoutEngineError):
    """Хранилище недоступно - фатально для шага"""
    kind = "store_unavailable"


__all__ = [
    'PayoutEngineError', 'ValidationError', 'PeriodNotFound', 'AmbiguousPeriod',
    'InvalidPool', 'NotFoundError', 'NoCurrentPeriod', 'ExternalServiceError',
    'DataIntegrityError', 'LedgerImbalance', 'ConcurrencyError', 'GuardError',
    'StoreUnavailableError'
]
