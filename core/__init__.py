"""
Модуль core - Бизнес-логика RevShare Payout Engine
"""

from .exceptions import (
    PayoutEngineError, ValidationError, PeriodNotFound, AmbiguousPeriod, InvalidPool,
    NotFoundError, NoCurrentPeriod, ExternalServiceError, DataIntegrityError,
    LedgerImbalance, ConcurrencyError, GuardError, StoreUnavailableError
)
from .domain import StepResult, PipelineReport

__all__ = [
    'PayoutEngineError',
    'ValidationError',
    'PeriodNotFound',
    'AmbiguousPeriod',
    'InvalidPool',
    'NotFoundError',
    'NoCurrentPeriod',
    'ExternalServiceError',
    'DataIntegrityError',
    'LedgerImbalance',
    'ConcurrencyError',
    'GuardError',
    'StoreUnavailableError',
    'StepResult',
    'PipelineReport'
]
