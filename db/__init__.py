"""
Модуль db - Работа с базой данных RevShare Payout Engine
"""

from .database import DatabaseManager, get_database_manager, initialize_database
from .store import (
    SqlPeriodStore, SqlScoreSource, SqlPlatformRevenueSource, SqlProfileDirectory, SqlLedger
)

__all__ = [
    'DatabaseManager',
    'get_database_manager',
    'initialize_database',
    'SqlPeriodStore',
    'SqlScoreSource',
    'SqlPlatformRevenueSource',
    'SqlProfileDirectory',
    'SqlLedger'
]
