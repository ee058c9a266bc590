"""
Модуль blockchain - Внешние on-chain источники RevShare Payout Engine
"""

from .fee_client import FeeIndexClient, APIUsageTracker

__all__ = [
    'FeeIndexClient',
    'APIUsageTracker'
]
