"""
Модуль config - Константы и настройки RevShare Payout Engine
"""
