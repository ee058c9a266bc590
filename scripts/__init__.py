"""
Модуль scripts - CLI оператора RevShare Payout Engine
"""
