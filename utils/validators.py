"""
Модуль: Валидаторы данных для RevShare Payout Engine
Описание: Валидация Solana адресов, подписей транзакций, и счетчиков активности
Зависимости: re
Автор: RevShare Payout Team
"""

import re
from typing import Optional

from core.exceptions import ValidationError
from utils.logger import get_logger

logger = get_logger("Validators")

# Base58 алфавит без 0, O, I, l
BASE58_ADDRESS_RE = re.compile(r'^[1-9A-HJ-NP-Za-km-z]{32,44}$')
BASE58_SIGNATURE_RE = re.compile(r'^[1-9A-HJ-NP-Za-km-z]{64,88}$')


class AddressValidator:
    """Валидатор Solana адресов (base58, 32 байта)"""

    @staticmethod
    def is_valid_address(address: Optional[str]) -> bool:
        """Проверить корректность адреса"""
        if not isinstance(address, str):
            return False
        return bool(BASE58_ADDRESS_RE.match(address.strip()))

    @staticmethod
    def normalize_address(address: Optional[str]) -> str:
        """Убрать пробелы и проверить формат"""
        if not AddressValidator.is_valid_address(address):
            raise ValidationError(f"Invalid wallet address format: {address!r}")
        return address.strip()

    @staticmethod
    def has_wallet(address: Optional[str]) -> bool:
        """Есть ли у профиля непустой кошелек для выплат"""
        return bool(address and address.strip())


class TransactionValidator:
    """Валидатор подписей транзакций"""

    @staticmethod
    def is_valid_tx_hash(tx_hash: Optional[str]) -> bool:
        if not isinstance(tx_hash, str):
            return False
        return bool(BASE58_SIGNATURE_RE.match(tx_hash.strip()))

    @staticmethod
    def validate_tx_hash(tx_hash: Optional[str]) -> str:
        if not TransactionValidator.is_valid_tx_hash(tx_hash):
            raise ValidationError(f"Invalid transaction signature: {tx_hash!r}")
        return tx_hash.strip()


class ActivityValidator:
    """Валидация счетчиков активности пользователя"""

    @staticmethod
    def validate_count(name: str, value) -> int:
        """
        Счетчик обязан быть неотрицательным целым

        Raises:
            ValueError: если значение некорректно
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
        return value


# Функции-обертки для удобства импорта
def is_valid_wallet(address: Optional[str]) -> bool:
    """Проверить корректность кошелька"""
    return AddressValidator.is_valid_address(address)


def validate_wallet(address: Optional[str]) -> str:
    """Валидировать и нормализовать кошелек"""
    return AddressValidator.normalize_address(address)


def has_wallet(address: Optional[str]) -> bool:
    return AddressValidator.has_wallet(address)


def validate_transaction_hash(tx_hash: Optional[str]) -> str:
    return TransactionValidator.validate_tx_hash(tx_hash)
