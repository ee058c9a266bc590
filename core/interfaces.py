"""
Модуль: Абстракции хранилищ и внешних источников
Описание: Интерфейсы, через которые пайплайн читает периоды, активность,
комиссии, выручку и профили и пишет ledger. Реализации: db/store.py
(SQLAlchemy), blockchain/fee_client.py (HTTP), in-memory фейки в тестах.
Автор: RevShare Payout Team
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from core.domain import (
    Period, RevenueSnapshot, UserActivity, FeeBucket, RevenueEvent,
    Profile, PayoutRecord, LedgerBatch, EntitlementEvent, PayoutHistoryEntry
)


class PeriodStore(ABC):
    """Чтение периодов и связанных снимков выручки"""

    @abstractmethod
    def find_by_bounds(self, start: datetime, end: datetime) -> List[Period]:
        """Периоды с точно такими границами"""

    @abstractmethod
    def find_containing(self, moment: datetime) -> List[Period]:
        """Периоды, для которых start <= moment < end"""

    @abstractmethod
    def find_latest_ended(self, moment: datetime) -> Optional[Period]:
        """Последний период с end <= moment"""

    @abstractmethod
    def get_period(self, period_id: int) -> Optional[Period]:
        ...

    @abstractmethod
    def get_snapshot(self, period_id: int) -> Optional[RevenueSnapshot]:
        ...


class ScoreSource(ABC):
    """Счетчики активности пользователей за окно"""

    @abstractmethod
    def fetch_user_activity(self, start: datetime, end: datetime) -> List[UserActivity]:
        """
        Активность всех пользователей в [start, end)

        Raises:
            StoreUnavailableError: хранилище недоступно
        """


class FeeSource(ABC):
    """Внешний сервис индексации on-chain комиссий"""

    @abstractmethod
    def fetch_fee_buckets(self, wallet: str, start: datetime, end: datetime) -> List[FeeBucket]:
        """
        Один запрос к сервису (без retry)

        Raises:
            TransientFeeSourceError: timeout, обрыв, 429/5xx
            PermanentFeeSourceError: прочие 4xx, некорректный ответ
        """


class PlatformRevenueSource(ABC):
    """Внутренние записи выручки платформы"""

    @abstractmethod
    def fetch_revenue_events(self, start: datetime, end: datetime) -> List[RevenueEvent]:
        ...


class ProfileDirectory(ABC):
    """Профили пользователей: кошельки, рефереры, premium"""

    @abstractmethod
    def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        """Найденные профили по user_id (отсутствующие не включаются)"""

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.get_profiles([user_id]).get(user_id)


class Ledger(ABC):
    """Единственная точка записи результатов расчета"""

    @abstractmethod
    def acquire_period_lock(self, period_id: int, now: datetime) -> str:
        """
        Атомарно перевести pending/calculated -> in_progress

        Returns:
            str: статус до блокировки (для отката)

        Raises:
            GuardError: период уже выплачен
            ConcurrencyError: период заблокирован другим запуском
        """

    @abstractmethod
    def release_period_lock(self, period_id: int, previous_status: str) -> None:
        """Вернуть статус, который был до блокировки"""

    @abstractmethod
    def commit_period(self, batch: LedgerBatch) -> List[EntitlementEvent]:
        """Записать все результаты периода одной транзакцией, статус -> calculated"""

    @abstractmethod
    def list_payouts(self, period_id: int) -> List[PayoutRecord]:
        ...

    @abstractmethod
    def get_payout(self, period_id: int, user_id: str) -> Optional[PayoutRecord]:
        ...

    @abstractmethod
    def list_user_payouts(self, user_id: str, limit: int = 10, offset: int = 0) -> List[PayoutHistoryEntry]:
        """История выплат пользователя по всем периодам, новые периоды первыми"""

    @abstractmethod
    def mark_payout_claimable(self, period_id: int, user_id: str) -> PayoutRecord:
        """Отметить запись claimable (сумма не меняется)"""

    @abstractmethod
    def confirm_payout_claim(self, period_id: int, user_id: str,
                             tx_hash: str, claimed_at: datetime) -> PayoutRecord:
        ...

    @abstractmethod
    def settle_referral_balance(self, user_id: str, amount: int) -> int:
        """Списать выплаченную сумму с pending баланса, вернуть остаток"""

    @abstractmethod
    def mark_period_paid(self, period_id: int) -> None:
        """calculated -> paid"""

    @abstractmethod
    def list_events(self, period_id: int, include_superseded: bool = False) -> List[EntitlementEvent]:
        ...


class EntitlementNotifier(ABC):
    """Передача событий начислений в подсистему уведомлений"""

    @abstractmethod
    def notify(self, events: List[EntitlementEvent]) -> None:
        ...
