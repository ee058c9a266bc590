"""
Модуль: HTTP клиент сервиса индексации комиссий создателя
Описание: Запрос дневных бакетов комиссий (pump.fun creator fees API),
классификация ошибок на временные и постоянные, учет использования API.
Один вызов = одна попытка, retry выполняет ChainFeeCollector.
Зависимости: requests
Автор: RevShare Payout Team
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from config.settings import PayoutSettings, get_settings
from core.domain import FeeBucket
from core.interfaces import FeeSource
from core.period_resolver import Clock, utc_now
from utils.converters import to_subunits, parse_period_bound, interval_to_timedelta
from utils.logger import get_logger
from utils.retry import TransientFeeSourceError, PermanentFeeSourceError

logger = get_logger("FeeIndexClient")

USER_AGENT = "RevShare-Payout-Engine/1.0"


class APIUsageTracker:
    """Трекер использования API сервиса комиссий"""

    def __init__(self):
        self.requests_count = 0
        self.errors_count = 0
        self.status_codes: Dict[int, int] = {}
        self.start_time = time.time()
        self.last_request_time = 0.0
        self.total_latency = 0.0

    def record_request(self, status_code: Optional[int], latency: float):
        """Записать запрос (status_code=None для сетевых ошибок)"""
        self.requests_count += 1
        self.last_request_time = time.time()
        self.total_latency += latency
        if status_code is None or status_code >= 400:
            self.errors_count += 1
        if status_code is not None:
            self.status_codes[status_code] = self.status_codes.get(status_code, 0) + 1
        logger.debug(
            f"📊 API Usage: status={status_code} latency={latency:.2f}s | "
            f"Total: {self.requests_count} | Errors: {self.errors_count}"
        )

    def get_usage_stats(self) -> Dict[str, Any]:
        """Получить статистику использования"""
        uptime = time.time() - self.start_time
        return {
            "requests_count": self.requests_count,
            "errors_count": self.errors_count,
            "status_codes": dict(self.status_codes),
            "avg_latency": self.total_latency / max(1, self.requests_count),
            "uptime_hours": uptime / 3600,
        }


class FeeIndexClient(FeeSource):
    """Клиент REST API индексации комиссий создателя"""

    def __init__(self, config: Optional[PayoutSettings] = None,
                 session: Optional[requests.Session] = None,
                 clock: Optional[Clock] = None):
        self.config = config or get_settings()
        self.clock = clock or utc_now
        self.base_url = self.config.fee_api_url
        self.interval = self.config.fee_api_interval
        self.interval_length = interval_to_timedelta(self.interval)
        self.bucket_limit = self.config.fee_api_bucket_limit
        self.timeout = self.config.request_timeout
        self.api_usage = APIUsageTracker()

        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        })

    def fetch_fee_buckets(self, wallet: str, start: datetime, end: datetime) -> List[FeeBucket]:
        """
        Получить бакеты комиссий кошелька, попадающие в [start, end)

        Args:
            wallet: Кошелек создателя
            start: Начало окна (aware UTC)
            end: Конец окна (aware UTC, не включается)

        Returns:
            List[FeeBucket]: бакеты в окне
        """
        url = f"{self.base_url}/creators/{wallet}/fees"
        limit = self.buckets_needed(start)
        params = {"interval": self.interval, "limit": limit}
        started = time.time()

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            self.api_usage.record_request(None, time.time() - started)
            raise TransientFeeSourceError(f"Fee index request timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            self.api_usage.record_request(None, time.time() - started)
            raise TransientFeeSourceError(f"Fee index connection error: {e}") from e
        except requests.RequestException as e:
            self.api_usage.record_request(None, time.time() - started)
            raise PermanentFeeSourceError(f"Fee index request failed: {e}") from e

        self.api_usage.record_request(response.status_code, time.time() - started)

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientFeeSourceError(
                f"Fee index API error: {status} {response.reason}", status_code=status
            )
        if status >= 400:
            raise PermanentFeeSourceError(
                f"Fee index API error: {status} {response.reason}", status_code=status
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise PermanentFeeSourceError("Fee index returned malformed JSON payload") from e

        buckets = self.parse_buckets(payload)
        if len(buckets) >= limit and min(b.timestamp for b in buckets) > start:
            raise PermanentFeeSourceError(
                f"Fee index history truncated: {len(buckets)} buckets returned, "
                f"oldest is later than window start {start.isoformat()}"
            )
        in_window = [b for b in buckets if start <= b.timestamp < end]
        logger.debug(
            f"📥 Fee index: {len(buckets)} buckets received, {len(in_window)} in window for {wallet}"
        )
        return in_window

    def buckets_needed(self, start: datetime) -> int:
        """
        Сколько последних бакетов запросить, чтобы ответ дошел до start

        Сервис отдает бакеты от новых к старым, поэтому для старых периодов
        лимит растет с возрастом окна. Не меньше fee_api_bucket_limit.
        """
        age = self.clock() - start
        needed = math.ceil(age / self.interval_length) + 1 if age.total_seconds() > 0 else 1
        return max(self.bucket_limit, needed)

    @staticmethod
    def parse_buckets(payload: Any) -> List[FeeBucket]:
        """
        Разобрать ответ сервиса

        Бакет: {"bucket": ISO дата или unix секунды, "creatorFee": lamports,
        "creatorFeeSOL": строка SOL, "numTrades": int, ...}
        """
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("fees"))
        if not isinstance(payload, list):
            raise PermanentFeeSourceError("Fee index payload is not a list of buckets")

        buckets = []
        for item in payload:
            if not isinstance(item, dict) or "bucket" not in item:
                raise PermanentFeeSourceError(f"Malformed fee bucket: {item!r}")
            try:
                timestamp = FeeIndexClient._parse_timestamp(item["bucket"])
                fee = FeeIndexClient._parse_fee(item)
                num_trades = int(item.get("numTrades") or 0)
            except (TypeError, ValueError) as e:
                raise PermanentFeeSourceError(f"Malformed fee bucket {item!r}: {e}") from e
            if fee < 0:
                raise PermanentFeeSourceError(f"Negative fee in bucket {item!r}")
            buckets.append(FeeBucket(timestamp=timestamp, fee=fee, num_trades=num_trades))
        return buckets

    @staticmethod
    def _parse_timestamp(value: Any) -> datetime:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str) and value.isdigit():
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        return parse_period_bound(value)

    @staticmethod
    def _parse_fee(item: Dict[str, Any]) -> int:
        """Комиссия в lamports: creatorFee, иначе creatorFeeSOL"""
        raw = item.get("creatorFee")
        if raw is not None and str(raw).strip().isdigit():
            return int(str(raw).strip())
        raw_sol = item.get("creatorFeeSOL")
        if raw_sol is None:
            raise ValueError("bucket has neither creatorFee nor creatorFeeSOL")
        return to_subunits(str(raw_sol))

    def close(self):
        self.session.close()
