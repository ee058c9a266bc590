"""
Тесты сбора комиссий: HTTP клиент, retry политика, агрегация выручки и пулы
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from blockchain.fee_client import FeeIndexClient
from config.settings import create_test_settings
from core.domain import RevenueEvent
from core.exceptions import ExternalServiceError, ValidationError, InvalidPool
from core.fee_collectors import ChainFeeCollector, PlatformFeeAggregator
from core.pool_calculator import calculate_pools
from utils.retry import TransientFeeSourceError, PermanentFeeSourceError, retry_counter
from conftest import (
    FakeFeeSource, FakeRevenueSource, bucket, sol, UTC, PERIOD_START, PERIOD_END, CREATOR_WALLET
)


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def make_client(config, *outcomes):
    session = MagicMock()
    session.get.side_effect = list(outcomes)
    return FeeIndexClient(config, session=session), session


# ----------------------------------------------------------------------
# FeeIndexClient
# ----------------------------------------------------------------------

def test_client_filters_buckets_to_window(config):
    payload = [
        {"bucket": "2024-12-31T00:00:00Z", "creatorFee": "100", "numTrades": 1},
        {"bucket": "2025-01-01T00:00:00Z", "creatorFee": "250", "numTrades": 4},
        {"bucket": int(datetime(2025, 1, 14, tzinfo=UTC).timestamp()), "creatorFeeSOL": "0.5"},
        {"bucket": "2025-01-15T00:00:00Z", "creatorFee": "999"},
    ]
    client, session = make_client(config, make_response(payload=payload))

    buckets = client.fetch_fee_buckets(CREATOR_WALLET, PERIOD_START, PERIOD_END)

    assert [b.fee for b in buckets] == [250, sol("0.5")]
    assert buckets[0].num_trades == 4
    args, kwargs = session.get.call_args
    assert args[0].endswith(f"/creators/{CREATOR_WALLET}/fees")
    assert kwargs["timeout"] == config.request_timeout
    assert kwargs["params"]["interval"] == config.fee_api_interval
    assert client.api_usage.get_usage_stats()["requests_count"] == 1


def test_client_accepts_wrapped_payload():
    buckets = FeeIndexClient.parse_buckets({"data": [{"bucket": "2025-01-02", "creatorFee": 7}]})
    assert buckets[0].fee == 7
    assert buckets[0].timestamp == datetime(2025, 1, 2, tzinfo=UTC)


@pytest.mark.parametrize("outcome,error", [
    (requests.Timeout("slow"), TransientFeeSourceError),
    (requests.ConnectionError("reset"), TransientFeeSourceError),
    (requests.RequestException("weird"), PermanentFeeSourceError),
    (make_response(429, reason="Too Many Requests"), TransientFeeSourceError),
    (make_response(503, reason="Service Unavailable"), TransientFeeSourceError),
    (make_response(404, reason="Not Found"), PermanentFeeSourceError),
    (make_response(200, payload=ValueError("bad json")), PermanentFeeSourceError),
    (make_response(200, payload={"unexpected": True}), PermanentFeeSourceError),
    (make_response(200, payload=[{"bucket": "2025-01-02"}]), PermanentFeeSourceError),
])
def test_client_error_classification(config, outcome, error):
    client, _ = make_client(config, outcome)
    with pytest.raises(error):
        client.fetch_fee_buckets(CREATOR_WALLET, PERIOD_START, PERIOD_END)


LATE_NOW = datetime(2025, 3, 1, tzinfo=UTC)


def daily_payload(first_day: datetime, days: int) -> list:
    return [{"bucket": (first_day + timedelta(days=i)).isoformat(), "creatorFee": "10"} for i in range(days)]


def test_client_limit_grows_with_window_age(config):
    """Окно началось 59 дней назад: лимит бакетов покрывает все окно"""
    session = MagicMock()
    session.get.return_value = make_response(payload=daily_payload(PERIOD_START, 59))
    client = FeeIndexClient(config, session=session, clock=lambda: LATE_NOW)

    buckets = client.fetch_fee_buckets(CREATOR_WALLET, PERIOD_START, PERIOD_END)

    assert session.get.call_args[1]["params"]["limit"] == 60
    assert len(buckets) == 14
    assert sum(b.fee for b in buckets) == 140
    assert client.buckets_needed(LATE_NOW) == config.fee_api_bucket_limit


def test_client_rejects_truncated_history(config):
    """Сервис вернул полный лимит, но самый старый бакет позже начала окна"""
    session = MagicMock()
    session.get.return_value = make_response(payload=daily_payload(datetime(2025, 1, 2, tzinfo=UTC), 60))
    client = FeeIndexClient(config, session=session, clock=lambda: LATE_NOW)

    with pytest.raises(PermanentFeeSourceError):
        client.fetch_fee_buckets(CREATOR_WALLET, PERIOD_START, PERIOD_END)


def test_truncated_history_is_not_zero_fees(config, period):
    session = MagicMock()
    session.get.return_value = make_response(payload=daily_payload(datetime(2025, 1, 20, tzinfo=UTC), 60))
    client = FeeIndexClient(config, session=session, clock=lambda: LATE_NOW)

    with pytest.raises(ExternalServiceError) as excinfo:
        ChainFeeCollector(client, config).collect(period)
    assert excinfo.value.attempts == 1


# ----------------------------------------------------------------------
# ChainFeeCollector
# ----------------------------------------------------------------------

def test_collector_sums_buckets(config, period):
    source = FakeFeeSource([bucket(1, sol("1")), bucket(14, sol("1.5")), bucket(15, sol("100"))])
    result = ChainFeeCollector(source, config).collect(period)
    assert result.total_fees == sol("2.5")
    assert result.bucket_count == 2
    assert result.attempts == 1
    assert result.wallet == CREATOR_WALLET


def test_collector_retries_transient_errors(config, period):
    retry_counter.reset()
    source = FakeFeeSource(TransientFeeSourceError("timed out"), [bucket(2, 500)])
    result = ChainFeeCollector(source, config).collect(period)
    assert result.total_fees == 500
    assert result.attempts == 2
    assert retry_counter.get_stats()["total_retries"] == 1


def test_collector_exhausts_retries(config, period):
    source = FakeFeeSource(TransientFeeSourceError("503", status_code=503))
    with pytest.raises(ExternalServiceError) as excinfo:
        ChainFeeCollector(source, config).collect(period)
    assert excinfo.value.attempts == config.retry_attempts
    assert source.calls == config.retry_attempts


def test_collector_does_not_retry_permanent_errors(config, period):
    source = FakeFeeSource(PermanentFeeSourceError("404", status_code=404))
    with pytest.raises(ExternalServiceError) as excinfo:
        ChainFeeCollector(source, config).collect(period)
    assert excinfo.value.attempts == 1
    assert source.calls == 1


def test_collector_zero_fallback_is_explicit(period):
    config = create_test_settings(creator_wallet_address=CREATOR_WALLET, chain_fee_zero_fallback=True)
    source = FakeFeeSource(TransientFeeSourceError("timed out"))
    result = ChainFeeCollector(source, config).collect(period)
    assert result.total_fees == 0
    assert result.fallback_used
    assert result.warnings


def test_collector_requires_valid_wallet(period):
    config = create_test_settings()
    with pytest.raises(ValidationError):
        ChainFeeCollector(FakeFeeSource([]), config).collect(period)
    with pytest.raises(ValidationError):
        ChainFeeCollector(FakeFeeSource([]), config).collect(period, wallet="not-a-wallet")


def test_collector_uses_snapshot_wallet(config, period):
    other = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
    result = ChainFeeCollector(FakeFeeSource([]), config).collect(period, wallet=other)
    assert result.wallet == other
    assert result.total_fees == 0


# ----------------------------------------------------------------------
# PlatformFeeAggregator
# ----------------------------------------------------------------------

def test_platform_fees_breakdown(period):
    source = FakeRevenueSource([
        RevenueEvent("pro_subscription", sol("10"), datetime(2025, 1, 2, tzinfo=UTC), "s1"),
        RevenueEvent("featured_token", sol("3"), datetime(2025, 1, 3, tzinfo=UTC), "f1"),
        RevenueEvent("pro_subscription", sol("5"), datetime(2025, 1, 14, 23, 59, tzinfo=UTC), "s2"),
        RevenueEvent("promotion", sol("7"), PERIOD_END, "p1"),
    ])
    result = PlatformFeeAggregator(source).aggregate(period)
    assert result.total == sol("18")
    assert result.breakdown == {"featured_token": sol("3"), "pro_subscription": sol("15")}
    assert result.event_counts == {"featured_token": 1, "pro_subscription": 2}


def test_platform_fees_empty(period):
    result = PlatformFeeAggregator(FakeRevenueSource()).aggregate(period)
    assert result.total == 0
    assert result.breakdown == {}


# ----------------------------------------------------------------------
# Pool Calculator
# ----------------------------------------------------------------------

def test_pools_from_fees(config):
    pools = calculate_pools(sol("2.5"), sol("8"), config=config)
    assert pools.chain_pool == sol("1")
    assert pools.platform_pool == sol("4")
    assert pools.total_pool == sol("5")


def test_pools_truncate_toward_zero(config):
    pools = calculate_pools(7, 3, config=config)
    assert pools.chain_pool == 2
    assert pools.platform_pool == 1
    assert pools.total_pool == 3


def test_pools_explicit_ratios(config):
    pools = calculate_pools(100, 100, Decimal("1"), Decimal("0.1"), config=config)
    assert (pools.chain_pool, pools.platform_pool) == (100, 10)


@pytest.mark.parametrize("args", [
    (-1, 0),
    (0, -1),
    (1.5, 0),
    (100, 100, Decimal("0"), None),
    (100, 100, None, Decimal("1.01")),
])
def test_invalid_pools_rejected(config, args):
    with pytest.raises(InvalidPool):
        calculate_pools(*args, config=config)
