"""
Тесты CLI скриптов: инициализация БД и запуск расчета
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import json

from config.constants import PeriodStatus
from core.orchestrator import run_payout_orchestration
from db.store import SqlPeriodStore
from scripts.init_database import init_database, main as init_main
from scripts.run_payout import build_orchestrator, main as run_main
from conftest import FakeFeeSource, CREATOR_WALLET


def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


def read_json(output: str) -> dict:
    """JSON отчет из stdout (консольный лог тоже пишет в stdout)"""
    lines = output.splitlines()
    start = lines.index("{")
    end = lines.index("}", start)
    return json.loads("\n".join(lines[start:end + 1]))


def test_init_database_extends_schedule(tmp_path):
    db = init_database(db_url(tmp_path), periods=3, anchor="2025-01-01", creator_wallet=CREATOR_WALLET)
    store = SqlPeriodStore(db)
    periods = store.list_periods()
    assert len(periods) == 3
    assert all(p.status == PeriodStatus.PENDING for p in periods)
    assert store.get_snapshot(periods[-1].id).creator_wallet_address == CREATOR_WALLET

    store.extend_schedule(1)
    assert store.list_periods()[-1].name.startswith("Period 4: 2025-02-12")
    db.close()


def test_init_main_requires_anchor_for_empty_schedule(tmp_path):
    assert init_main(["--database-url", db_url(tmp_path), "--periods", "1"]) == 1
    assert init_main(["--database-url", db_url(tmp_path), "--periods", "1", "--anchor", "2025-01-01"]) == 0


def test_run_step_prints_json(tmp_path, capsys):
    init_database(db_url(tmp_path), periods=1, anchor="2025-01-01", creator_wallet=CREATOR_WALLET).close()
    capsys.readouterr()

    code = run_main(["--database-url", db_url(tmp_path), "--step", "validate_period",
                     "--start", "2025-01-01", "--end", "2025-01-15"])

    output = read_json(capsys.readouterr().out)
    assert code == 0
    assert output["name"] == "validate_period"
    assert output["data"]["period"]["name"] == "Period 1: 2025-01-01 - 2025-01-14"
    assert output["data"]["creator_wallet_address"] == CREATOR_WALLET


def test_run_reports_failure_exit_code(tmp_path, capsys):
    init_database(db_url(tmp_path), periods=1, anchor="2025-01-01").close()
    capsys.readouterr()

    code = run_main(["--database-url", db_url(tmp_path), "--dry-run",
                     "--start", "2024-01-01", "--end", "2024-01-15"])

    output = read_json(capsys.readouterr().out)
    assert code == 1
    assert output["mode"] == "diagnostic"
    assert output["errors"]


def test_build_orchestrator_with_injected_fee_source(tmp_path, config):
    db = init_database(db_url(tmp_path), periods=1, anchor="2025-01-01", creator_wallet=CREATOR_WALLET)
    orchestrator = build_orchestrator(db, config, fee_source=FakeFeeSource([]))

    report = run_payout_orchestration(orchestrator, "2025-01-01", "2025-01-15")

    assert report.success, report.errors
    assert report.committed
    assert SqlPeriodStore(db).get_period(1).status == PeriodStatus.CALCULATED
    db.close()
