"""
Скрипт: Запуск расчета выплат RevShare Payout Engine
Описание: CLI оператора для RunPayoutOrchestration, диагностического
прогона и отдельных диагностических шагов. Печатает JSON отчет.
Автор: RevShare Payout Team
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional
sys.path.append(str(Path(__file__).parent.parent))

from config.constants import DIAGNOSTIC_STEPS
from config.settings import PayoutSettings, get_settings
from blockchain.fee_client import FeeIndexClient
from core.orchestrator import PayoutOrchestrator, run_payout_orchestration
from db.database import DatabaseManager
from db.store import (
    SqlPeriodStore, SqlScoreSource, SqlPlatformRevenueSource, SqlProfileDirectory, SqlLedger
)
from utils.logger import get_logger

logger = get_logger("RunPayout")


def build_orchestrator(db: DatabaseManager, config: Optional[PayoutSettings] = None,
                       fee_source=None) -> PayoutOrchestrator:
    """Собрать оркестратор поверх SQL хранилищ и HTTP клиента комиссий"""
    config = config or get_settings()
    return PayoutOrchestrator(
        period_store=SqlPeriodStore(db),
        score_source=SqlScoreSource(db),
        fee_source=fee_source or FeeIndexClient(config),
        revenue_source=SqlPlatformRevenueSource(db),
        profile_directory=SqlProfileDirectory(db),
        ledger=SqlLedger(db, config),
        config=config
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the biweekly payout orchestration")
    parser.add_argument("--start", help="Period start (YYYY-MM-DD or ISO timestamp)")
    parser.add_argument("--end", help="Period end (YYYY-MM-DD or ISO timestamp)")
    parser.add_argument("--dry-run", action="store_true", help="Diagnostic run without lock and writes")
    parser.add_argument("--step", choices=DIAGNOSTIC_STEPS, help="Run a single diagnostic step")
    parser.add_argument("--database-url", help="Database URL (default: PAYOUT_DATABASE_URL)")
    args = parser.parse_args(argv)

    config = get_settings()
    db = DatabaseManager(args.database_url or config.database_url)
    db.initialize_sync()
    orchestrator = build_orchestrator(db, config)

    try:
        if args.step:
            step = orchestrator.run_step(args.step, args.start, args.end)
            print(json.dumps(step.to_dict(), indent=2, ensure_ascii=False))
            return 0 if step.success else 1

        report = run_payout_orchestration(orchestrator, args.start, args.end, dry_run=args.dry_run)
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return 0 if report.success else 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
