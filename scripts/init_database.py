"""
Скрипт: Инициализация базы данных RevShare Payout Engine
Описание: Создание таблиц и продление сетки двухнедельных периодов
Автор: RevShare Payout Team
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional
sys.path.append(str(Path(__file__).parent.parent))

from config.settings import settings
from core.exceptions import PayoutEngineError
from db.database import DatabaseManager
from db.store import SqlPeriodStore
from utils.converters import parse_period_bound
from utils.logger import get_logger

logger = get_logger("DatabaseInit")


def init_database(database_url: Optional[str] = None, periods: int = 0,
                  anchor: Optional[str] = None,
                  creator_wallet: Optional[str] = None) -> DatabaseManager:
    """
    Инициализация базы данных

    Args:
        database_url: URL БД (по умолчанию из настроек)
        periods: Сколько периодов добавить в конец сетки
        anchor: Начало первого периода, если сетка пуста (YYYY-MM-DD)
        creator_wallet: Кошелек создателя для новых периодов
    """
    logger.info("🗄️ Инициализация базы данных...")
    db = DatabaseManager(database_url or settings.database_url)
    db.initialize_sync()

    if periods > 0:
        store = SqlPeriodStore(db)
        created = store.extend_schedule(periods, parse_period_bound(anchor) if anchor else None)
        wallet = creator_wallet or settings.creator_wallet_address
        for period in created:
            logger.info(f"📅 {period.name}")
            if wallet:
                store.register_creator_wallet(period.id, wallet)

    logger.info("✅ База данных инициализирована")
    return db


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create schema and extend the biweekly period schedule")
    parser.add_argument("--database-url", help="Database URL (default: PAYOUT_DATABASE_URL)")
    parser.add_argument("--periods", type=int, default=0, help="Number of periods to append")
    parser.add_argument("--anchor", help="Start date of the first period when the schedule is empty")
    parser.add_argument("--creator-wallet", help="Creator wallet to register on the new periods")
    args = parser.parse_args(argv)

    try:
        db = init_database(args.database_url, args.periods, args.anchor, args.creator_wallet)
    except (PayoutEngineError, ValueError) as e:
        logger.error(f"❌ Ошибка инициализации БД: {e}")
        return 1
    db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
