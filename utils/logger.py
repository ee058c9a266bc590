"""
Модуль: Система логирования для RevShare Payout Engine
Описание: Настройка логирования с ротацией файлов и форматированием
Зависимости: logging, pathlib
Автор: RevShare Payout Team
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Any, Dict

from config.settings import settings


class ColoredFormatter(logging.Formatter):
    """Цветной форматтер для консольного вывода"""

    # Цветовые коды ANSI
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m'  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Копия записи, чтобы цвет не попал в файловый хендлер
        record = logging.makeLogRecord(record.__dict__)
        log_color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{log_color}{record.levelname}{self.RESET}"
        return super().format(record)


class PayoutLogger:
    """Централизованная система логирования для RevShare Payout Engine"""

    def __init__(self, name: str = "RevShare", log_file: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, settings.log_level))

        # Предотвращаем дублирование хендлеров
        if self.logger.handlers:
            return

        console_formatter = ColoredFormatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%H:%M:%S'
        )

        # Консольный хендлер
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(getattr(logging, settings.log_level))
        self.logger.addHandler(console_handler)

        log_file = log_file if log_file is not None else settings.log_file
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

            # Файловый хендлер с ротацией
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_path,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(file_formatter)
            file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(file_handler)

    def get_logger(self) -> logging.Logger:
        """Получить настроенный логгер"""
        return self.logger

    def log_checkpoint(self, checkpoint_name: str, status: str, details: Dict[str, Any]):
        """Логирование checkpoint'ов пайплайна"""
        emoji = "✅" if status == "SUCCESS" else "❌" if status == "FAILED" else "⏳"
        self.logger.info(f"{emoji} CHECKPOINT: {checkpoint_name} | Status: {status}")
        for key, value in details.items():
            self.logger.info(f"    📌 {key}: {value}")

    def log_pool_summary(self, period_name: str, chain_pool: str, platform_pool: str, total_pool: str):
        """Логирование итогов расчета пула"""
        self.logger.info(
            f"💰 POOL: {period_name} | Chain: {chain_pool} | Platform: {platform_pool} | Total: {total_pool}"
        )

    def log_error_with_context(self, error: Exception, context: Dict[str, Any]):
        """Логирование ошибок с контекстом"""
        self.logger.error(f"❌ ERROR: {type(error).__name__}: {error}")
        self.logger.error(f"📍 Context: {context}")


def get_logger(name: str) -> logging.Logger:
    """Получить логгер для конкретного модуля"""
    module_logger = PayoutLogger(f"RevShare_{name}")
    return module_logger.get_logger()


def get_payout_logger(name: str) -> PayoutLogger:
    """Получить PayoutLogger со специализированными методами"""
    return PayoutLogger(f"RevShare_{name}")


def setup_logging_for_external_libs():
    """Настройка логирования для внешних библиотек"""
    # Устанавливаем уровень WARNING для шумных библиотек
    noisy_loggers = ['urllib3', 'requests', 'sqlalchemy.engine']

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


# Инициализация при импорте
setup_logging_for_external_libs()
