# src/common/logger.py
"""
Модуль структурированного логирования.
Поддерживает JSON и цветной текстовый формат, ротацию файлов по размеру.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from src.common.constants import TypeMsg


DEFAULT_LOGGER_NAME = "courier_orders"

# Файловые хендлеры создаются один раз и делятся всеми логгерами процесса
_FILE_HANDLERS: list[logging.Handler] = []

_LOGGING_INITIALIZED: bool = False


# Идентификаторы, которые цветной формат выводит прямо в строке
CONTEXT_KEYS = ("order_id", "payment_id", "subscription_id", "schedule_id", "user_id")


# =============================================================================
# ФОРМАТТЕРЫ И ХЕНДЛЕРЫ
# =============================================================================

class JsonFormatter(logging.Formatter):
    """JSON-строка на запись, для сборщика логов."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data: dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "service": os.getenv("SERVICE_NAME", ""),
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data["extra"] = extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Цветной вывод для разработки:
    время, уровень, место вызова, идентификаторы сущностей и сообщение.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    GRAY = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.GRAY)
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        extra_data = getattr(record, "extra_data", None) or {}

        parts = [f"{timestamp} {color}[{record.levelname}]{self.RESET}"]
        if extra_data.get("caller_function"):
            parts.append(
                f"{self.GRAY}[{extra_data.get('caller_module')}.{extra_data.get('caller_function')}() "
                f"{extra_data.get('caller_file')}:{extra_data.get('caller_line')}]{self.RESET}"
            )
        ids = " ".join(f"{key}={extra_data[key]}" for key in CONTEXT_KEYS if extra_data.get(key))
        if ids:
            parts.append(f"{self.GRAY}{{{ids}}}{self.RESET}")
        parts.append(record.getMessage())

        message = " ".join(parts)
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ArchivingFileHandler(RotatingFileHandler):
    """
    Пишет в <dir>/<name>.log. Когда файл дорастает до max_bytes, он
    переименовывается в <name>_<YYYY-mm-dd_HH-MM-SS>.log, запись
    продолжается в новый файл. Архивы не удаляются.
    """

    def __init__(self, directory: Path, name: str, max_bytes: int) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory
        self.name_prefix = name
        super().__init__(directory / f"{name}.log", maxBytes=max_bytes, backupCount=0, encoding="utf-8")

    def archive_path(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
        return self.directory / f"{self.name_prefix}_{stamp}.log"

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]

        current = Path(self.baseFilename)
        if current.exists():
            try:
                current.rename(self.archive_path())
            except OSError:
                # Файл держит другой процесс, пишем дальше в текущий
                pass

        self.stream = self._open()


# =============================================================================
# НАСТРОЙКА ЛОГГЕРОВ
# =============================================================================

@dataclass
class _LogOptions:
    level: str = "DEBUG"
    fmt: str = "colored"
    to_file: bool = False
    file_path: str = "logs/app.log"
    max_bytes: int = 10485760


def _read_options() -> _LogOptions:
    """Читает параметры логирования из настроек (с дефолтами при ошибке)."""
    options = _LogOptions()
    try:
        from src.config import settings
        section = settings.logging
    except Exception:
        return options

    # В тестах настройки иногда подменяются MagicMock
    if isinstance(section.LOG_LEVEL, str):
        options.level = section.LOG_LEVEL
    if isinstance(section.LOG_FORMAT, str):
        options.fmt = section.LOG_FORMAT
    if isinstance(section.LOG_TO_FILE, bool):
        options.to_file = section.LOG_TO_FILE
    if isinstance(section.LOG_FILE_PATH, str):
        options.file_path = section.LOG_FILE_PATH
    if isinstance(section.LOG_MAX_BYTES, int):
        options.max_bytes = section.LOG_MAX_BYTES
    return options


def _make_formatter(fmt: str) -> logging.Formatter:
    return JsonFormatter() if fmt == "json" else ColoredFormatter()


def _file_handlers(options: _LogOptions) -> list[logging.Handler]:
    """
    Общий файл и отдельный error.log. Если задан SERVICE_NAME,
    общий файл получает суффикс компонента (app_scheduler.log).
    """
    if _FILE_HANDLERS:
        return _FILE_HANDLERS

    log_path = Path(options.file_path)
    service_name = os.getenv("SERVICE_NAME")
    main_name = f"{log_path.stem}_{service_name}" if service_name else log_path.stem

    main_handler = ArchivingFileHandler(log_path.parent, main_name, options.max_bytes)
    error_handler = ArchivingFileHandler(log_path.parent, "error", options.max_bytes)
    error_handler.setLevel(logging.ERROR)

    for handler in (main_handler, error_handler):
        handler.setFormatter(_make_formatter(options.fmt))
        _FILE_HANDLERS.append(handler)
    return _FILE_HANDLERS


# Уровни болтливых библиотек
_LIBRARY_LEVELS = {
    "aiogram": logging.INFO,
    "asyncpg": logging.WARNING,
    "redis": logging.WARNING,
    "aio_pika": logging.WARNING,
    "aiormq": logging.WARNING,
    "httpx": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


_loggers: dict[str, logging.Logger] = {}


def setup_logging() -> None:
    """
    Инициализирует систему логирования.
    Идемпотентна: повторные вызовы ничего не делают.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED:
        return
    _LOGGING_INITIALIZED = True

    get_logger(DEFAULT_LOGGER_NAME)

    for library, level in _LIBRARY_LEVELS.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Возвращает настроенный логгер (с кэшированием).

    Args:
        name: Имя логгера

    Returns:
        Настроенный логгер
    """
    if name in _loggers:
        return _loggers[name]

    options = _read_options()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, options.level.upper(), logging.DEBUG))

    if logger.handlers:
        _loggers[name] = logger
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_make_formatter(options.fmt))
    logger.addHandler(console_handler)

    if options.to_file:
        for handler in _file_handlers(options):
            logger.addHandler(handler)

    logger.propagate = False

    _loggers[name] = logger
    return logger


# =============================================================================
# АСИНХРОННЫЕ ФУНКЦИИ ЛОГИРОВАНИЯ
# =============================================================================

def _get_caller_info() -> dict[str, Any]:
    """
    Возвращает сведения о коде, вызвавшем функцию логирования.
    Фреймы этого модуля (log_debug -> log_info) пропускаются.
    """
    frame = inspect.currentframe()
    try:
        caller_frame = frame.f_back if frame else None
        while caller_frame is not None and caller_frame.f_globals.get("__name__") == __name__:
            caller_frame = caller_frame.f_back
        if caller_frame is None:
            return {}

        frame_info = inspect.getframeinfo(caller_frame)
        caller_module = inspect.getmodule(caller_frame)

        return {
            "caller_function": caller_frame.f_code.co_name,
            "caller_module": caller_module.__name__ if caller_module else "unknown",
            "caller_file": frame_info.filename.split("/")[-1] if frame_info.filename else "unknown",
            "caller_line": frame_info.lineno,
        }
    except Exception:
        return {}
    finally:
        # Разрываем ссылки на фреймы
        del frame


def _build_extra(caller_info: dict[str, Any], extra: dict[str, Any] | None) -> dict[str, Any]:
    return {"extra_data": {**caller_info, **(extra or {})}}


async def log_info(
    message: str,
    *,
    type_msg: TypeMsg = TypeMsg.INFO,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Асинхронная функция логирования.

    Args:
        message: Сообщение для логирования
        type_msg: Уровень сообщения
        logger_name: Имя логгера
        extra: Дополнительные данные (ID заказов, платежей и т.п.)
    """
    logger = get_logger(logger_name)
    emit = getattr(logger, TypeMsg(type_msg).value, logger.info)
    emit(message, extra=_build_extra(_get_caller_info(), extra))


async def log_debug(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование DEBUG уровня."""
    await log_info(message, type_msg=TypeMsg.DEBUG, logger_name=logger_name, extra=extra)


async def log_warning(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование WARNING уровня."""
    await log_info(message, type_msg=TypeMsg.WARNING, logger_name=logger_name, extra=extra)


async def log_error(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> None:
    """
    Логирование ERROR уровня.

    Args:
        message: Сообщение об ошибке
        logger_name: Имя логгера
        extra: Дополнительные данные
        exc_info: Включать ли трейсбек исключения
    """
    logger = get_logger(logger_name)
    logger.error(message, extra=_build_extra(_get_caller_info(), extra), exc_info=exc_info)
