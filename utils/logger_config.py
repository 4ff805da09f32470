"""
Настройка логирования для проекта.

Каналы:
- app: все сообщения уровня LOG_LEVEL и выше в app.log
- errors: только ошибки в errors.log (с трассировкой)
- console: INFO и выше в stderr
LOG_CHANNEL=stack включает все каналы, иначе только указанный.
"""
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from config.settings import AppConfig
from core.exceptions import ConfigurationError

CHANNELS = ("app", "errors", "console")

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[channel]} | {name}:{function}:{line} | {message}"

logger.configure(extra={"channel": "app"})


def _channel_filter(name: str):
    """Сообщения, привязанные к другому каналу, в этот канал не попадают"""
    return lambda record: record["extra"].get("channel", "app") in (name, "app")


def configure_logging(app_config: AppConfig) -> None:
    """
    Установка обработчиков loguru согласно конфигурации

    Args:
        app_config: Конфигурация приложения (уровень, каталог, ротация, канал)
    """
    logger.remove()

    channels = CHANNELS if app_config.log_channel == "stack" else (app_config.log_channel,)
    log_dir = Path(app_config.log_dir)

    if "app" in channels:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "app.log",
            level=app_config.log_level,
            rotation=app_config.log_rotation,
            retention=app_config.log_retention,
            format=LOG_FORMAT,
        )

    if "errors" in channels:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "errors.log",
            level="ERROR",
            rotation=app_config.log_rotation,
            retention=app_config.log_retention,
            format=LOG_FORMAT,
            filter=_channel_filter("errors"),
            backtrace=True,
            diagnose=True,
        )

    if "console" in channels:
        logger.add(
            sys.stderr,
            level="INFO",
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            filter=_channel_filter("console"),
        )


def get_logger(channel: Optional[str] = None):
    """Возвращает logger, при необходимости привязанный к каналу."""
    if channel is None:
        return logger
    if channel not in CHANNELS:
        raise ConfigurationError(f"Канал {channel} не настроен")
    return logger.bind(channel=channel)


def log(level: str, message: str, channel: Optional[str] = None) -> None:
    """Запись сообщения с указанным уровнем и необязательным каналом."""
    get_logger(channel).log(level.upper(), message)
