"""
Утилиты проекта.
"""
from .logger_config import get_logger, configure_logging, log

__all__ = [
    'get_logger',
    'configure_logging',
    'log',
]
