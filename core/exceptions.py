"""
MODULE: core.exceptions
RESPONSIBILITY: Define core-specific exception classes.
ALLOWED: Inheriting from ActiveRecordError.
FORBIDDEN: Business logic.
ERRORS: None.

Исключения слоя доступа к данным

Ошибки построителя и валидации возникают до выполнения SQL,
ошибки драйвера пробрасываются вызывающему коду как DataAccessError.
"""

from typing import Optional


class ActiveRecordError(Exception):
    """Базовое исключение слоя доступа к данным"""
    pass


class ConfigurationError(ActiveRecordError):
    """Ошибка конфигурации (таблица, идентификаторы, переменные окружения)"""
    pass


class ValidationError(ActiveRecordError):
    """Некорректные входные данные для построителя или модели"""
    pass


class PreconditionError(ActiveRecordError):
    """Операция вызвана в недопустимом состоянии построителя"""
    pass


class DataAccessError(ActiveRecordError):
    """Ошибка при работе с базой данных"""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class DatabaseConnectionError(DataAccessError):
    """Ошибка подключения к базе данных"""
    pass


class DatabaseQueryError(DataAccessError):
    """Ошибка выполнения запроса к базе данных"""
    pass


class ConstraintViolationError(DatabaseQueryError):
    """Нарушение ограничения целостности (UNIQUE, NOT NULL, FK)"""
    pass


class QuerySyntaxError(DatabaseQueryError):
    """Синтаксическая ошибка SQL или обращение к несуществующему объекту"""
    pass
