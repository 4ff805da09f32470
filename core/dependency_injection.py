"""
MODULE: core.dependency_injection
RESPONSIBILITY: Central Dependency Injection Container (Singleton).
ALLOWED: Importing the database manager and the event registry.
FORBIDDEN: Business logic, entity classes.
ERRORS: DatabaseConnectionError (lazy connection on first query).

Контейнер зависимостей

Хранит единый на процесс менеджер БД и реестр событий жизненного цикла.
Модели получают их отсюда, если зависимости не внедрены через Model.bind().
"""

from typing import Optional
from loguru import logger

from core.database import DatabaseManager
from core.events import EventRegistry
from core.exceptions import ConfigurationError
from config.settings import config
from utils.logger_config import configure_logging


class DependencyContainer:
    """
    Контейнер зависимостей для управления жизненным циклом сервисов

    Реализует паттерн Singleton для обеспечения единой точки доступа
    к зависимостям во всем приложении.
    """

    _instance: Optional['DependencyContainer'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self._db_manager: Optional[DatabaseManager] = None
        self._event_registry: Optional[EventRegistry] = None

    def bootstrap(self) -> None:
        """Настройка логирования и проверка конфигурации при старте приложения"""
        configure_logging(config.app)
        if not config.validate():
            raise ConfigurationError("Некорректная конфигурация подключения к БД")
        logger.info(f"Приложение {config.app.app_name} инициализировано")

    def get_database_manager(self) -> DatabaseManager:
        """Получение менеджера базы данных (подключение откроется при первом запросе)"""
        if self._db_manager is None:
            logger.info("Создание DatabaseManager")
            self._db_manager = DatabaseManager(config.database)
        return self._db_manager

    def get_event_registry(self) -> EventRegistry:
        """Получение реестра событий жизненного цикла"""
        if self._event_registry is None:
            logger.info("Создание EventRegistry")
            self._event_registry = EventRegistry()
        return self._event_registry

    def cleanup(self):
        """Очистка ресурсов при завершении работы приложения"""
        logger.info("Очистка зависимостей")

        if self._db_manager:
            self._db_manager.close()
            self._db_manager = None

        if self._event_registry:
            self._event_registry.clear()
            self._event_registry = None


# Глобальный экземпляр контейнера
container = DependencyContainer()
