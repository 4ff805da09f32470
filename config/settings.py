"""
MODULE: config.settings
RESPONSIBILITY: Application configuration loading and validation.
ALLOWED: os, dotenv, dataclasses.
FORBIDDEN: Complex business logic, database connections (only config).
ERRORS: ConfigurationError (validation).
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
import os
from dotenv import load_dotenv
from loguru import logger

from config import ENV_FILE_PATH
from core.exceptions import ConfigurationError


@dataclass(frozen=True)
class DatabaseConfig:
    """Конфигурация базы данных"""
    host: str
    database: str
    user: str
    password: str
    port: int

    def get_connection_string(self) -> str:
        """Получить строку подключения для psycopg2"""
        return f"host={self.host} dbname={self.database} user={self.user} password={self.password} port={self.port}"


@dataclass(frozen=True)
class AppConfig:
    """Основная конфигурация приложения"""
    app_name: str
    log_level: str
    log_dir: str
    log_rotation: str
    log_retention: str
    log_channel: str


class Config:
    """
    Главный класс конфигурации, загружающий все настройки из .env файла
    """

    def __init__(self, env_file: Optional[str] = None):
        """
        Инициализация конфигурации

        Args:
            env_file: Путь к .env файлу (опционально)
        """
        self._load_environment(env_file)
        self.database = self._load_database_config()
        self.app = self._load_app_config()

    def _load_environment(self, env_file: Optional[str]) -> None:
        """Загрузка переменных окружения"""
        try:
            if env_file and os.path.exists(env_file):
                load_dotenv(env_file)
            else:
                load_dotenv()
        except Exception as e:
            logger.warning(f"Не удалось загрузить .env файл: {e}")

    def _get_env_var(self, key: str, default: Any = None, required: bool = False) -> Any:
        """
        Получение переменной окружения с валидацией

        Args:
            key: Ключ переменной
            default: Значение по умолчанию
            required: Обязательная ли переменная

        Returns:
            Значение переменной

        Raises:
            ConfigurationError: Если обязательная переменная не найдена
        """
        value = os.getenv(key)

        if value is None:
            if required:
                raise ConfigurationError(f"Обязательная переменная окружения {key} не найдена")
            return default

        return value

    def _get_env_int(self, key: str, default: int = 0) -> int:
        """Получение int переменной из окружения"""
        try:
            return int(self._get_env_var(key, default))
        except (TypeError, ValueError) as e:
            logger.warning(f"Неверный формат int для {key}: {e}, используется значение по умолчанию: {default}")
            return default

    def _load_database_config(self) -> DatabaseConfig:
        """Загрузка конфигурации базы данных"""
        return DatabaseConfig(
            host=self._get_env_var("DB_HOST", "localhost"),
            database=self._get_env_var("DB_DATABASE", "postgres"),
            user=self._get_env_var("DB_USER", "postgres"),
            password=self._get_env_var("DB_PASSWORD", ""),
            port=self._get_env_int("DB_PORT", 5432)
        )

    def _load_app_config(self) -> AppConfig:
        """Загрузка основной конфигурации приложения"""
        return AppConfig(
            app_name=self._get_env_var("APP_NAME", "active-record"),
            log_level=self._get_env_var("LOG_LEVEL", "INFO"),
            log_dir=self._get_env_var("LOG_DIR", "storage/logs"),
            log_rotation=self._get_env_var("LOG_ROTATION", "10 MB"),
            log_retention=self._get_env_var("LOG_RETENTION", "30 days"),
            log_channel=self._get_env_var("LOG_CHANNEL", "stack")
        )

    def validate(self) -> bool:
        """
        Валидация конфигурации

        Returns:
            True если конфигурация валидна
        """
        try:
            if not all([self.database.host, self.database.database, self.database.user]):
                raise ConfigurationError("Не все обязательные параметры БД заполнены")

            if not 0 < self.database.port < 65536:
                raise ConfigurationError(f"Некорректный порт БД: {self.database.port}")

            logger.info("Конфигурация прошла валидацию")
            return True

        except ConfigurationError as e:
            logger.error(f"Ошибка валидации конфигурации: {e}")
            return False

    def to_dict(self) -> Dict[str, Any]:
        """Преобразование конфигурации в словарь (без паролей)"""
        return {
            "database": {
                "host": self.database.host,
                "database": self.database.database,
                "user": self.database.user,
                "port": self.database.port
            },
            "app": {
                "app_name": self.app.app_name,
                "log_level": self.app.log_level,
                "log_channel": self.app.log_channel
            },
        }


# Создание глобального экземпляра конфигурации
config = Config(str(ENV_FILE_PATH))
