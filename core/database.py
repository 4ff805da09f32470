"""
MODULE: core.database
RESPONSIBILITY: Low-level PostgreSQL connection management (Singleton).
ALLOWED: psycopg2, loguru, transaction control.
FORBIDDEN: Business logic, SQL assembly for entities (use core.query_builder / core.model).
ERRORS: DatabaseConnectionError, DatabaseQueryError, ConstraintViolationError, QuerySyntaxError.

Менеджер базы данных

Модуль предоставляет DatabaseManager: единое ленивое подключение к PostgreSQL
на процесс, выполнение параметризованных запросов, транзакции и
классификацию ошибок драйвера.
"""

from contextlib import contextmanager
from typing import List, Dict, Any, Optional, Iterator, Sequence, Type

import psycopg2
from psycopg2.extras import RealDictCursor
from loguru import logger

from config.settings import DatabaseConfig
from core.exceptions import (
    DataAccessError,
    DatabaseConnectionError,
    DatabaseQueryError,
    ConstraintViolationError,
    QuerySyntaxError,
)


class DatabaseManager:
    """
    Менеджер для работы с PostgreSQL базой данных

    Реализует паттерн Singleton для единого подключения к базе данных
    во всем приложении. Подключение создается лениво при первом обращении.
    Вне явной транзакции каждый запрос фиксируется сразу после выполнения.

    Attributes:
        db_config: Конфигурация подключения к БД
        driver: DB-API модуль драйвера (используется для классификации ошибок)
    """

    _instance: Optional['DatabaseManager'] = None
    driver = psycopg2

    def __new__(cls, db_config: Optional[DatabaseConfig] = None):
        """
        Создание единственного экземпляра (Singleton)

        Args:
            db_config: Конфигурация подключения к БД (учитывается только при первом создании)
        """
        if cls.__dict__.get('_instance') is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, db_config: Optional[DatabaseConfig] = None):
        if not hasattr(self, '_initialized'):
            self.db_config = db_config
            self._connection = None
            self._in_transaction = False
            self._initialized = True

    @property
    def connection(self):
        """Активное подключение; устанавливается при первом обращении"""
        if not self.is_connected():
            self.connect()
        return self._connection

    def connect(self) -> None:
        """
        Установка соединения с базой данных

        Raises:
            DatabaseConnectionError: При ошибке подключения
        """
        if self.is_connected():
            logger.debug("Подключение к БД уже установлено")
            return

        try:
            self._connection = self._open_connection()
            self._in_transaction = False
            logger.info(f"Успешное подключение к БД: {self._database_name()}")
        except DataAccessError:
            raise
        except self.driver.Error as e:
            error_msg = f"Ошибка подключения к БД {self._database_name()}: {e}"
            logger.error(error_msg)
            raise DatabaseConnectionError(error_msg, original_error=e) from e

    def _open_connection(self):
        """Открытие нового подключения через psycopg2"""
        if self.db_config is None:
            raise DatabaseConnectionError("Конфигурация БД не задана")

        connection = psycopg2.connect(
            host=self.db_config.host,
            database=self.db_config.database,
            user=self.db_config.user,
            password=self.db_config.password,
            port=self.db_config.port,
            cursor_factory=RealDictCursor
        )
        connection.autocommit = False
        return connection

    def _database_name(self) -> str:
        return self.db_config.database if self.db_config else "<не задана>"

    def is_connected(self) -> bool:
        """Проверка наличия активного подключения"""
        return self._connection is not None and not self._connection.closed

    def check_connection(self) -> bool:
        """
        Проверка активности соединения

        Returns:
            True если соединение активно и отвечает на запрос
        """
        if not self.is_connected():
            return False
        try:
            self.execute_query("SELECT 1")
            return True
        except DataAccessError:
            return False

    def close(self) -> None:
        """Закрытие соединения с БД"""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.info("Соединение с БД закрыто")
        except self.driver.Error as e:
            logger.warning(f"Ошибка при закрытии соединения с БД: {e}")
        finally:
            self._connection = None
            self._in_transaction = False

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        cursor = self.connection.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def _prepare(self, query: str) -> str:
        """Приведение SQL к диалекту драйвера"""
        return query

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Выполнение SQL запроса

        Args:
            query: SQL запрос
            params: Параметры для запроса

        Returns:
            Список словарей с результатами (пустой для запросов без выборки)

        Raises:
            DataAccessError: При ошибке выполнения запроса
        """
        try:
            with self._cursor() as cursor:
                logger.debug(f"SQL: {query}")
                cursor.execute(self._prepare(query), tuple(params or ()))
                rows = [dict(row) for row in cursor.fetchall()] if cursor.description is not None else []
            self._finish()
            logger.debug(f"Выполнен запрос, возвращено {len(rows)} строк")
            return rows
        except self.driver.Error as e:
            raise self._fail(e, query) from e

    def execute_update(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Выполнение INSERT/UPDATE/DELETE запроса

        Returns:
            Количество затронутых строк
        """
        try:
            with self._cursor() as cursor:
                logger.debug(f"SQL: {query}")
                cursor.execute(self._prepare(query), tuple(params or ()))
                affected_rows = cursor.rowcount
            self._finish()
            logger.debug(f"Выполнен DML запрос, затронуто строк: {affected_rows}")
            return affected_rows
        except self.driver.Error as e:
            raise self._fail(e, query) from e

    def execute_insert(self, query: str, params: Optional[Sequence[Any]] = None, key: str = "id") -> Any:
        """
        Выполнение INSERT с возвратом сгенерированного ключа

        Args:
            query: INSERT запрос без RETURNING
            params: Параметры запроса
            key: Имя столбца первичного ключа

        Returns:
            Значение сгенерированного ключа
        """
        returning_query = f'{query} RETURNING "{key}"'
        try:
            with self._cursor() as cursor:
                logger.debug(f"SQL: {returning_query}")
                cursor.execute(self._prepare(returning_query), tuple(params or ()))
                row = cursor.fetchone()
            self._finish()
        except self.driver.Error as e:
            raise self._fail(e, returning_query) from e
        return dict(row)[key] if row else None

    def execute_single_value(self, query: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Выполнение запроса, возвращающего одно значение

        Returns:
            Единичное значение из первой строки первого столбца
        """
        results = self.execute_query(query, params)
        if results:
            first_row = results[0]
            if first_row:
                return list(first_row.values())[0]
        return None

    def in_transaction(self) -> bool:
        """Открыта ли явная транзакция"""
        return self._in_transaction

    def begin(self) -> None:
        """
        Начало явной транзакции

        Запросы до commit()/rollback() не фиксируются автоматически.
        Повторный вызов внутри открытой транзакции присоединяется к ней.
        """
        if self._in_transaction:
            logger.debug("Транзакция уже открыта, присоединяемся к ней")
            return
        self.connect()
        self._in_transaction = True
        logger.debug("BEGIN")

    def commit(self) -> None:
        """Фиксация текущей транзакции"""
        try:
            if self.is_connected():
                self._connection.commit()
                logger.debug("COMMIT")
        except self.driver.Error as e:
            raise self._fail(e, "COMMIT") from e
        finally:
            self._in_transaction = False

    def rollback(self) -> None:
        """Откат текущей транзакции"""
        try:
            if self.is_connected():
                self._connection.rollback()
                logger.debug("ROLLBACK")
        except self.driver.Error as e:
            raise self._fail(e, "ROLLBACK") from e
        finally:
            self._in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator['DatabaseManager']:
        """
        Контекстный менеджер транзакции.
        Фиксирует изменения при успехе, откатывает и пробрасывает исключение при ошибке.
        Вложенный вызов присоединяется к внешней транзакции.

        :yields: Менеджер базы данных
        """
        if self._in_transaction:
            yield self
            return

        self.begin()
        try:
            yield self
        except Exception:
            self.rollback()
            raise
        else:
            self.commit()

    def _finish(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _fail(self, error: Exception, query: str) -> DataAccessError:
        """Откат после ошибки драйвера и построение исключения слоя доступа к данным"""
        try:
            if self.is_connected():
                self._connection.rollback()
        except self.driver.Error as rollback_error:
            logger.warning(f"Не удалось откатить транзакцию после ошибки: {rollback_error}")
        finally:
            self._in_transaction = False

        error_cls = self._classify_error(error)
        error_msg = f"Ошибка выполнения запроса: {error}\nЗапрос: {query}"
        logger.error(error_msg)
        return error_cls(error_msg, original_error=error)

    def _classify_error(self, error: Exception) -> Type[DataAccessError]:
        """Сопоставление класса ошибки драйвера с таксономией DataAccessError"""
        if isinstance(error, (self.driver.OperationalError, self.driver.InterfaceError)):
            return DatabaseConnectionError
        if isinstance(error, self.driver.IntegrityError):
            return ConstraintViolationError
        if isinstance(error, self.driver.ProgrammingError):
            return QuerySyntaxError
        return DatabaseQueryError

    @classmethod
    def get_instance(cls) -> Optional['DatabaseManager']:
        """Получение экземпляра Singleton"""
        return cls.__dict__.get('_instance')

    @classmethod
    def reset_instance(cls) -> None:
        """Закрытие подключения и сброс Singleton"""
        instance = cls.__dict__.get('_instance')
        if instance is not None:
            instance.close()
        cls._instance = None

    def __enter__(self):
        """Поддержка контекстного менеджера"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Автоматическое закрытие соединения"""
        self.close()
