"""
MODULE: core.interfaces
RESPONSIBILITY: Define Protocols for dependency injection.
ALLOWED: Typing imports, Protocol.
FORBIDDEN: Implementation details, concrete classes.
ERRORS: None.

Интерфейсы (Protocol) для модульного проектирования

Определяет контракт поставщика подключения, которым пользуются
построитель запросов и модели. Любая реализация с этими методами
(DatabaseManager или тестовый двойник) может быть внедрена через Model.bind().
"""

from typing import Protocol, Optional, Dict, Any, List, Sequence, ContextManager


class IDatabaseManager(Protocol):
    """Интерфейс поставщика подключения к реляционной БД"""

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Выполнение запроса с возвратом строк в виде словарей"""
        ...

    def execute_update(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Выполнение DML запроса, возвращает количество затронутых строк"""
        ...

    def execute_insert(self, query: str, params: Optional[Sequence[Any]] = None, key: str = "id") -> Any:
        """Выполнение INSERT, возвращает сгенерированный ключ"""
        ...

    def execute_single_value(self, query: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Первое значение первой строки результата"""
        ...

    def begin(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def in_transaction(self) -> bool:
        ...

    def transaction(self) -> ContextManager[Any]:
        """Контекст транзакции: commit при успехе, rollback при ошибке"""
        ...
