"""
MODULE: core.model
RESPONSIBILITY: Active record base: CRUD, upsert, soft delete, lifecycle events on top of QueryBuilder.
ALLOWED: core.query_builder, core.events, core.dependency_injection, loguru.
FORBIDDEN: Driver imports, HTTP/request parsing, schema migrations.
ERRORS: ConfigurationError, ValidationError at definition/call time; DataAccessError from the manager;
        callback exceptions propagate unchanged.

Базовый класс активной записи

Класс-наследник описывает таблицу, а операции выполняются методами класса:

    class User(Model):
        table = "users"
        fillable = ("name", "email")
        timestamps = True
        soft_delete = True

    user = User.create({"name": "Jonas", "email": "jonas@example.com"})
    User.where("email", "LIKE", "%@example.com").order_by("id", "DESC").get()

Записи представлены обычными словарями. Массовая запись (create/update)
ограничена списком fillable: прочие ключи молча отбрасываются.

Порядок событий: ошибка в creating/updating/deleting/restoring отменяет
операцию до записи в БД; ошибка в created/updated/deleted/restored
возникает уже после фиксации записи (вне явной транзакции).
"""

from datetime import datetime
from typing import Any, ClassVar, ContextManager, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from core.dependency_injection import container
from core.events import Callback, EventRegistry
from core.exceptions import ConfigurationError, ValidationError
from core.interfaces import IDatabaseManager
from core.pagination import Page
from core.query_builder import (
    PLACEHOLDER,
    SOFT_DELETE_COLUMN,
    QueryBuilder,
    is_identifier,
    quote_identifier,
)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


class Model:
    """
    Абстрактная активная запись

    Attributes:
        table: Имя таблицы (обязательно для конкретной сущности)
        fillable: Поля, разрешенные для массовой записи
        timestamps: Автоматически заполнять created_at/updated_at
        soft_delete: Логическое удаление через deleted_at
        primary_key: Имя столбца первичного ключа
    """

    table: ClassVar[Optional[str]] = None
    fillable: ClassVar[Tuple[str, ...]] = ()
    timestamps: ClassVar[bool] = False
    soft_delete: ClassVar[bool] = False
    primary_key: ClassVar[str] = "id"

    _db: ClassVar[Optional[IDatabaseManager]] = None
    _events: ClassVar[Optional[EventRegistry]] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        if cls.table is not None and (not is_identifier(cls.table) or "." in cls.table):
            raise ConfigurationError(f"{cls.__name__}: недопустимое имя таблицы {cls.table!r}")

        if isinstance(cls.fillable, str):
            raise ConfigurationError(f"{cls.__name__}: fillable должен быть последовательностью имен полей")
        fillable = tuple(dict.fromkeys(cls.fillable))
        for name in fillable + (cls.primary_key,):
            if not is_identifier(name) or "." in name:
                raise ConfigurationError(f"{cls.__name__}: недопустимое имя поля {name!r}")
        cls.fillable = fillable

    # --- зависимости ---

    @classmethod
    def bind(cls, db: Optional[IDatabaseManager] = None, events: Optional[EventRegistry] = None) -> None:
        """
        Внедрение менеджера БД и реестра событий для класса и его наследников.
        None возвращает к зависимостям из DependencyContainer.
        """
        cls._db = db
        cls._events = events

    @classmethod
    def database(cls) -> IDatabaseManager:
        return cls._db if cls._db is not None else container.get_database_manager()

    @classmethod
    def events(cls) -> EventRegistry:
        return cls._events if cls._events is not None else container.get_event_registry()

    @classmethod
    def table_name(cls) -> str:
        if not cls.table:
            raise ConfigurationError(f"{cls.__name__}: не задано имя таблицы")
        return cls.table

    @classmethod
    def on(cls, event: str, callback: Callback) -> Callback:
        """Регистрация обработчика события жизненного цикла для этой сущности"""
        return cls.events().on(cls, event, callback)

    @classmethod
    def transaction(cls) -> ContextManager[Any]:
        """Транзакция поставщика подключения: with User.transaction(): ..."""
        return cls.database().transaction()

    # --- построитель ---

    @classmethod
    def query(cls) -> QueryBuilder:
        """Новый построитель запроса для этой сущности"""
        cls.table_name()
        return QueryBuilder(cls)

    @classmethod
    def where(cls, column: str, operator: str, value: Any) -> QueryBuilder:
        return cls.query().where(column, operator, value)

    @classmethod
    def where_in(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_in(column, values)

    @classmethod
    def where_not_in(cls, column: str, values: Any) -> QueryBuilder:
        return cls.query().where_not_in(column, values)

    @classmethod
    def where_null(cls, column: str) -> QueryBuilder:
        return cls.query().where_null(column)

    @classmethod
    def where_not_null(cls, column: str) -> QueryBuilder:
        return cls.query().where_not_null(column)

    @classmethod
    def like(cls, column: str, value: Any) -> QueryBuilder:
        return cls.query().like(column, value)

    @classmethod
    def starts_with(cls, column: str, value: Any) -> QueryBuilder:
        return cls.query().starts_with(column, value)

    @classmethod
    def ends_with(cls, column: str, value: Any) -> QueryBuilder:
        return cls.query().ends_with(column, value)

    @classmethod
    def join(cls, table: str, left_column: str, operator: str, right_column: str,
             kind: str = "INNER") -> QueryBuilder:
        return cls.query().join(table, left_column, operator, right_column, kind)

    @classmethod
    def order_by(cls, column: str, direction: str = "ASC") -> QueryBuilder:
        return cls.query().order_by(column, direction)

    @classmethod
    def with_trashed(cls) -> QueryBuilder:
        return cls.query().with_trashed()

    @classmethod
    def only_trashed(cls) -> QueryBuilder:
        return cls.query().only_trashed()

    # --- чтение ---

    @classmethod
    def all(cls) -> List[Dict[str, Any]]:
        """Все записи таблицы (без мягко удаленных)"""
        return cls.query().get()

    @classmethod
    def find(cls, record_id: Any) -> Optional[Dict[str, Any]]:
        """Запись по первичному ключу или None"""
        return cls.query().where(cls.primary_key, "=", record_id).first()

    @classmethod
    def lock_for_update(cls, column: str, operator: str, value: Any) -> List[Dict[str, Any]]:
        """
        Эксклюзивное чтение строк (SELECT ... FOR UPDATE)

        Открывает транзакцию и оставляет ее открытой: вызывающий код обязан
        вызвать database().commit() или database().rollback().
        """
        return cls.query().where(column, operator, value).lock_for_update().get()

    # --- агрегаты по всей таблице ---

    @classmethod
    def count(cls, column: str = "*") -> int:
        return cls.query().count(column)

    @classmethod
    def sum(cls, column: str) -> Any:
        return cls.query().sum(column)

    @classmethod
    def avg(cls, column: str) -> Any:
        return cls.query().avg(column)

    @classmethod
    def min(cls, column: str) -> Any:
        return cls.query().min(column)

    @classmethod
    def max(cls, column: str) -> Any:
        return cls.query().max(column)

    @classmethod
    def paginate(cls, per_page: int = 15, page: int = 1) -> Page:
        return cls.query().paginate(per_page, page)

    # --- запись ---

    @classmethod
    def _now(cls) -> datetime:
        return datetime.now()

    @classmethod
    def _fillable_values(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Пересечение ключей data со списком fillable в порядке fillable"""
        return {name: data[name] for name in cls.fillable if name in data}

    @classmethod
    def _writable_columns(cls) -> Tuple[str, ...]:
        if cls.timestamps:
            return cls.fillable + (CREATED_AT, UPDATED_AT)
        return cls.fillable

    @classmethod
    def _update_row(cls, record_id: Any, values: Mapping[str, Any], condition: Optional[str] = None) -> int:
        assignments = ", ".join(f"{quote_identifier(column)} = {PLACEHOLDER}" for column in values)
        sql = (
            f"UPDATE {quote_identifier(cls.table_name())} SET {assignments} "
            f"WHERE {quote_identifier(cls.primary_key)} = {PLACEHOLDER}"
        )
        if condition:
            sql += f" AND {condition}"
        return cls.database().execute_update(sql, list(values.values()) + [record_id])

    @classmethod
    def _delete_row(cls, record_id: Any) -> int:
        sql = (
            f"DELETE FROM {quote_identifier(cls.table_name())} "
            f"WHERE {quote_identifier(cls.primary_key)} = {PLACEHOLDER}"
        )
        return cls.database().execute_update(sql, [record_id])

    @classmethod
    def create(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Создание записи

        Args:
            data: Поля записи; ключи вне fillable отбрасываются

        Returns:
            Созданная запись: первичный ключ, записанные поля и метки времени

        Raises:
            ValidationError: Если в data нет ни одного поля из fillable
        """
        values = cls._fillable_values(data)
        if not values:
            raise ValidationError(f"{cls.__name__}.create(): нет полей из fillable {list(cls.fillable)}")

        if cls.timestamps:
            now = cls._now()
            values[CREATED_AT] = now
            values[UPDATED_AT] = now

        cls.events().fire(cls, "creating", values)

        writable = cls._writable_columns()
        values = {column: value for column, value in values.items() if column in writable}
        columns = ", ".join(quote_identifier(column) for column in values)
        placeholders = ", ".join([PLACEHOLDER] * len(values))
        sql = f"INSERT INTO {quote_identifier(cls.table_name())} ({columns}) VALUES ({placeholders})"

        record_id = cls.database().execute_insert(sql, list(values.values()), key=cls.primary_key)
        record = {cls.primary_key: record_id, **values}
        logger.debug(f"{cls.__name__}: создана запись {cls.primary_key}={record_id}")

        cls.events().fire(cls, "created", record)
        return record

    @classmethod
    def update(cls, record_id: Any, data: Mapping[str, Any]) -> bool:
        """
        Обновление записи по первичному ключу

        Returns:
            True если строка обновлена; False если в data нет полей из fillable
            (запрос не выполняется) или строка не найдена
        """
        values = cls._fillable_values(data)
        if not values:
            logger.debug(f"{cls.__name__}.update({record_id}): нет полей из fillable, запись пропущена")
            return False

        if cls.timestamps:
            values[UPDATED_AT] = cls._now()

        payload = {cls.primary_key: record_id, **values}
        cls.events().fire(cls, "updating", payload)

        writable = cls._writable_columns()
        changes = {column: value for column, value in payload.items() if column in writable}
        updated = cls._update_row(record_id, changes) > 0

        if updated:
            cls.events().fire(cls, "updated", payload)
        return updated

    @classmethod
    def delete(cls, record_id: Any) -> bool:
        """
        Удаление записи: логическое при soft_delete, иначе физическое

        Логическое удаление записывает только deleted_at в обход update():
        updated_at не меняется, события updating/updated не вызываются.

        Returns:
            True если запись удалена; False если она не найдена или уже удалена
        """
        record = cls.find(record_id)
        if record is None:
            return False

        cls.events().fire(cls, "deleting", record)

        if cls.soft_delete:
            deleted_at = cls._now()
            column = quote_identifier(SOFT_DELETE_COLUMN)
            deleted = cls._update_row(record_id, {SOFT_DELETE_COLUMN: deleted_at}, f"{column} IS NULL") > 0
            record[SOFT_DELETE_COLUMN] = deleted_at
        else:
            deleted = cls._delete_row(record_id) > 0

        if deleted:
            cls.events().fire(cls, "deleted", record)
        return deleted

    @classmethod
    def restore(cls, record_id: Any) -> bool:
        """
        Восстановление мягко удаленной записи

        Очищает deleted_at в обход update(): updated_at не меняется,
        события updating/updated не вызываются.

        Returns:
            True если запись восстановлена; False если удаленной записи нет

        Raises:
            ConfigurationError: Если сущность не использует мягкое удаление
        """
        if not cls.soft_delete:
            raise ConfigurationError(f"{cls.__name__} не использует мягкое удаление")

        record = cls.only_trashed().where(cls.primary_key, "=", record_id).first()
        if record is None:
            return False

        cls.events().fire(cls, "restoring", record)

        column = quote_identifier(SOFT_DELETE_COLUMN)
        restored = cls._update_row(record_id, {SOFT_DELETE_COLUMN: None}, f"{column} IS NOT NULL") > 0
        record[SOFT_DELETE_COLUMN] = None

        if restored:
            cls.events().fire(cls, "restored", record)
        return restored

    @classmethod
    def force_delete(cls, record_id: Any) -> bool:
        """Физическое удаление независимо от soft_delete"""
        record = cls.with_trashed().where(cls.primary_key, "=", record_id).first()
        if record is None:
            return False

        cls.events().fire(cls, "deleting", record)
        deleted = cls._delete_row(record_id) > 0
        if deleted:
            cls.events().fire(cls, "deleted", record)
        return deleted

    # --- upsert ---

    @classmethod
    def _match(cls, attributes: Mapping[str, Any]) -> QueryBuilder:
        if not attributes:
            raise ValidationError(f"{cls.__name__}: нужен хотя бы один атрибут для поиска")
        builder = cls.query()
        for column, value in attributes.items():
            builder.where(column, "=", value)
        return builder

    @classmethod
    def first_or_create(cls, attributes: Mapping[str, Any],
                        extra_values: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Первая запись, совпадающая со всеми attributes, либо новая запись attributes + extra_values"""
        record = cls._match(attributes).first()
        if record is not None:
            return record
        return cls.create({**attributes, **(extra_values or {})})

    @classmethod
    def update_or_create(cls, attributes: Mapping[str, Any], values: Mapping[str, Any]) -> Dict[str, Any]:
        """Обновление найденной по attributes записи значениями values либо создание новой"""
        record = cls._match(attributes).first()
        if record is None:
            return cls.create({**attributes, **values})

        record_id = record[cls.primary_key]
        if cls.update(record_id, values):
            return cls.find(record_id) or {**record, **cls._fillable_values(values)}
        return record
