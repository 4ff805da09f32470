"""
MODULE: core.query_builder
RESPONSIBILITY: Accumulate predicates, joins, ordering and bounds; compile one parameterized SELECT.
ALLOWED: typing, re, dataclasses, loguru, core.exceptions, core.pagination.
FORBIDDEN: Driver imports, INSERT/UPDATE/DELETE assembly (see core.model).
ERRORS: ValidationError, PreconditionError, ConfigurationError; DataAccessError from terminal calls.

Построитель SELECT запросов для моделей

Состояние построителя одноразовое: любая терминальная операция
(get, first, агрегаты, paginate) сбрасывает его перед возвратом,
даже если запрос завершился ошибкой. Цепочечные вызовы возвращают
тот же экземпляр. Значения всегда передаются параметрами (%s),
идентификаторы проходят проверку и экранируются двойными кавычками.
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Type

from loguru import logger

from core.exceptions import ConfigurationError, PreconditionError, ValidationError
from core.pagination import Page

if TYPE_CHECKING:
    from core.model import Model

PLACEHOLDER = "%s"
SOFT_DELETE_COLUMN = "deleted_at"

COMPARISON_OPERATORS = frozenset({"=", "!=", "<>", "<", "<=", ">", ">="})
OPERATORS = COMPARISON_OPERATORS | {"LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE"}
DIRECTIONS = frozenset({"ASC", "DESC"})
JOIN_KINDS = frozenset({"INNER", "LEFT", "RIGHT", "FULL"})

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def is_identifier(name: Any) -> bool:
    """Имя столбца или таблицы, допустимо квалифицированное (table.column)"""
    return isinstance(name, str) and bool(_IDENTIFIER_RE.match(name))


def quote_identifier(name: str) -> str:
    """
    Экранирование идентификатора: users.id -> "users"."id"

    Raises:
        ValidationError: Если имя не является допустимым идентификатором
    """
    if not is_identifier(name):
        raise ValidationError(f"Недопустимый идентификатор: {name!r}")
    return ".".join(f'"{part}"' for part in name.split("."))


def _normalize_keyword(value: Any, allowed: FrozenSet[str], kind: str) -> str:
    normalized = " ".join(str(value).split()).upper() if isinstance(value, str) else None
    if normalized not in allowed:
        raise ValidationError(f"Недопустимый {kind}: {value!r}, допустимые: {', '.join(sorted(allowed))}")
    return normalized


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} должен быть неотрицательным целым числом, получено {value!r}")
    return value


@dataclass(frozen=True)
class Predicate:
    """Скомпилированный фрагмент WHERE с собственными параметрами"""
    sql: str
    params: Tuple[Any, ...]
    columns: FrozenSet[str]

    def touches_soft_delete(self, table: str) -> bool:
        """Условие на deleted_at самой сущности: без префикса или с префиксом ее таблицы"""
        own = {SOFT_DELETE_COLUMN, f"{table}.{SOFT_DELETE_COLUMN}"}
        return not own.isdisjoint(self.columns)


class QueryBuilder:
    """
    Построитель запроса для одной модели

    Используется одним вызывающим кодом; не предназначен для совместного
    использования между потоками.
    """

    def __init__(self, model: Type['Model']):
        self.model = model
        self._reset()

    def _reset(self) -> None:
        self._wheres: List[Predicate] = []
        self._joins: List[str] = []
        self._orders: List[str] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._trashed = "exclude"
        self._lock = False

    # --- предикаты ---

    def _comparison(self, column: str, operator: str, value: Any) -> Predicate:
        op = _normalize_keyword(operator, OPERATORS, "оператор")
        return Predicate(f"{quote_identifier(column)} {op} {PLACEHOLDER}", (value,), frozenset([column]))

    def where(self, column: str, operator: str, value: Any) -> 'QueryBuilder':
        """Добавление условия `column operator %s`, условия объединяются через AND"""
        self._wheres.append(self._comparison(column, operator, value))
        return self

    def or_where(self, column: str, operator: str, value: Any) -> 'QueryBuilder':
        """
        Объединение с предыдущим условием через OR: (previous OR new)

        Затрагивает только непосредственно предшествующее условие.

        Raises:
            PreconditionError: Если ранее не было добавлено ни одного условия
        """
        if not self._wheres:
            raise PreconditionError("or_where() требует хотя бы одного предыдущего условия where()")
        new = self._comparison(column, operator, value)
        previous = self._wheres.pop()
        self._wheres.append(Predicate(
            f"({previous.sql} OR {new.sql})",
            previous.params + new.params,
            previous.columns | new.columns,
        ))
        return self

    def like(self, column: str, value: Any) -> 'QueryBuilder':
        return self.where(column, "LIKE", f"%{value}%")

    def starts_with(self, column: str, value: Any) -> 'QueryBuilder':
        return self.where(column, "LIKE", f"{value}%")

    def ends_with(self, column: str, value: Any) -> 'QueryBuilder':
        return self.where(column, "LIKE", f"%{value}")

    def where_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        """Условие IN; пустой список не совпадает ни с одной строкой"""
        return self._where_in(column, values, negate=False)

    def where_not_in(self, column: str, values: Iterable[Any]) -> 'QueryBuilder':
        """Условие NOT IN; пустой список совпадает со всеми строками"""
        return self._where_in(column, values, negate=True)

    def _where_in(self, column: str, values: Iterable[Any], negate: bool) -> 'QueryBuilder':
        quoted = quote_identifier(column)
        values = tuple(values)
        if not values:
            sql = "1 = 1" if negate else "1 = 0"
        else:
            placeholders = ", ".join([PLACEHOLDER] * len(values))
            sql = f"{quoted} {'NOT IN' if negate else 'IN'} ({placeholders})"
        self._wheres.append(Predicate(sql, values, frozenset([column])))
        return self

    def where_null(self, column: str) -> 'QueryBuilder':
        self._wheres.append(Predicate(f"{quote_identifier(column)} IS NULL", (), frozenset([column])))
        return self

    def where_not_null(self, column: str) -> 'QueryBuilder':
        self._wheres.append(Predicate(f"{quote_identifier(column)} IS NOT NULL", (), frozenset([column])))
        return self

    # --- join, сортировка, границы ---

    def join(self, table: str, left_column: str, operator: str, right_column: str,
             kind: str = "INNER") -> 'QueryBuilder':
        """JOIN добавляются в порядке вызова и всегда предшествуют WHERE"""
        kind = _normalize_keyword(kind, JOIN_KINDS, "тип JOIN")
        op = _normalize_keyword(operator, COMPARISON_OPERATORS, "оператор JOIN")
        self._joins.append(
            f"{kind} JOIN {quote_identifier(table)} "
            f"ON {quote_identifier(left_column)} {op} {quote_identifier(right_column)}"
        )
        return self

    def left_join(self, table: str, left_column: str, operator: str, right_column: str) -> 'QueryBuilder':
        return self.join(table, left_column, operator, right_column, kind="LEFT")

    def order_by(self, column: str, direction: str = "ASC") -> 'QueryBuilder':
        direction = _normalize_keyword(direction, DIRECTIONS, "порядок сортировки")
        self._orders.append(f"{quote_identifier(column)} {direction}")
        return self

    def limit(self, n: int) -> 'QueryBuilder':
        self._limit = _non_negative_int(n, "limit")
        return self

    def offset(self, n: int) -> 'QueryBuilder':
        self._offset = _non_negative_int(n, "offset")
        return self

    # --- мягкое удаление и блокировки ---

    def with_trashed(self) -> 'QueryBuilder':
        """Включить мягко удаленные записи в выборку"""
        self._strip_soft_delete_predicates()
        self._trashed = "with"
        return self

    def only_trashed(self) -> 'QueryBuilder':
        """Выбрать только мягко удаленные записи"""
        if not self.model.soft_delete:
            raise ConfigurationError(f"{self.model.__name__} не использует мягкое удаление")
        self._strip_soft_delete_predicates()
        self._trashed = "only"
        return self

    def _strip_soft_delete_predicates(self) -> None:
        table = self.model.table_name()
        self._wheres = [p for p in self._wheres if not p.touches_soft_delete(table)]

    def lock_for_update(self) -> 'QueryBuilder':
        """
        SELECT ... FOR UPDATE: терминальная операция открывает транзакцию
        и оставляет ее открытой. Вызывающий код обязан выполнить commit()/rollback().
        """
        self._lock = True
        return self

    # --- компиляция ---

    def _compile_wheres(self) -> Tuple[List[str], List[Any]]:
        fragments = [p.sql for p in self._wheres]
        params: List[Any] = [value for p in self._wheres for value in p.params]

        if self.model.soft_delete:
            table = self.model.table_name()
            column = quote_identifier(f"{table}.{SOFT_DELETE_COLUMN}")
            if self._trashed == "only":
                fragments.append(f"{column} IS NOT NULL")
            elif self._trashed == "exclude" and not any(p.touches_soft_delete(table) for p in self._wheres):
                fragments.append(f"{column} IS NULL")

        return fragments, params

    def _compile(self, columns: str, with_bounds: bool = True) -> Tuple[str, List[Any]]:
        parts = [f"SELECT {columns} FROM {quote_identifier(self.model.table_name())}"]
        parts.extend(self._joins)

        fragments, params = self._compile_wheres()
        if fragments:
            parts.append("WHERE " + " AND ".join(fragments))

        if with_bounds:
            if self._orders:
                parts.append("ORDER BY " + ", ".join(self._orders))
            if self._limit is not None:
                parts.append(f"LIMIT {self._limit}")
            if self._offset is not None:
                parts.append(f"OFFSET {self._offset}")
            if self._lock:
                parts.append("FOR UPDATE")

        return " ".join(parts), params

    def to_sql(self) -> Tuple[str, List[Any]]:
        """SQL и параметры текущего состояния без выполнения и без сброса"""
        return self._compile("*")

    # --- терминальные операции ---

    def get(self) -> List[Dict[str, Any]]:
        """Выполнение запроса; возвращает список строк и сбрасывает состояние"""
        try:
            sql, params = self.to_sql()
            db = self.model.database()
            if self._lock:
                db.begin()
            rows = db.execute_query(sql, params)
            logger.debug(f"{self.model.__name__}: получено {len(rows)} строк")
            return rows
        finally:
            self._reset()

    def first(self) -> Optional[Dict[str, Any]]:
        """Первая строка или None"""
        rows = self.limit(1).get()
        return rows[0] if rows else None

    def _run_aggregate(self, function: str, column: str) -> Any:
        expression = "*" if column == "*" and function == "COUNT" else quote_identifier(column)
        sql, params = self._compile(f"{function}({expression}) AS aggregate", with_bounds=False)
        return self.model.database().execute_single_value(sql, params)

    def _aggregate(self, function: str, column: str) -> Any:
        try:
            return self._run_aggregate(function, column)
        finally:
            self._reset()

    def count(self, column: str = "*") -> int:
        """Количество строк с учетом накопленных условий"""
        return int(self._aggregate("COUNT", column) or 0)

    def sum(self, column: str) -> Any:
        return self._aggregate("SUM", column) or 0

    def avg(self, column: str) -> Any:
        return self._aggregate("AVG", column)

    def min(self, column: str) -> Any:
        return self._aggregate("MIN", column)

    def max(self, column: str) -> Any:
        return self._aggregate("MAX", column)

    def paginate(self, per_page: int = 15, page: int = 1) -> Page:
        """
        Постраничная выборка

        Args:
            per_page: Размер страницы (>= 1)
            page: Номер страницы (>= 1)

        Returns:
            Page с данными страницы и общим количеством строк
        """
        try:
            for name, value in (("per_page", per_page), ("page", page)):
                if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                    raise ValidationError(f"{name} должен быть целым числом >= 1, получено {value!r}")

            total = int(self._run_aggregate("COUNT", "*") or 0)
            self._limit = per_page
            self._offset = (page - 1) * per_page
            data = self.get()
        finally:
            self._reset()

        return Page(data=data, total=total, per_page=per_page, current_page=page)
