"""
MODULE: core.pagination
RESPONSIBILITY: Result structure of paginated queries.
ALLOWED: Dataclasses, math.
FORBIDDEN: Database operations.
ERRORS: None.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class Page:
    """
    Страница результатов

    Attributes:
        data: Строки текущей страницы
        total: Общее количество строк, удовлетворяющих запросу
        per_page: Размер страницы
        current_page: Номер текущей страницы (с 1)
    """
    data: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    per_page: int = 15
    current_page: int = 1

    @property
    def last_page(self) -> int:
        """Номер последней страницы; не меньше 1 даже для пустой выборки"""
        return max(1, math.ceil(self.total / self.per_page))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
        }
