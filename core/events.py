"""
MODULE: core.events
RESPONSIBILITY: Registry of lifecycle callbacks per entity type.
ALLOWED: typing, loguru.
FORBIDDEN: SQL, database access.
ERRORS: ValidationError (unknown event name). Callback exceptions propagate unchanged.

Реестр событий жизненного цикла

Создается один раз при старте приложения и передается моделям через
DependencyContainer или Model.bind(). Колбэки вызываются синхронно
в порядке регистрации; исключение в колбэке прерывает операцию.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

from loguru import logger

from core.exceptions import ValidationError

LIFECYCLE_EVENTS = (
    "creating", "created",
    "updating", "updated",
    "deleting", "deleted",
    "restoring", "restored",
)

Callback = Callable[[Dict[str, Any]], Any]


class EventRegistry:
    """Соответствие (тип сущности, событие) -> упорядоченный список колбэков"""

    def __init__(self):
        self._listeners: Dict[Tuple[type, str], List[Callback]] = defaultdict(list)

    @staticmethod
    def _check_event(event: str) -> None:
        if event not in LIFECYCLE_EVENTS:
            raise ValidationError(
                f"Неизвестное событие '{event}', допустимые: {', '.join(LIFECYCLE_EVENTS)}"
            )

    def on(self, model: type, event: str, callback: Callback) -> Callback:
        """
        Регистрация колбэка

        Args:
            model: Класс сущности
            event: Имя события (creating, created, ...)
            callback: Функция, принимающая словарь полей записи

        Returns:
            Тот же колбэк
        """
        self._check_event(event)
        self._listeners[(model, event)].append(callback)
        logger.debug(f"Зарегистрирован обработчик {event} для {model.__name__}")
        return callback

    def listeners(self, model: type, event: str) -> List[Callback]:
        self._check_event(event)
        return list(self._listeners.get((model, event), ()))

    def fire(self, model: type, event: str, payload: Dict[str, Any]) -> None:
        """
        Вызов всех колбэков события в порядке регистрации

        Исключение колбэка пробрасывается вызывающему коду без перехвата.
        """
        for callback in self.listeners(model, event):
            callback(payload)

    def clear(self) -> None:
        self._listeners.clear()
