"""
MODULE: models.user
RESPONSIBILITY: User entity and its demo seed data.
ALLOWED: core.model.
FORBIDDEN: Raw SQL.
ERRORS: Propagates core exceptions.
"""

from typing import Any, Dict, List

from loguru import logger

from core.model import Model

DEFAULT_USERS = (
    {"name": "Jonas", "email": "jonas@example.com"},
    {"name": "Maria", "email": "maria@example.com"},
    {"name": "Carlos", "email": "carlos@example.com"},
)


class User(Model):
    """Пользователь"""
    table = "users"
    fillable = ("name", "email")
    timestamps = True
    soft_delete = True


def seed_users() -> List[Dict[str, Any]]:
    """
    Заполнение таблицы users демонстрационными данными

    Повторный запуск не создает дубликатов: записи ищутся по email.
    """
    users = [
        User.first_or_create({"email": data["email"]}, {"name": data["name"]})
        for data in DEFAULT_USERS
    ]
    logger.info(f"Пользователи загружены: {len(users)}")
    return users
