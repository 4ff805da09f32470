"""
Доменные сущности приложения.
"""
from .user import User, seed_users

__all__ = [
    'User',
    'seed_users',
]
