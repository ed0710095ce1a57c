"""Инфраструктура HTTP-слоя: сессии БД и перехват ошибок."""

from .db import get_db_session, get_session_maker, init_db
from .errors import register_error_handlers

__all__ = [
    "get_db_session",
    "get_session_maker",
    "init_db",
    "register_error_handlers",
]
