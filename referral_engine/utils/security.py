"""JWT-утилиты: роль вызывающего (viewer/admin) из bearer-токена."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from config.settings import get_settings


class Role(str, enum.Enum):
    VIEWER = "viewer"
    ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class Principal:
    """Кто выполняет запрос. sub пишется в reviewed_by / approved_by."""

    subject: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


ANONYMOUS = Principal(subject="anonymous", role=Role.VIEWER)


def issue_access_token(subject: str, role: Role = Role.VIEWER, ttl_minutes: int | None = None) -> str:
    """Выдаёт JWT с claim role."""

    security = get_settings().security
    ttl = ttl_minutes or security.jwt_ttl_minutes
    now = int(time.time())
    payload = {
        "sub": str(subject),
        "role": Role(role).value,
        "iat": now,
        "exp": now + ttl * 60,
    }
    return jwt.encode(payload, security.jwt_secret.get_secret_value(), algorithm=security.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Валидирует и возвращает payload JWT."""

    security = get_settings().security
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret.get_secret_value(),
            algorithms=[security.jwt_algorithm],
        )
    except InvalidTokenError as exc:
        raise ValueError("Недействительный токен") from exc
    return payload


def resolve_principal(token: str | None) -> Principal:
    """Отсутствующий или битый токен, неизвестная роль -> viewer."""

    if not token:
        return ANONYMOUS
    try:
        payload = decode_access_token(token)
    except ValueError:
        return ANONYMOUS
    try:
        role = Role(payload.get("role", Role.VIEWER.value))
    except ValueError:
        role = Role.VIEWER
    return Principal(subject=str(payload.get("sub") or "anonymous"), role=role)


__all__ = [
    "ANONYMOUS",
    "Principal",
    "Role",
    "decode_access_token",
    "issue_access_token",
    "resolve_principal",
]
