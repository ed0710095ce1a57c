"""Настройка aiocache для кешируемых отчётов админки."""

from __future__ import annotations

from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from aiocache import caches
from aiocache.base import BaseCache

from config.settings import get_settings

_configured = False
STATS_CACHE_KEY = "admin:program-stats"


def configure_cache() -> None:
    """memory или redis в зависимости от settings.cache.backend."""

    global _configured
    if _configured:
        return

    cfg = get_settings().cache
    if cfg.backend == "redis":
        caches.set_config(
            {
                "default": {
                    "cache": "aiocache.RedisCache",
                    **_redis_config(cfg.redis_dsn),
                    "ttl": cfg.ttl_seconds,
                }
            }
        )
    else:
        caches.set_config(
            {
                "default": {
                    "cache": "aiocache.SimpleMemoryCache",
                    "ttl": cfg.ttl_seconds,
                }
            }
        )
    _configured = True


def get_cache(alias: str = "default") -> BaseCache:
    configure_cache()
    return caches.get(alias)


async def cached_call(key: str, ttl: int, factory: Callable[[], Awaitable[Any]]) -> Any:
    """Значение из кеша, либо factory() с сохранением на ttl секунд."""

    cache = get_cache()
    value = await cache.get(key)
    if value is not None:
        return value
    value = await factory()
    await cache.set(key, value, ttl=ttl)
    return value


async def invalidate(key: str) -> None:
    await get_cache().delete(key)


async def invalidate_program_stats() -> None:
    """Сводка программы в админке пересчитывается после каждой мутации."""

    await invalidate(STATS_CACHE_KEY)


def _redis_config(dsn: str | None) -> dict[str, Any]:
    if not dsn:
        raise RuntimeError("CACHE__BACKEND=redis, но CACHE__REDIS_DSN не указан")
    parsed = urlparse(dsn)
    if parsed.scheme != "redis":
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    path = (parsed.path or "").lstrip("/")
    return {
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": int(path) if path.isdigit() else 0,
    }


__all__ = [
    "STATS_CACHE_KEY",
    "cached_call",
    "configure_cache",
    "get_cache",
    "invalidate",
    "invalidate_program_stats",
]
