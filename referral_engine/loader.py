"""Loader реферального движка: старт и остановка фоновых задач."""

from __future__ import annotations

from loguru import logger

from .context import feature_toggle, rails, settings, verification_scheduler
from .middlewares.db import init_db
from .utils.cache import configure_cache


async def on_startup() -> None:
    """Кеш, схема БД, фоновая проверка рефералок."""

    logger.info("Реферальный движок стартует в окружении {env}", env=settings.environment)
    logger.debug("on_startup: configure cache")
    configure_cache()
    if not settings.is_production:
        # В проде схемой управляет Alembic.
        logger.debug("on_startup: create tables")
        await init_db()
    logger.debug("on_startup: start verification scheduler")
    await verification_scheduler.start()
    logger.info(
        "on_startup завершён: программа {state}, рельсы {rails}",
        state="включена" if feature_toggle.enabled else "выключена",
        rails=", ".join(rails.methods()),
    )


async def on_shutdown() -> None:
    """Мягкое выключение сервиса."""

    await verification_scheduler.stop()
    logger.info("Реферальный движок корректно остановлен")


__all__ = ["on_shutdown", "on_startup"]
