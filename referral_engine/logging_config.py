"""Настройка loguru для продакшена."""

from __future__ import annotations

import sys

from loguru import logger


def setup_logging(json: bool = False, level: str = "INFO") -> None:
    """Заменяет стандартный sink: цветной текст в dev, JSON-строки в проде."""

    logger.remove()
    if json:
        logger.add(sys.stdout, serialize=True, level=level, backtrace=False, enqueue=True)
        return
    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}",
        level=level,
        colorize=True,
        backtrace=False,
        enqueue=True,
    )


__all__ = ["setup_logging"]
