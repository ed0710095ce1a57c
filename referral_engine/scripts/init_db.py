"""Создание таблиц реферального движка без Alembic (dev и локальный SQLite)."""

from __future__ import annotations

import asyncio

from loguru import logger
from sqlmodel import SQLModel

from referral_engine.logging_config import setup_logging
from referral_engine.middlewares.db import engine, init_db


async def _run() -> None:
    logger.info(
        "Создаю схему реферального движка в {dsn}",
        dsn=engine.url.render_as_string(hide_password=True),
    )
    await init_db()
    logger.info("Таблицы готовы: {tables}", tables=", ".join(sorted(SQLModel.metadata.tables)))


def main() -> None:
    setup_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
