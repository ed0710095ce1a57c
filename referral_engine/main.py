"""Entry point: FastAPI-приложение под uvicorn."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import get_settings
from .logging_config import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(json=settings.is_production)
    logger.info("Запуск uvicorn на {host}:{port}", host=settings.api.host, port=settings.api.port)
    uvicorn.run(
        "referral_engine.web.app:app",
        host=settings.api.host,
        port=settings.api.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
