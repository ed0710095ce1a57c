"""FastAPI backend реферального движка."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from referral_engine.loader import on_shutdown, on_startup
from referral_engine.middlewares.errors import register_error_handlers
from referral_engine.utils.feature_flags import FeatureToggle
from .admin import router as admin_router
from .admin import toggle_router
from .deps import get_feature_toggle
from .payouts import router as payouts_router
from .referrals import router as referrals_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await on_startup()
    try:
        yield
    finally:
        await on_shutdown()


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    """Собирает приложение; в тестах lifespan отключается."""

    app = FastAPI(title="Referral Engine API", lifespan=lifespan if with_lifespan else None)
    register_error_handlers(app)
    app.include_router(referrals_router)
    app.include_router(payouts_router)
    app.include_router(admin_router)
    app.include_router(toggle_router)

    @app.get("/api/health")
    async def health(toggle: FeatureToggle = Depends(get_feature_toggle)) -> dict:
        """Никогда не закрывается выключателем."""

        return {"ok": True, "status": "ok", "referrals_enabled": toggle.enabled}

    return app


app = create_app()

__all__ = ["app", "create_app"]
