from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, Request

from app.api.errors import register_exception_handlers
from app.api.routes.commissions import router as commissions_router
from app.api.routes.gift_cards import router as gift_cards_router
from app.api.routes.health import SERVICE_VERSION
from app.api.routes.health import router as health_router
from app.api.routes.payment_webhook import router as payment_webhook_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.app_env != "dev")

    app = FastAPI(
        title="Gift Card Platform API",
        version=SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request.headers.get("X-Request-Id") or uuid4().hex,
            path=request.url.path,
        )
        return await call_next(request)

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(gift_cards_router)
    app.include_router(commissions_router)
    app.include_router(payment_webhook_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
