from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.economy.errors import GiftCardPlatformError

logger = structlog.get_logger(__name__)


async def handle_platform_error(request: Request, exc: GiftCardPlatformError) -> JSONResponse:
    payload = exc.to_payload()
    log_fields = {
        "path": request.url.path,
        "method": request.method,
        "error_code": exc.code,
        "kind": exc.kind,
        "status": exc.status_code,
    }
    if exc.status_code >= 500:
        logger.error("request_failed", **log_fields)
    else:
        logger.info("request_rejected", **log_fields)
    return JSONResponse(status_code=exc.status_code, content=payload)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GiftCardPlatformError, handle_platform_error)  # type: ignore[arg-type]
