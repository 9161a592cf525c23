from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.economy.context import OperationContext
from app.services.internal_auth import is_internal_request_authenticated

logger = structlog.get_logger(__name__)

ESTABLISHMENT_HEADER = "X-Establishment-Id"
ACTOR_HEADER = "X-Actor-Id"


def require_internal_access(request: Request) -> None:
    settings = get_settings()
    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_api_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"code": "E_UNAUTHORIZED", "message": "Missing or invalid bearer token"},
        )


def _parse_establishment_id(raw: str | None) -> int:
    if raw is None or not raw.strip().isdigit() or int(raw) <= 0:
        raise HTTPException(
            status_code=400,
            detail={"code": "E_BAD_REQUEST", "message": f"{ESTABLISHMENT_HEADER} header is required"},
        )
    return int(raw)


def require_operation_context(request: Request) -> OperationContext:
    require_internal_access(request)
    establishment_id = _parse_establishment_id(request.headers.get(ESTABLISHMENT_HEADER))
    actor_id = (request.headers.get(ACTOR_HEADER) or "").strip() or None

    structlog.contextvars.bind_contextvars(establishment_id=establishment_id, actor_id=actor_id)
    return OperationContext(
        establishment_id=establishment_id,
        actor_id=actor_id,
        now_utc=datetime.now(timezone.utc),
    )
