from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

SERVICE_NAME = "gift-card-platform"
SERVICE_VERSION = "1.0.0"

CheckResult = dict[str, Any]


def _ok(**extra: Any) -> CheckResult:
    return {"status": "ok", **extra}


def _failed(error: str) -> CheckResult:
    return {"status": "failed", "error": error}


def _log_failure(dependency: str, exc: Exception) -> None:
    logger.warning("health_check_failed", dependency=dependency, error_type=type(exc).__name__)


async def _check_database() -> CheckResult:
    try:
        async with SessionLocal() as session:
            ledger_table = await session.scalar(text("SELECT to_regclass('public.gift_cards')"))
    except Exception as exc:
        _log_failure("database", exc)
        return _failed("database_unavailable")
    if ledger_table is None:
        return _failed("ledger_schema_missing")
    return _ok()


async def _check_redis() -> CheckResult:
    client = Redis.from_url(get_settings().redis_url)
    try:
        pong = await client.ping()
    except Exception as exc:
        _log_failure("redis", exc)
        return _failed("redis_unavailable")
    finally:
        await client.aclose()
    return _ok() if pong is True else _failed("redis_unexpected_ping_response")


def _ping_celery_workers() -> CheckResult:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        replies = inspector.ping() if inspector is not None else None
    except Exception as exc:
        _log_failure("celery", exc)
        return _failed("celery_unavailable")
    if not replies:
        return _failed("celery_no_workers")
    return _ok(workers=len(replies))


async def _check_celery_worker() -> CheckResult:
    return await asyncio.to_thread(_ping_celery_workers)


async def _run_checks(probes: dict[str, Callable[[], Awaitable[CheckResult]]]) -> tuple[bool, dict[str, CheckResult]]:
    results = await asyncio.gather(*(probe() for probe in probes.values()))
    checks = dict(zip(probes, results))
    return all(check.get("status") == "ok" for check in checks.values()), checks


def _checks_response(*, passed: bool, label: str, checks: dict[str, CheckResult]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": label, "checks": checks},
    )


@router.get("/")
async def service_banner() -> dict[str, str]:
    return {
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "environment": get_settings().app_env,
    }


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    """Database, redis and at least one celery worker; the charge and webhook jobs need all three."""
    passed, checks = await _run_checks(
        {"database": _check_database, "redis": _check_redis, "celery": _check_celery_worker}
    )
    return _checks_response(passed=passed, label="ok" if passed else "degraded", checks=checks)


@router.get("/ready")
async def ready() -> JSONResponse:
    passed, checks = await _run_checks({"database": _check_database, "redis": _check_redis})
    return _checks_response(passed=passed, label="ready" if passed else "not_ready", checks=checks)
