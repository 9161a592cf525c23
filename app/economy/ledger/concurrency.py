from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionLocal
from app.economy.errors import ConflictError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def is_retryable_write_conflict(exc: BaseException) -> bool:
    return isinstance(exc, DBAPIError) and _sqlstate(exc) in RETRYABLE_SQLSTATES


async def run_serialized(
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int,
    backoff_base_seconds: float = 0.05,
) -> T:
    """Run ``operation`` in its own transaction, retrying serialization failures and deadlocks.

    Each attempt opens a fresh session so nothing from a rolled back attempt leaks into the next.
    """
    total_attempts = max(1, int(attempts))
    for attempt in range(1, total_attempts + 1):
        try:
            async with SessionLocal.begin() as session:
                return await operation(session)
        except DBAPIError as exc:
            if not is_retryable_write_conflict(exc):
                raise
            logger.warning(
                "ledger_write_conflict_retry",
                attempt=attempt,
                max_attempts=total_attempts,
                sqlstate=_sqlstate(exc),
            )
            if attempt >= total_attempts:
                raise ConflictError(
                    "Concurrent write conflict, retries exhausted",
                    code="E_CONCURRENT_WRITE_CONFLICT",
                    details={"attempts": total_attempts},
                ) from exc
            await asyncio.sleep(backoff_base_seconds * (2 ** (attempt - 1)))

    raise ConflictError("Concurrent write conflict", code="E_CONCURRENT_WRITE_CONFLICT")
