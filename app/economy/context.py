from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class OperationContext:
    establishment_id: int
    actor_id: str | None
    now_utc: datetime
