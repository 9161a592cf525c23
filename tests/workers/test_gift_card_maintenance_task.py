from __future__ import annotations

import asyncio

from app.workers.tasks import gift_card_maintenance


def test_expire_gift_cards_runs_until_batch_is_short(monkeypatch) -> None:
    batches = iter([5, 5, 2])
    calls: list[int] = []

    async def fake_expire_due(session, *, now_utc, limit):
        calls.append(limit)
        return next(batches)

    monkeypatch.setattr(
        gift_card_maintenance.LedgerStore,
        "expire_due_gift_cards",
        fake_expire_due,
    )

    result = asyncio.run(gift_card_maintenance.expire_gift_cards_async(batch_size=5))

    assert result == {"expired_gift_cards": 12, "batches": 3}
    assert calls == [5, 5, 5]


def test_expire_gift_cards_task_wrapper(monkeypatch) -> None:
    async def fake_async() -> dict[str, int]:
        return {"expired_gift_cards": 0, "batches": 1}

    monkeypatch.setattr(gift_card_maintenance, "expire_gift_cards_async", fake_async)

    assert gift_card_maintenance.expire_gift_cards() == {"expired_gift_cards": 0, "batches": 1}
