from __future__ import annotations

from app.workers.tasks import reliability


def test_retry_backoff_seconds_grows_exponentially_without_jitter(monkeypatch) -> None:
    monkeypatch.setattr(reliability.random, "randint", lambda low, high: 0)

    delays = [
        reliability.retry_backoff_seconds(
            next_retry_attempt=attempt,
            base_seconds=5,
            backoff_max_seconds=300,
        )
        for attempt in (1, 2, 3, 4)
    ]
    assert delays == [5, 10, 20, 40]


def test_retry_backoff_seconds_honors_max(monkeypatch) -> None:
    monkeypatch.setattr(reliability.random, "randint", lambda low, high: high)

    assert (
        reliability.retry_backoff_seconds(
            next_retry_attempt=10,
            base_seconds=5,
            backoff_max_seconds=60,
        )
        == 60
    )


def test_retry_backoff_seconds_adds_bounded_jitter(monkeypatch) -> None:
    monkeypatch.setattr(reliability.random, "randint", lambda low, high: high)

    assert reliability.retry_backoff_seconds(next_retry_attempt=3, backoff_max_seconds=60) == 5
