from __future__ import annotations

import argparse
import csv
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path

from app.economy.context import OperationContext
from app.economy.gift_cards.service import GiftCardService
from app.economy.gift_cards.types import GiftCardBatchResult, GiftCardCreateData
from app.workers.asyncio_runner import run_async_job


def _parse_utc_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Issue a batch of gift cards for an establishment")
    parser.add_argument("--franchise-id", type=int, required=True)
    parser.add_argument("--establishment-id", type=int, required=True)
    parser.add_argument("--initial-value", required=True, help="Decimal amount, e.g. 50.00")
    parser.add_argument("--quantity", type=int, required=True)
    parser.add_argument("--valid-until", help="ISO datetime")
    parser.add_argument("--actor-id", default="gift_card_batch_tool")
    parser.add_argument("--output-csv", type=Path)
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace, *, now_utc: datetime) -> GiftCardCreateData:
    if args.franchise_id <= 0 or args.establishment_id <= 0:
        raise ValueError("--franchise-id and --establishment-id must be positive")
    if args.quantity <= 0:
        raise ValueError("--quantity must be positive")
    try:
        initial_value = Decimal(args.initial_value)
    except InvalidOperation as exc:
        raise ValueError(f"--initial-value is not a decimal: {args.initial_value}") from exc

    valid_until = _parse_utc_datetime(args.valid_until) if args.valid_until else None
    if valid_until is not None and valid_until <= now_utc:
        raise ValueError("--valid-until must be in the future")
    return GiftCardCreateData(
        franchise_id=args.franchise_id,
        initial_value=initial_value,
        valid_until=valid_until,
    )


def _write_output(path: Path, result: GiftCardBatchResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["gift_card_id", "code", "initial_value", "valid_until"])
        for item in result.created:
            gift_card = item.gift_card
            writer.writerow(
                [
                    str(gift_card.id),
                    gift_card.code,
                    str(gift_card.initial_value),
                    gift_card.valid_until.isoformat() if gift_card.valid_until else "",
                ]
            )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    now_utc = datetime.now(timezone.utc)
    data = _validate_args(args, now_utc=now_utc)
    ctx = OperationContext(establishment_id=args.establishment_id, actor_id=args.actor_id, now_utc=now_utc)

    result = run_async_job(GiftCardService.create_batch(data=data, quantity=args.quantity, ctx=ctx))

    output_csv = args.output_csv or Path("reports/gift_card_batch_output.csv")
    _write_output(output_csv, result)
    for error in result.errors:
        print(f"failed index={error.index} code={error.code} message={error.message}")  # noqa: T201
    print(  # noqa: T201
        f"requested={result.quantity} created={result.created_count} "
        f"failed={len(result.errors)} output={output_csv}"
    )
    return 0 if not result.errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
