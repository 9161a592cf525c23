from __future__ import annotations

import re
import secrets

GIFT_CARD_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
GIFT_CARD_CODE_PREFIX = "GC"
GIFT_CARD_CODE_GROUPS = 4
GIFT_CARD_CODE_GROUP_SIZE = 4

GIFT_CARD_CODE_RE = re.compile(
    r"^GC(?:-[ABCDEFGHJKLMNPQRSTUVWXYZ23456789]{4}){4}$",
)


def generate_gift_card_code() -> str:
    groups = [
        "".join(secrets.choice(GIFT_CARD_CODE_ALPHABET) for _ in range(GIFT_CARD_CODE_GROUP_SIZE))
        for _ in range(GIFT_CARD_CODE_GROUPS)
    ]
    return "-".join([GIFT_CARD_CODE_PREFIX, *groups])


def is_valid_gift_card_code(code: str) -> bool:
    return GIFT_CARD_CODE_RE.fullmatch(code) is not None
