from __future__ import annotations

import base64
from io import BytesIO

from PIL import Image

from app.economy.gift_cards.scannable import (
    CAPTION_HEIGHT,
    render_scannable_code,
    scannable_code_data_url,
)

CODE = "GC-ABCD-EFGH-JKLM-NPQR"


def test_render_scannable_code_returns_png_with_caption_area() -> None:
    payload = render_scannable_code(CODE)

    assert payload.startswith(b"\x89PNG\r\n\x1a\n")
    with Image.open(BytesIO(payload)) as image:
        width, height = image.size
        assert image.format == "PNG"
        assert height == width + CAPTION_HEIGHT


def test_render_scannable_code_is_deterministic_for_same_code() -> None:
    assert render_scannable_code(CODE) == render_scannable_code(CODE)
    assert render_scannable_code(CODE) != render_scannable_code("GC-ZZZZ-YYYY-XXXX-WWWW")


def test_scannable_code_data_url_embeds_png() -> None:
    data_url = scannable_code_data_url(CODE)

    prefix = "data:image/png;base64,"
    assert data_url.startswith(prefix)
    assert base64.b64decode(data_url[len(prefix) :]) == render_scannable_code(CODE)
