from __future__ import annotations

import base64
from functools import lru_cache
from io import BytesIO
from pathlib import Path

import qrcode
from PIL import Image, ImageDraw, ImageFont
from qrcode.constants import ERROR_CORRECT_M

QR_BOX_SIZE = 8
QR_BORDER = 4
CAPTION_HEIGHT = 40
CAPTION_FONT_SIZE = 22
FOREGROUND = (0, 0, 0)
BACKGROUND = (255, 255, 255)

_FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


def _caption_font() -> _FontType:
    candidates = [
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf"),
        Path("/usr/share/fonts/truetype/liberation/LiberationMono-Bold.ttf"),
    ]
    for path in candidates:
        if path.exists():
            return ImageFont.truetype(str(path), size=CAPTION_FONT_SIZE)
    return ImageFont.load_default()


def _qr_image(code: str) -> Image.Image:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(code)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")


@lru_cache(maxsize=1024)
def render_scannable_code(code: str) -> bytes:
    """PNG with the QR encoding of ``code`` and the code printed underneath."""
    qr_image = _qr_image(code)
    width, height = qr_image.size

    canvas = Image.new("RGB", (width, height + CAPTION_HEIGHT), BACKGROUND)
    canvas.paste(qr_image, (0, 0))

    draw = ImageDraw.Draw(canvas)
    font_obj = _caption_font()
    left, top, right, bottom = draw.textbbox((0, 0), code, font=font_obj)
    text_x = int((width - (right - left)) / 2)
    text_y = height + int((CAPTION_HEIGHT - (bottom - top)) / 2) - top
    draw.text((text_x, text_y), code, font=font_obj, fill=FOREGROUND)

    buffer = BytesIO()
    canvas.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


@lru_cache(maxsize=1024)
def scannable_code_data_url(code: str) -> str:
    encoded = base64.b64encode(render_scannable_code(code)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
