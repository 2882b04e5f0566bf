"""Printable QR card sheets.

Cards are business-card sized (3.375in x 2.125in) and laid out 2 columns
by 4 rows on US-letter pages.  Every sheet of fronts is followed by a
sheet of backs whose columns are mirrored, so a duplex print flipped on
the long edge puts each back behind its own front.
"""

from io import BytesIO

import qrcode
from PIL import Image, ImageDraw, ImageFont

from app.config import CARD_DPI, CARD_TITLE

PAGE_WIDTH_IN = 8.5
PAGE_HEIGHT_IN = 11
CARD_WIDTH_IN = 3.375
CARD_HEIGHT_IN = 2.125
COLUMNS = 2
ROWS = 4
CARDS_PER_PAGE = COLUMNS * ROWS

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
GUIDE_GREY = (200, 200, 200)


def _px(inches: float) -> int:
    return int(round(inches * CARD_DPI))


def _font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except IOError:
        return ImageFont.load_default()


def card_origin(index: int, mirrored: bool = False) -> tuple[int, int]:
    """Top-left pixel of the ``index``-th card slot on a page."""

    row, column = divmod(index, COLUMNS)
    if mirrored:
        column = COLUMNS - 1 - column
    margin_x = (_px(PAGE_WIDTH_IN) - COLUMNS * _px(CARD_WIDTH_IN)) // 2
    margin_y = (_px(PAGE_HEIGHT_IN) - ROWS * _px(CARD_HEIGHT_IN)) // 2
    return (
        margin_x + column * _px(CARD_WIDTH_IN),
        margin_y + row * _px(CARD_HEIGHT_IN),
    )


def qr_image(code: str, size: int) -> Image.Image:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(code)
    qr.make(fit=True)
    img = qr.make_image(fill_color=BLACK, back_color=WHITE).convert("RGB")
    return img.resize((size, size), Image.Resampling.NEAREST)


def _centered_text(draw: ImageDraw.ImageDraw, box, text: str, y: int, font) -> None:
    left, _, right, _ = box
    bbox = draw.textbbox((0, 0), text, font=font)
    width = bbox[2] - bbox[0]
    draw.text((left + (right - left - width) // 2, y), text, fill=BLACK, font=font)


def _blank_page() -> tuple[Image.Image, ImageDraw.ImageDraw]:
    page = Image.new("RGB", (_px(PAGE_WIDTH_IN), _px(PAGE_HEIGHT_IN)), WHITE)
    return page, ImageDraw.Draw(page)


def _card_box(x: int, y: int) -> tuple[int, int, int, int]:
    return (x, y, x + _px(CARD_WIDTH_IN), y + _px(CARD_HEIGHT_IN))


def _front_page(codes: list[str]) -> Image.Image:
    page, draw = _blank_page()
    code_font = _font(_px(0.14))
    qr_size = _px(CARD_HEIGHT_IN) - _px(0.45)
    for index, code in enumerate(codes):
        x, y = card_origin(index)
        box = _card_box(x, y)
        draw.rectangle(box, outline=GUIDE_GREY)
        qr_x = x + (_px(CARD_WIDTH_IN) - qr_size) // 2
        page.paste(qr_image(code, qr_size), (qr_x, y + _px(0.08)))
        _centered_text(draw, box, code, y + _px(0.08) + qr_size + _px(0.04), code_font)
    return page


def _back_page(codes: list[str]) -> Image.Image:
    page, draw = _blank_page()
    title_font = _font(_px(0.2))
    code_font = _font(_px(0.16))
    for index, code in enumerate(codes):
        x, y = card_origin(index, mirrored=True)
        box = _card_box(x, y)
        draw.rectangle(box, outline=GUIDE_GREY)
        _centered_text(draw, box, CARD_TITLE, y + _px(0.6), title_font)
        _centered_text(draw, box, f"Card {code}", y + _px(1.1), code_font)
    return page


def card_pages(codes: list[str]) -> list[Image.Image]:
    """Front and back page images, alternating, for every 8 codes."""

    pages = []
    for start in range(0, len(codes), CARDS_PER_PAGE):
        chunk = codes[start:start + CARDS_PER_PAGE]
        pages.append(_front_page(chunk))
        pages.append(_back_page(chunk))
    return pages


def render_cards_pdf(codes: list[str]) -> bytes:
    if not codes:
        raise ValueError("No codes to print")
    pages = card_pages(codes)
    buf = BytesIO()
    pages[0].save(
        buf,
        format="PDF",
        save_all=True,
        append_images=pages[1:],
        resolution=CARD_DPI,
    )
    return buf.getvalue()
