import base64
import logging
import math
from decimal import ROUND_HALF_UP, Context, Decimal
from functools import lru_cache
from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from ..config import (
    BADGE_FONT_PATH,
    BADGE_FONT_SIZE,
    BADGE_SIZE,
    DEFAULT_TIER_COLOR,
    TIER_COLORS,
)

LOGGER = logging.getLogger(__name__)

RATE_FALLBACK = "0"
# wide enough to hold any finite double to one decimal place
_TENTHS_CONTEXT = Context(prec=400)
TEXT_COLOR = "#000000"


def tier_color(tier: Optional[str]) -> str:
    return TIER_COLORS.get(tier, DEFAULT_TIER_COLOR)


def format_rate(rate_text: Optional[str]) -> str:
    """Render an admission rate as the short badge label.

    "100.00" -> "100", "0.00" -> "0", anything else one decimal with the
    percent sign dropped ("7.04%" -> "7.0"). Missing rates count as "0%".
    """
    text = (rate_text if rate_text is not None else "0%").strip().replace("%", "")
    if text == "100.00":
        return "100"
    if text == "0.00":
        return "0"
    try:
        value = float(text)
    except ValueError:
        return RATE_FALLBACK
    if not math.isfinite(value):
        return RATE_FALLBACK
    # ties round away from zero; the float is taken exactly, not its repr
    tenths = Decimal(value).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP, context=_TENTHS_CONTEXT
    )
    return f"{tenths:f}"


@lru_cache(maxsize=1)
def _font():
    if BADGE_FONT_PATH:
        try:
            return ImageFont.truetype(BADGE_FONT_PATH, BADGE_FONT_SIZE)
        except OSError as exc:
            LOGGER.warning("Badge font %s unusable, using default: %s", BADGE_FONT_PATH, exc)
    return ImageFont.load_default(size=BADGE_FONT_SIZE)


@lru_cache(maxsize=256)
def render_badge_png(tier: Optional[str], rate_text: Optional[str]) -> bytes:
    size = BADGE_SIZE
    centre = size / 2
    radius = centre - 2
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse(
        (centre - radius, centre - radius, centre + radius, centre + radius),
        fill=tier_color(tier),
    )
    label = format_rate(rate_text)
    draw.text(
        (centre, centre),
        label,
        fill=TEXT_COLOR,
        font=_font(),
        anchor="mm",
    )
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_badge(tier: Optional[str], rate_text: Optional[str]) -> str:
    png = render_badge_png(tier, rate_text)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
