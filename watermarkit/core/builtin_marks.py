"""
Built-in Watermarks
===================
The default catalog ships no image files. Its entries use ``builtin:``
sources (e.g. ``builtin:square-white``) that are drawn here with Pillow,
so every catalog watermark, including the compliance-approved ones, can be
loaded on a fresh install.

Styles:
- rounded: square badge with rounded corners
- square: square badge with sharp corners
- horizontal: wide banner for landscape-friendly marks
"""

import logging
from pathlib import Path
from typing import Dict, Tuple

from PIL import Image, ImageDraw, ImageFont

from watermarkit.config import APP_NAME

logger = logging.getLogger(__name__)

BUILTIN_SCHEME = "builtin:"

STYLE_SIZES: Dict[str, Tuple[int, int]] = {
    "rounded": (400, 400),
    "square": (400, 400),
    "horizontal": (800, 240),
}

TONES: Dict[str, Tuple[int, int, int]] = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
}

_FONT_CANDIDATES = (
    "DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "arialbd.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
)

_font_cache: Dict[int, ImageFont.ImageFont] = {}


def is_builtin(source) -> bool:
    return isinstance(source, (str, Path)) and str(source).startswith(BUILTIN_SCHEME)


def parse_builtin(source: str) -> Tuple[str, str]:
    """
    Split ``builtin:<style>-<tone>`` into (style, tone).

    Raises:
        ValueError: If the style or tone is unknown.
    """
    name = str(source)[len(BUILTIN_SCHEME):]
    style, _, tone = name.partition("-")
    if style not in STYLE_SIZES or tone not in TONES:
        raise ValueError(f"Unknown built-in watermark: {source!r}")
    return style, tone


def _get_font(size: int) -> ImageFont.ImageFont:
    if size not in _font_cache:
        for candidate in _FONT_CANDIDATES:
            try:
                _font_cache[size] = ImageFont.truetype(candidate, size)
                break
            except OSError:
                continue
        else:
            logger.debug("No TrueType font found, using Pillow default")
            _font_cache[size] = ImageFont.load_default()
    return _font_cache[size]


def _draw_label(canvas: Image.Image, box: Tuple[int, int, int, int], text: str, color):
    """Fit ``text`` inside ``box`` by rendering once and scaling the glyph mask."""
    font = _get_font(64)
    scratch = ImageDraw.Draw(Image.new("L", (1, 1)))
    left, top, right, bottom = scratch.textbbox((0, 0), text, font=font)
    mask = Image.new("L", (max(1, right - left), max(1, bottom - top)), 0)
    ImageDraw.Draw(mask).text((-left, -top), text, font=font, fill=255)

    box_w, box_h = box[2] - box[0], box[3] - box[1]
    factor = min(box_w / mask.width, box_h / mask.height)
    size = (max(1, round(mask.width * factor)), max(1, round(mask.height * factor)))
    mask = mask.resize(size, Image.Resampling.LANCZOS)

    x = box[0] + (box_w - size[0]) // 2
    y = box[1] + (box_h - size[1]) // 2
    canvas.paste(Image.new("RGBA", size, color + (255,)), (x, y), mask)


def render_builtin_mark(source: str, text: str = APP_NAME) -> Image.Image:
    """
    Draw a built-in watermark.

    Args:
        source: ``builtin:<style>-<tone>`` identifier.
        text: Label drawn inside the badge.

    Returns:
        RGBA image with a transparent background.

    Raises:
        ValueError: If the identifier is unknown.
    """
    style, tone = parse_builtin(source)
    width, height = STYLE_SIZES[style]
    color = TONES[tone]

    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)

    stroke = max(4, min(width, height) // 20)
    radius = min(width, height) // 5 if style == "rounded" else 0
    inset = stroke // 2
    draw.rounded_rectangle(
        (inset, inset, width - 1 - inset, height - 1 - inset),
        radius=radius,
        outline=color + (255,),
        width=stroke
    )

    margin = stroke * 3
    _draw_label(canvas, (margin, margin, width - margin, height - margin), text, color)
    return canvas
