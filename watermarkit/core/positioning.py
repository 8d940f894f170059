"""
Watermark Positioning
=====================
Pure placement math for the watermark overlay.

Technical Notes:
- The mark's long side is ``scale * min(canvas_w, canvas_h)``, so a given
  scale covers the same relative footprint on a 600px preview and a 6000px
  original.
- Named corners keep a padding margin of max(20px, 2.5% of the short side).
- Custom points describe the *center* of the mark in normalized canvas
  coordinates.
- Every result is clamped so the mark never leaves the canvas.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from watermarkit.config import PADDING_MIN_PX, PADDING_RATIO


class Anchor(str, Enum):
    """Named watermark placement rule."""

    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"

    @classmethod
    def parse(cls, value: Union[str, "Anchor"]) -> "Anchor":
        """
        Parse an anchor from loose user input.

        Accepts "bottom-right", "bottom_right" and "Bottom Right" alike.

        Raises:
            ValueError: If the value names no known anchor.
        """
        if isinstance(value, Anchor):
            return value
        normalized = "-".join(str(value).strip().lower().replace("_", " ").replace("-", " ").split())
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown anchor: {value!r}") from None

    @property
    def is_corner(self) -> bool:
        return self is not Anchor.CENTER


CORNERS = (Anchor.TOP_LEFT, Anchor.TOP_RIGHT, Anchor.BOTTOM_LEFT, Anchor.BOTTOM_RIGHT)


@dataclass(frozen=True)
class CustomPoint:
    """Normalized (0..1) center of the mark, clamped on construction."""
    x: float
    y: float

    def __post_init__(self):
        object.__setattr__(self, "x", _clamp(float(self.x), 0.0, 1.0))
        object.__setattr__(self, "y", _clamp(float(self.y), 0.0, 1.0))


Placement = Union[Anchor, CustomPoint]


@dataclass(frozen=True)
class PlacementSettings:
    """
    Global placement settings shared by preview and export.

    Values are clamped on construction: opacity to [0, 1], scale to
    (0, 1]. Compliance rules are enforced by the session, which is the
    only place settings are replaced.
    """
    opacity: float = 0.75
    scale: float = 0.5
    anchor: Anchor = Anchor.CENTER
    compliance: bool = False

    MIN_SCALE = 0.01

    def __post_init__(self):
        object.__setattr__(self, "opacity", _clamp(float(self.opacity), 0.0, 1.0))
        object.__setattr__(self, "scale", _clamp(float(self.scale), self.MIN_SCALE, 1.0))
        object.__setattr__(self, "anchor", Anchor.parse(self.anchor))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_padding(canvas_w: int, canvas_h: int) -> int:
    """Margin between a corner-anchored mark and the canvas edges."""
    return max(PADDING_MIN_PX, round(PADDING_RATIO * min(canvas_w, canvas_h)))


def compute_mark_size(
        canvas_w: int,
        canvas_h: int,
        mark_w: int,
        mark_h: int,
        scale: float
) -> Tuple[int, int]:
    """
    Resolve the rendered watermark size for a canvas.

    Args:
        canvas_w: Canvas width in pixels.
        canvas_h: Canvas height in pixels.
        mark_w: Natural watermark width.
        mark_h: Natural watermark height.
        scale: Fraction (0, 1] of the shorter canvas side.

    Returns:
        (width, height) of the mark, each at least 1px.
    """
    long_side = max(1, round(scale * min(canvas_w, canvas_h)))
    aspect = mark_w / mark_h if mark_h else 1.0

    if aspect >= 1:
        width = long_side
        height = max(1, round(long_side / aspect))
    else:
        height = long_side
        width = max(1, round(long_side * aspect))

    return width, height


def compute_position(
        canvas_w: int,
        canvas_h: int,
        mark_w: int,
        mark_h: int,
        placement: Placement
) -> Tuple[int, int]:
    """
    Compute the top-left corner of the mark on the canvas.

    Args:
        canvas_w: Canvas width in pixels.
        canvas_h: Canvas height in pixels.
        mark_w: Rendered mark width.
        mark_h: Rendered mark height.
        placement: Named anchor or a CustomPoint.

    Returns:
        (x, y) clamped to [0, canvas - mark] on each axis.
    """
    if isinstance(placement, CustomPoint):
        x = placement.x * canvas_w - mark_w / 2
        y = placement.y * canvas_h - mark_h / 2
    else:
        anchor = Anchor.parse(placement)
        padding = compute_padding(canvas_w, canvas_h)

        if anchor is Anchor.CENTER:
            x = (canvas_w - mark_w) / 2
            y = (canvas_h - mark_h) / 2
        else:
            left = anchor in (Anchor.TOP_LEFT, Anchor.BOTTOM_LEFT)
            top = anchor in (Anchor.TOP_LEFT, Anchor.TOP_RIGHT)
            x = padding if left else canvas_w - mark_w - padding
            y = padding if top else canvas_h - mark_h - padding

    max_x = max(0, canvas_w - mark_w)
    max_y = max(0, canvas_h - mark_h)
    return int(_clamp(round(x), 0, max_x)), int(_clamp(round(y), 0, max_y))


def nearest_corner(point: CustomPoint) -> Anchor:
    """Snap a free placement point to the closest named corner."""
    if point.y < 0.5:
        return Anchor.TOP_LEFT if point.x < 0.5 else Anchor.TOP_RIGHT
    return Anchor.BOTTOM_LEFT if point.x < 0.5 else Anchor.BOTTOM_RIGHT
