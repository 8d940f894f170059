"""
Watermark Compositor
====================
Draws a base image onto a fresh RGBA surface and overlays the watermark
using Pillow.

Technical Notes:
- A new surface is allocated for every call; surfaces are never reused, so
  no content from a previous image can bleed into the next one
- Opacity is applied to a per-call copy of the mark's alpha channel, the
  watermark handle itself is never modified
- JPEG output is flattened over white since JPEG has no alpha channel
"""

import io
import logging
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageOps

from watermarkit.config import EXPORT_QUALITY, PREVIEW_MAX_SIZE
from watermarkit.core.errors import DecodeError, WatermarkNotReadyError
from watermarkit.core.positioning import (
    Placement, PlacementSettings, compute_mark_size, compute_position
)
from watermarkit.core.watermark import LoadState, WatermarkHandle

logger = logging.getLogger(__name__)


def _apply_exif_orientation(image: Image.Image) -> Image.Image:
    """
    Apply EXIF orientation to ensure correct image display.

    Phone cameras often save images with EXIF rotation metadata
    instead of actually rotating the pixels. All eight orientations are
    handled, including the mirrored ones (2, 4, 5, 7).
    """
    try:
        return ImageOps.exif_transpose(image)
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.debug("Ignoring unreadable EXIF orientation: %s", e)
        return image


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw image bytes into a fully loaded, upright Pillow image.

    Raises:
        DecodeError: If Pillow cannot identify or decode the bytes.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(str(e)) from e

    return _apply_exif_orientation(image)


def preview_size(width: int, height: int, max_size: int = PREVIEW_MAX_SIZE) -> Tuple[int, int]:
    """
    Bounded preview dimensions: long edge <= max_size, aspect preserved.

    Images already within the cap keep their size (never upscaled).
    """
    longest = max(width, height)
    if longest <= max_size:
        return width, height

    factor = max_size / longest
    return max(1, round(width * factor)), max(1, round(height * factor))


def encode_jpeg(surface: Image.Image, quality: int = EXPORT_QUALITY) -> bytes:
    """Flatten an RGBA surface over white and encode it as JPEG bytes."""
    if surface.mode == "RGBA":
        flattened = Image.new("RGB", surface.size, (255, 255, 255))
        flattened.paste(surface, mask=surface.getchannel("A"))
    else:
        flattened = surface.convert("RGB")

    buffer = io.BytesIO()
    flattened.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class Compositor:
    """
    Composites one base image with the active watermark.

    The same instance serves preview (bounded size) and export (original
    size); only the target dimensions differ.
    """

    def __init__(self, resample: Image.Resampling = Image.Resampling.LANCZOS):
        self._resample = resample

    def composite(
            self,
            base: Image.Image,
            target_width: int,
            target_height: int,
            watermark: Optional[WatermarkHandle],
            settings: PlacementSettings,
            custom: Optional[Placement] = None
    ) -> Image.Image:
        """
        Render base + watermark onto a new surface.

        Args:
            base: Decoded base image.
            target_width: Surface width; the base is scaled to fill it.
            target_height: Surface height.
            watermark: Active watermark handle, or None for image-only.
            settings: Global opacity / scale / anchor.
            custom: Per-image override (CustomPoint or snapped corner).
                None uses settings.anchor.

        Returns:
            New RGBA image of size target_width x target_height.

        Raises:
            WatermarkNotReadyError: If the watermark has not finished
                decoding. A FAILED watermark yields an image-only surface.
        """
        surface = Image.new("RGBA", (target_width, target_height), (0, 0, 0, 0))

        layer = base if base.mode == "RGBA" else base.convert("RGBA")
        if layer.size != (target_width, target_height):
            layer = layer.resize((target_width, target_height), self._resample)
        surface.paste(layer, (0, 0))

        if watermark is None or watermark.state is LoadState.FAILED:
            return surface

        if not watermark.is_ready:
            raise WatermarkNotReadyError(
                f"Watermark {watermark.name!r} is {watermark.state.value}"
            )

        mark_w, mark_h = compute_mark_size(
            target_width, target_height,
            watermark.width, watermark.height,
            settings.scale
        )
        placement = custom if custom is not None else settings.anchor
        x, y = compute_position(target_width, target_height, mark_w, mark_h, placement)

        mark = self._prepare_mark(watermark.image, (mark_w, mark_h), settings.opacity)
        surface.alpha_composite(mark, dest=(x, y))

        return surface

    def _prepare_mark(
            self,
            image: Image.Image,
            size: Tuple[int, int],
            opacity: float
    ) -> Image.Image:
        """Resized copy of the mark with its alpha multiplied by opacity."""
        mark = image.resize(size, self._resample)
        if mark.mode != "RGBA":
            mark = mark.convert("RGBA")

        if opacity < 1.0:
            alpha = np.asarray(mark.getchannel("A"), dtype=np.float32) * opacity
            mark.putalpha(Image.fromarray(np.round(alpha).astype(np.uint8)))

        return mark
