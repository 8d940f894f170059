"""
Preview & Export Pipelines
==========================
Qt-free bodies of the preview and export runs. The QThread workers in
``watermarkit.workers`` call these with a SessionSnapshot.

Both pipelines:
- process images strictly in insertion order, one at a time, so only one
  decoded source is alive at once
- skip (and log) any image that fails to decode
- draw image-only when the watermark cannot be loaded, with a warning

Preview runs carry a job token and return None as soon as the token is
stale, so superseded runs never produce visible results.

Export runs decode at the original resolution and re-derive placement per
image from the snapshot; they never read cached previews.
"""

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Callable, Dict, List, Optional, Set, Tuple

from PIL import Image

from watermarkit.config import EXPORT_QUALITY, EXPORT_SUFFIX, PREVIEW_MAX_SIZE
from watermarkit.core.archive import ZipArchiveWriter
from watermarkit.core.compositor import Compositor, decode_image, encode_jpeg, preview_size
from watermarkit.core.errors import DecodeError, ExportError, WatermarkLoadError
from watermarkit.core.session import SessionSnapshot
from watermarkit.core.watermark import LoadState, WatermarkHandle

logger = logging.getLogger(__name__)

# (current, total, identifier)
ProgressCallback = Callable[[int, int, str], None]


@dataclass
class RenderedPreview:
    """One composited preview surface. Never mutated after creation."""
    surface: Image.Image
    identifier: str
    index: int


@dataclass
class PreviewResult:
    """Outcome of one preview run."""
    token: int
    previews: List[RenderedPreview] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ExportResult:
    """Outcome of a successful export."""
    archive: bytes
    entries: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def resolve_watermark(
        handle: Optional[WatermarkHandle],
        warnings: List[str]
) -> Optional[WatermarkHandle]:
    """
    Make sure the watermark is decoded before any composite uses it.

    An UNLOADED handle is loaded here; a handle another thread is loading
    blocks until that load finishes. A failed handle yields None and a
    warning, so the run continues image-only.
    """
    if handle is None:
        return None

    if handle.state is not LoadState.READY:
        try:
            handle.load()
        except WatermarkLoadError as e:
            warnings.append(f"Watermark not applied: {e}")
            return None

    return handle


def generate_previews(
        snapshot: SessionSnapshot,
        job_token: int,
        is_current: Callable[[int], bool],
        compositor: Optional[Compositor] = None,
        max_size: int = PREVIEW_MAX_SIZE,
        reuse: Optional[Dict[str, Image.Image]] = None,
        progress: Optional[ProgressCallback] = None
) -> Optional[PreviewResult]:
    """
    Render bounded-size previews for every image in the snapshot.

    Args:
        snapshot: Frozen session state for this run.
        job_token: Token issued for this run.
        is_current: Returns True while ``job_token`` is the latest token.
        compositor: Compositor to use (bilinear resampling by default).
        max_size: Long-edge cap for preview surfaces.
        reuse: identifier -> surface still valid from the previous run;
            those images are carried over without recompositing.
        progress: Optional per-image progress callback.

    Returns:
        PreviewResult, or None if the token went stale during the run.
    """
    if compositor is None:
        compositor = Compositor(resample=Image.Resampling.BILINEAR)

    result = PreviewResult(token=job_token)
    watermark = resolve_watermark(snapshot.watermark, result.warnings)
    total = len(snapshot.images)

    for position, entry in enumerate(snapshot.images):
        if not is_current(job_token):
            logger.debug("Preview job %d superseded at image %d", job_token, position)
            return None

        if progress is not None:
            progress(position + 1, total, entry.identifier)

        cached = reuse.get(entry.identifier) if reuse else None
        if cached is not None:
            result.previews.append(
                RenderedPreview(cached, entry.identifier, len(result.previews))
            )
            continue

        try:
            base = decode_image(entry.data)
        except DecodeError as e:
            logger.warning("Skipping %s in preview: %s", entry.identifier, e)
            result.skipped.append(entry.identifier)
            continue

        width, height = preview_size(base.width, base.height, max_size)
        surface = compositor.composite(
            base, width, height, watermark, snapshot.settings, entry.placement
        )
        base.close()

        result.previews.append(
            RenderedPreview(surface, entry.identifier, len(result.previews))
        )

    if not is_current(job_token):
        logger.debug("Preview job %d superseded before commit", job_token)
        return None

    return result


def output_name(identifier: str, used: Set[str]) -> str:
    """``{stem}-watermarked.jpg``, numbered if two sources share a stem."""
    stem = PurePath(identifier).stem or "image"
    name = f"{stem}{EXPORT_SUFFIX}"
    counter = 2
    while name in used:
        name = f"{stem}-{counter}{EXPORT_SUFFIX}"
        counter += 1
    used.add(name)
    return name


def export_all(
        snapshot: SessionSnapshot,
        writer=None,
        quality: int = EXPORT_QUALITY,
        compositor: Optional[Compositor] = None,
        progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[Callable[[], bool]] = None
) -> ExportResult:
    """
    Composite every image at full resolution and package the JPEGs.

    Args:
        snapshot: Frozen session state for this export.
        writer: Archive writer (``add`` / ``finalize``). Defaults to a new
            ZipArchiveWriter.
        quality: JPEG quality.
        compositor: Compositor to use (Lanczos resampling by default).
        progress: Optional per-image progress callback.
        is_cancelled: Optional cooperative cancellation check.

    Returns:
        ExportResult with the finalized archive bytes.

    Raises:
        ExportError: If the export was cancelled or no image succeeded.
    """
    writer = writer if writer is not None else ZipArchiveWriter()
    compositor = compositor or Compositor()

    warnings: List[str] = []
    watermark = resolve_watermark(snapshot.watermark, warnings)
    entries: List[str] = []
    failures: List[Tuple[str, str]] = []
    used_names: Set[str] = set()
    total = len(snapshot.images)

    for position, entry in enumerate(snapshot.images):
        if is_cancelled is not None and is_cancelled():
            raise ExportError("Export cancelled")

        if progress is not None:
            progress(position + 1, total, entry.identifier)

        try:
            base = decode_image(entry.data)
            surface = compositor.composite(
                base, base.width, base.height,
                watermark, snapshot.settings, entry.placement
            )
            base.close()
            data = encode_jpeg(surface, quality)
        except (DecodeError, OSError) as e:
            logger.warning("Failed to process %s: %s", entry.identifier, e)
            failures.append((entry.identifier, str(e)))
            continue

        name = output_name(entry.identifier, used_names)
        writer.add(name, data)
        entries.append(name)

    if not entries:
        raise ExportError("No images could be processed")

    archive = writer.finalize()
    logger.info("Exported %d image(s), %d failed", len(entries), len(failures))
    return ExportResult(archive=archive, entries=entries, failures=failures, warnings=warnings)
