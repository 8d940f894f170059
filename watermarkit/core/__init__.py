"""
Core Module - Pure Algorithm Logic
==================================
This module contains no UI dependencies.
Placement math, compositing, session state and the pipeline bodies live here.
"""

from .archive import ZipArchiveWriter
from .compositor import Compositor, decode_image, encode_jpeg, preview_size
from .errors import (
    DecodeError, ExportError, IngestError, WatermarkItError,
    WatermarkLoadError, WatermarkNotReadyError
)
from .ingest import FileIngestor, IncomingFile
from .pipeline import (
    ExportResult, PreviewResult, RenderedPreview, export_all, generate_previews
)
from .positioning import (
    Anchor, CustomPoint, PlacementSettings, compute_mark_size,
    compute_padding, compute_position, nearest_corner
)
from .session import SessionChange, SessionSnapshot, SessionState, UploadedImage
from .watermark import CatalogEntry, LoadState, WatermarkHandle, load_catalog

__all__ = [
    "Anchor",
    "CatalogEntry",
    "Compositor",
    "CustomPoint",
    "DecodeError",
    "ExportError",
    "ExportResult",
    "FileIngestor",
    "IncomingFile",
    "IngestError",
    "LoadState",
    "PlacementSettings",
    "PreviewResult",
    "RenderedPreview",
    "SessionChange",
    "SessionSnapshot",
    "SessionState",
    "UploadedImage",
    "WatermarkHandle",
    "WatermarkItError",
    "WatermarkLoadError",
    "WatermarkNotReadyError",
    "ZipArchiveWriter",
    "compute_mark_size",
    "compute_padding",
    "compute_position",
    "decode_image",
    "encode_jpeg",
    "export_all",
    "generate_previews",
    "load_catalog",
    "nearest_corner",
    "preview_size",
]
