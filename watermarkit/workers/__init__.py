"""
Workers Module - Async Thread Management
========================================
QThread workers that keep the UI responsive while ingestion, previews and
exports run.

Components:
- PreviewManager: debounced, token-guarded preview generation
- PreviewWorker: one preview job over a session snapshot
- ExportWorker: full-resolution batch export to a ZIP archive
- IngestWorker: file, archive and URL ingestion
"""

from .export_worker import ExportWorker, archive_filename
from .ingest_worker import IngestWorker
from .preview_worker import (
    PreviewDebouncer, PreviewManager, PreviewWorker, pil_image_to_qpixmap
)

__all__ = [
    # Export
    "ExportWorker",
    "archive_filename",
    # Ingest
    "IngestWorker",
    # Preview
    "PreviewWorker",
    "PreviewDebouncer",
    "PreviewManager",
    "pil_image_to_qpixmap",
]
