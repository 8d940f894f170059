"""
Export Worker - Async Batch Export
==================================
QThread worker that renders every image at its original resolution and
writes one ZIP archive.

Workflow:
1. For each image in the snapshot, in order:
   a. Decode at full resolution
   b. Composite with the same watermark / placement logic as preview
   c. Encode JPEG and add to the archive
2. Emit progress signals during processing
3. Write the archive to <output_dir>/watermarked-images-<timestamp>.zip

Naming Convention:
- photo.png -> photo-watermarked.jpg
"""

import logging
import time
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from watermarkit.config import ARCHIVE_PREFIX, EXPORT_QUALITY
from watermarkit.core.archive import ZipArchiveWriter
from watermarkit.core.errors import ExportError
from watermarkit.core.pipeline import ExportResult, export_all
from watermarkit.core.session import SessionSnapshot

logger = logging.getLogger(__name__)


def archive_filename(timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{ARCHIVE_PREFIX}-{timestamp_ms}.zip"


class ExportWorker(QThread):
    """
    Worker thread for exporting the whole batch.

    Signals:
        progress(int, int, str): (current, total, identifier)
        finished_export(ExportResult, str): result and archive path
        error(str): export failed, no archive was written
    """

    progress = pyqtSignal(int, int, str)
    finished_export = pyqtSignal(object, str)
    error = pyqtSignal(str)

    def __init__(
            self,
            snapshot: SessionSnapshot,
            output_dir: Path,
            quality: int = EXPORT_QUALITY,
            parent=None
    ):
        super().__init__(parent)
        self.snapshot = snapshot
        self.output_dir = Path(output_dir)
        self.quality = quality
        self._is_cancelled = False

    def cancel(self):
        """Request cancellation; checked between images."""
        self._is_cancelled = True

    def run(self):
        if not self.snapshot.images:
            self.error.emit("No images to process")
            return

        try:
            result: ExportResult = export_all(
                self.snapshot,
                ZipArchiveWriter(),
                quality=self.quality,
                progress=self.progress.emit,
                is_cancelled=lambda: self._is_cancelled
            )

            self.output_dir.mkdir(parents=True, exist_ok=True)
            archive_path = self.output_dir / archive_filename()
            archive_path.write_bytes(result.archive)

        except ExportError as e:
            logger.warning("Export failed: %s", e)
            self.error.emit(str(e))
            return
        except Exception as e:
            logger.exception("Critical export error")
            self.error.emit(f"Failed to process images: {e}")
            return

        logger.info("Archive written to %s", archive_path)
        self.finished_export.emit(result, str(archive_path))
