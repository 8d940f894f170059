"""
Ingest Worker - Async File & URL Ingestion
==========================================
QThread worker that reads dropped files, expands ZIP archives and fetches
image URLs off the GUI thread. The session itself is only updated by the
controller once the worker reports back.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from watermarkit.core.ingest import FileIngestor

logger = logging.getLogger(__name__)


class IngestWorker(QThread):
    """
    Worker thread for one ingestion batch.

    Signals:
        finished_ingest(list, list): accepted IncomingFiles and
            (name, message) pairs for rejected items
        error(str): the batch could not be processed at all
    """

    finished_ingest = pyqtSignal(object, object)
    error = pyqtSignal(str)

    def __init__(
            self,
            paths: Iterable[Path] = (),
            urls: Iterable[str] = (),
            ingestor: Optional[FileIngestor] = None,
            parent=None
    ):
        super().__init__(parent)
        self.paths = [Path(p) for p in paths]
        self.urls = list(urls)
        self.ingestor = ingestor or FileIngestor()

    def run(self):
        try:
            files = self.ingestor.ingest_paths(self.paths)
            files.extend(self.ingestor.ingest_urls(self.urls))
        except Exception as e:
            logger.exception("Critical ingestion error")
            self.error.emit(f"Failed to add files: {e}")
            return

        logger.info("Ingested %d file(s), %d skipped", len(files), len(self.ingestor.errors))
        self.finished_ingest.emit(files, list(self.ingestor.errors))
