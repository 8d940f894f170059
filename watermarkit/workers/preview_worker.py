"""
Preview Worker - Debounced Batch Preview with Job Tokens
========================================================

THE PROBLEM:
- Every slider tick, anchor change or drag changes the watermark
- Recompositing the whole batch per event means dozens of redundant runs
- A slow run finishing after a newer one would show outdated previews

THE SOLUTION:
- All triggers funnel into one PreviewDebouncer; only the last request
  inside the window starts a run
- Each run gets a job token from the session. Any session mutation bumps
  the token, so a run still in flight is stale the moment inputs change
- Results are committed on the GUI thread and only if the run's token is
  still the latest one. Stale workers are never terminated, their results
  are simply dropped

PROXY SIZE:
Previews are rendered at most PREVIEW_MAX_SIZE px on the long edge. Export
re-renders at full resolution (see export_worker).
"""

import logging
from typing import Dict, List, Optional, Set

from PIL import Image
from PyQt6.QtCore import QObject, QThread, QTimer, pyqtSignal
from PyQt6.QtGui import QImage, QPixmap

from watermarkit.config import PREVIEW_DEBOUNCE_MS, PREVIEW_MAX_SIZE
from watermarkit.core.pipeline import PreviewResult, RenderedPreview, generate_previews
from watermarkit.core.session import SessionChange, SessionSnapshot, SessionState

logger = logging.getLogger(__name__)

# Changes that leave the other images' surfaces valid
_PARTIAL_CHANGES = {
    SessionChange.IMAGES_ADDED,
    SessionChange.IMAGE_REMOVED,
    SessionChange.CUSTOM_PLACEMENT,
}


def pil_image_to_qpixmap(pil_image: Image.Image) -> QPixmap:
    """
    Convert PIL Image to QPixmap.

    The QImage is copied so it owns its buffer independently of the
    PIL bytes object.
    """
    if pil_image.mode != "RGBA":
        pil_image = pil_image.convert("RGBA")

    data = pil_image.tobytes("raw", "RGBA")
    qimage = QImage(
        data,
        pil_image.width,
        pil_image.height,
        pil_image.width * 4,
        QImage.Format.Format_RGBA8888
    )
    return QPixmap.fromImage(qimage.copy())


# =============================================================================
# PREVIEW WORKER
# =============================================================================

class PreviewWorker(QThread):
    """
    Runs one preview job over a frozen SessionSnapshot.

    SIGNALS:
    - previews_ready(PreviewResult): run finished with a current token
    - preview_error(int, str): (token, message) on unexpected failure
    - progress(int, int, str): (current, total, identifier)
    """

    previews_ready = pyqtSignal(object)
    preview_error = pyqtSignal(int, str)
    progress = pyqtSignal(int, int, str)

    def __init__(
            self,
            snapshot: SessionSnapshot,
            token: int,
            session: SessionState,
            max_size: int = PREVIEW_MAX_SIZE,
            reuse: Optional[Dict[str, Image.Image]] = None,
            parent=None
    ):
        super().__init__(parent)
        self.snapshot = snapshot
        self.token = token
        self._session = session
        self._max_size = max_size
        self._reuse = reuse or {}

    def run(self):
        try:
            result = generate_previews(
                self.snapshot,
                self.token,
                self._session.is_current,
                max_size=self._max_size,
                reuse=self._reuse,
                progress=self.progress.emit
            )
        except Exception as e:
            if self._session.is_current(self.token):
                logger.exception("Preview job %d failed", self.token)
                self.preview_error.emit(self.token, f"Could not generate preview: {e}")
            return

        if result is not None:
            self.previews_ready.emit(result)


# =============================================================================
# DEBOUNCER
# =============================================================================

class PreviewDebouncer(QObject):
    """
    Coalesces rapid preview triggers into one.

    Each request restarts a single-shot timer; ``triggered`` fires once the
    requests have been quiet for ``delay_ms``.

    TUNING:
    - 50ms: very responsive, more runs while dragging
    - 80ms: balanced (default)
    - 120ms: fewer runs, slightly laggy feel
    """

    triggered = pyqtSignal()

    def __init__(self, delay_ms: int = PREVIEW_DEBOUNCE_MS, parent=None):
        super().__init__(parent)
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(self.triggered.emit)

    @property
    def delay_ms(self) -> int:
        return self._timer.interval()

    def is_pending(self) -> bool:
        return self._timer.isActive()

    def request(self):
        """Restart the debounce window."""
        self._timer.start()

    def cancel(self):
        self._timer.stop()


# =============================================================================
# PREVIEW MANAGER
# =============================================================================

class PreviewManager(QObject):
    """
    Owns the visible preview set for a session.

    RESPONSIBILITIES:
    1. Listen to session changes and debounce them
    2. Issue a job token and start a PreviewWorker per debounced trigger
    3. Commit only results whose token is still current
    4. Track navigation (current index / total) over the committed previews

    USAGE:
        manager = PreviewManager(session)
        manager.previews_updated.connect(on_previews)
        session.update_settings(opacity=0.4)   # triggers a debounced run
    """

    previews_updated = pyqtSignal(list)          # List[RenderedPreview]
    preview_started = pyqtSignal()
    preview_error = pyqtSignal(str)
    preview_warning = pyqtSignal(str)
    navigation_changed = pyqtSignal(int, int)    # current index, total

    def __init__(
            self,
            session: SessionState,
            debounce_ms: int = PREVIEW_DEBOUNCE_MS,
            max_size: int = PREVIEW_MAX_SIZE,
            parent=None
    ):
        super().__init__(parent)
        self._session = session
        self._max_size = max_size

        self._debouncer = PreviewDebouncer(debounce_ms, self)
        self._debouncer.triggered.connect(self._start_preview_worker)

        self._workers: Set[PreviewWorker] = set()
        self._previews: List[RenderedPreview] = []
        self._current_index = 0

        # Pending invalidation since the last commit
        self._full_refresh = True
        self._dirty: Set[str] = set()

        self.jobs_started = 0
        self.jobs_committed = 0

        session.subscribe(self._on_session_changed)

    # ===== Triggers =====

    def _on_session_changed(self, change: SessionChange, identifier: Optional[str]):
        if change is SessionChange.CATALOG:
            return

        if change in _PARTIAL_CHANGES:
            if identifier is not None:
                self._dirty.add(identifier)
        else:
            self._full_refresh = True

        if self._session.image_count == 0:
            self._debouncer.cancel()
            self._commit([])
            return

        self._debouncer.request()

    def request_preview(self, full: bool = True):
        """Explicit regeneration request (debounced like every trigger)."""
        if full:
            self._full_refresh = True
        self._debouncer.request()

    def cancel(self):
        """Drop any pending trigger and make in-flight runs stale."""
        self._debouncer.cancel()
        self._session.issue_job_token()

    def shutdown(self, timeout_ms: int = 2000):
        """Cancel and wait for running workers (call on window close)."""
        self.cancel()
        self._session.unsubscribe(self._on_session_changed)
        for worker in list(self._workers):
            worker.wait(timeout_ms)

    @property
    def is_busy(self) -> bool:
        return self._debouncer.is_pending() or any(w.isRunning() for w in self._workers)

    # ===== Worker lifecycle =====

    def _reusable_surfaces(self) -> Dict[str, Image.Image]:
        if self._full_refresh:
            return {}
        return {
            preview.identifier: preview.surface
            for preview in self._previews
            if preview.identifier not in self._dirty
        }

    def _start_preview_worker(self):
        if self._session.image_count == 0:
            return

        token = self._session.issue_job_token()
        worker = PreviewWorker(
            self._session.snapshot(),
            token,
            self._session,
            max_size=self._max_size,
            reuse=self._reusable_surfaces()
        )
        worker.previews_ready.connect(self._on_previews_ready)
        worker.preview_error.connect(self._on_preview_error)
        worker.finished.connect(self._on_worker_finished)
        self._workers.add(worker)

        self.jobs_started += 1
        logger.debug("Starting preview job %d (%d images)", token, len(worker.snapshot.images))
        self.preview_started.emit()
        worker.start()

    def _on_previews_ready(self, result: PreviewResult):
        if not self._session.is_current(result.token):
            logger.debug("Discarding stale preview job %d", result.token)
            return

        self.jobs_committed += 1
        for warning in result.warnings:
            self.preview_warning.emit(warning)
        if result.skipped:
            self.preview_warning.emit(
                f"{len(result.skipped)} image(s) could not be decoded: {', '.join(result.skipped)}"
            )
        self._commit(result.previews)

    def _on_preview_error(self, token: int, message: str):
        if self._session.is_current(token):
            self.preview_error.emit(message)

    def _on_worker_finished(self):
        worker = self.sender()
        if worker in self._workers:
            self._workers.discard(worker)
            worker.deleteLater()

    def _commit(self, previews: List[RenderedPreview]):
        self._previews = list(previews)
        self._full_refresh = False
        self._dirty.clear()
        if self._current_index >= len(self._previews):
            self._current_index = max(0, len(self._previews) - 1)
        self.previews_updated.emit(list(self._previews))
        self.navigation_changed.emit(self._current_index, len(self._previews))

    # ===== Navigation =====

    @property
    def previews(self) -> List[RenderedPreview]:
        return list(self._previews)

    @property
    def total(self) -> int:
        return len(self._previews)

    @property
    def current_index(self) -> int:
        return self._current_index

    def current_preview(self) -> Optional[RenderedPreview]:
        if not self._previews:
            return None
        return self._previews[self._current_index]

    def navigate(self, delta: int) -> Optional[RenderedPreview]:
        """Move through previews, wrapping at both ends."""
        if not self._previews:
            return None
        self._current_index = (self._current_index + delta) % len(self._previews)
        self.navigation_changed.emit(self._current_index, len(self._previews))
        return self.current_preview()

    def set_current_index(self, index: int):
        if not self._previews:
            return
        self._current_index = max(0, min(index, len(self._previews) - 1))
        self.navigation_changed.emit(self._current_index, len(self._previews))
