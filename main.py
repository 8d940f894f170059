"""
Watermark-It - Main Entry Point
===============================
A desktop application for batch logo watermarking.

Usage:
    python main.py

Architecture:
    - Model: watermarkit/core/ (placement math, compositing, session state)
    - Workers: watermarkit/workers/ (ingestion, debounced preview, export threads)
    - View: watermarkit/ui/ (PyQt6 interface)
    - Controller: This file (signal/slot connections)

Features:
    - Drag-and-drop images, ZIP archives and image URLs
    - Live preview with debounce and stale-job discarding
    - Click on the preview to place the watermark per image
    - Compliance mode (approved logos only, no center placement)
    - One-click export to a ZIP of watermarked JPEGs
"""

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6.QtWidgets import QApplication, QFileDialog

from watermarkit import __version__
from watermarkit.config import APP_NAME, LOG_LEVEL_ENV_VAR, AppConfig, load_config
from watermarkit.core import (
    Anchor, CatalogEntry, SessionChange, SessionState,
    WatermarkHandle, WatermarkLoadError, load_catalog
)
from watermarkit.core.watermark import default_entry
from watermarkit.ui import MainWindow
from watermarkit.workers import (
    ExportWorker, IngestWorker, PreviewManager, pil_image_to_qpixmap
)

logger = logging.getLogger(__name__)


class WatermarkController:
    """
    Controller class that connects UI signals to the session and workers.

    Responsibilities:
    - Translate user input into SessionState operations
    - Mirror session state back into the widgets
    - Run ingestion and exports on worker threads and report the outcome
    """

    def __init__(self, window: MainWindow, config: AppConfig):
        self.window = window
        self.config = config
        self.session = SessionState(config)
        self.previews = PreviewManager(
            self.session,
            debounce_ms=config.debounce_ms,
            max_size=config.preview_max_size
        )

        # Worker references (to prevent garbage collection)
        self._export_worker: Optional[ExportWorker] = None
        self._ingest_workers: List[IngestWorker] = []

        self._connect_signals()
        self._load_catalog()
        self._sync_controls()

    def _connect_signals(self):
        """Connect UI signals to controller slots."""
        w = self.window

        w.image_list.files_dropped.connect(self._on_files_dropped)
        w.image_list.remove_requested.connect(self._on_remove_requested)
        w.image_list.clear_requested.connect(self.session.clear)
        w.image_list.current_changed.connect(self._on_list_selection)
        w.btn_add_urls.clicked.connect(self._on_add_urls)

        w.watermark_combo.currentIndexChanged.connect(self._on_watermark_selected)
        w.btn_custom_watermark.clicked.connect(self._on_custom_watermark)
        w.opacity_slider.valueChanged.connect(
            lambda v: self.session.update_settings(opacity=v / 100)
        )
        w.size_slider.valueChanged.connect(
            lambda v: self.session.update_settings(scale=v / 100)
        )
        w.anchor_combo.currentIndexChanged.connect(self._on_anchor_selected)
        w.compliance_check.toggled.connect(self.session.set_compliance)
        w.btn_reset_placement.clicked.connect(self._on_reset_placement)

        w.preview.point_picked.connect(self._on_point_picked)
        w.btn_prev.clicked.connect(lambda: self.previews.navigate(-1))
        w.btn_next.clicked.connect(lambda: self.previews.navigate(1))
        w.btn_refresh.clicked.connect(self.session.request_refresh)
        w.btn_export.clicked.connect(self._on_export_requested)

        self.previews.preview_started.connect(w.preview.set_loading)
        self.previews.previews_updated.connect(lambda _: self._show_current_preview())
        self.previews.navigation_changed.connect(self._on_navigation_changed)
        self.previews.preview_error.connect(w.preview.set_error)
        self.previews.preview_warning.connect(lambda msg: w.show_message(msg, 8000))

        self.session.subscribe(self._on_session_changed)

    # ===== Session mirroring =====

    def _load_catalog(self):
        entries = load_catalog(self.config.manifest_path)
        self.session.set_catalog(entries)
        entry = default_entry(self.session.available_watermarks())
        if entry is not None:
            self.session.select_watermark(self.session.handle_for(entry))

    def _sync_controls(self):
        settings = self.session.settings
        watermark = self.session.watermark
        self.window.set_watermarks(
            self.session.available_watermarks(),
            watermark.name if watermark else None
        )
        self.window.set_placement_controls(
            settings.opacity, settings.scale, settings.anchor, settings.compliance
        )

    def _on_session_changed(self, change: SessionChange, identifier: Optional[str]):
        if change in (SessionChange.IMAGES_ADDED, SessionChange.IMAGE_REMOVED,
                      SessionChange.IMAGES_CLEARED, SessionChange.CUSTOM_PLACEMENT):
            self.window.image_list.set_images(self.session.images)
        if change is SessionChange.IMAGES_CLEARED or self.session.image_count == 0:
            self.window.preview.clear()
        if change in (SessionChange.SETTINGS, SessionChange.WATERMARK,
                      SessionChange.COMPLIANCE, SessionChange.CATALOG):
            self._sync_controls()

    # ===== Ingestion =====

    def _start_ingest(self, paths=(), urls=()):
        worker = IngestWorker(paths=paths, urls=urls)
        worker.finished_ingest.connect(
            lambda files, errors: self._on_ingest_finished(worker, files, errors)
        )
        worker.error.connect(lambda message: self._on_ingest_error(worker, message))
        self._ingest_workers.append(worker)

        self.window.show_message("Adding files...")
        worker.start()

    def _on_ingest_finished(self, worker: IngestWorker, files: list, errors: list):
        added = self.session.add_images(files)
        if added:
            self.window.show_message(f"{len(added)} file(s) ready for processing")
        if errors:
            details = "\n".join(f"{name}: {message}" for name, message in errors)
            self.window.show_warning("Some files were skipped", details)
        if worker.urls and files:
            self.window.url_input.clear()
        self._release_ingest_worker(worker)

    def _on_ingest_error(self, worker: IngestWorker, error_message: str):
        self.window.show_error("Upload Failed", error_message)
        self._release_ingest_worker(worker)

    def _release_ingest_worker(self, worker: IngestWorker):
        if worker in self._ingest_workers:
            self._ingest_workers.remove(worker)
            worker.wait()
            worker.deleteLater()

    def _on_files_dropped(self, paths: List[Path]):
        self._start_ingest(paths=paths)

    def _on_add_urls(self):
        urls = self.window.url_input.toPlainText().splitlines()
        if not any(u.strip() for u in urls):
            self.window.show_message("Please enter at least one image URL")
            return
        self._start_ingest(urls=urls)

    def _on_remove_requested(self, identifiers: List[str]):
        for identifier in identifiers:
            self.session.remove_image(identifier)

    # ===== Watermark & placement =====

    def _on_watermark_selected(self, index: int):
        entry = self.window.watermark_combo.itemData(index)
        if isinstance(entry, CatalogEntry):
            self.session.select_watermark(self.session.handle_for(entry))

    def _on_custom_watermark(self):
        path, _ = QFileDialog.getOpenFileName(
            self.window, "Select watermark", "", "Images (*.png *.jpg *.jpeg *.webp)"
        )
        if not path:
            return
        try:
            handle = WatermarkHandle(Path(path).name, Path(path).read_bytes()).load()
        except (OSError, WatermarkLoadError) as e:
            logger.warning("Custom watermark upload failed: %s", e)
            self.window.show_error("Upload Failed", f"Could not load custom watermark: {e}")
            return

        self.session.select_watermark(handle)
        if self.session.watermark is not handle:
            self.window.show_message("Custom watermarks are not allowed in compliance mode")
        else:
            self.window.show_message("Custom watermark applied")

    def _on_anchor_selected(self, index: int):
        value = self.window.anchor_combo.itemData(index)
        if value:
            self.session.update_settings(anchor=Anchor.parse(value))

    def _current_identifier(self) -> Optional[str]:
        preview = self.previews.current_preview()
        return preview.identifier if preview else None

    def _on_point_picked(self, x: float, y: float):
        identifier = self._current_identifier()
        if identifier is not None:
            self.session.set_custom_placement(identifier, (x, y))

    def _on_reset_placement(self):
        identifier = self._current_identifier()
        if identifier is not None:
            self.session.clear_custom_placement(identifier)

    # ===== Preview display =====

    def _show_current_preview(self):
        preview = self.previews.current_preview()
        if preview is None:
            self.window.preview.clear()
            return
        self.window.preview.set_preview(pil_image_to_qpixmap(preview.surface))

    def _on_navigation_changed(self, index: int, total: int):
        self.window.set_navigation(index, total)
        self._show_current_preview()

    def _on_list_selection(self, identifier: str):
        for preview in self.previews.previews:
            if preview.identifier == identifier:
                self.previews.set_current_index(preview.index)
                return

    # ===== Export =====

    def _on_export_requested(self):
        if self.session.image_count == 0:
            self.window.show_message("Please upload images first")
            return

        output_dir = QFileDialog.getExistingDirectory(
            self.window, "Save ZIP to", self.config.output_dir
        )
        if not output_dir:
            return

        self._export_worker = ExportWorker(
            self.session.snapshot(),
            Path(output_dir),
            quality=self.config.export_quality
        )
        self._export_worker.progress.connect(self._on_export_progress)
        self._export_worker.finished_export.connect(self._on_export_finished)
        self._export_worker.error.connect(self._on_export_error)

        self.window.set_exporting(True)
        self.window.show_message("Processing images...")
        self._export_worker.start()

    def _on_export_progress(self, current: int, total: int, identifier: str):
        self.window.set_export_progress(current, total)
        self.window.show_message(f"Processing: {identifier} ({current}/{total})")

    def _on_export_finished(self, result, archive_path: str):
        self.window.set_exporting(False)
        self.window.show_message(
            f"{len(result.entries)} images processed successfully - {archive_path}", 10000
        )
        if result.warnings:
            self.window.show_warning("Processing Complete", "\n".join(result.warnings))
        if result.failures:
            details = "\n".join(f"{name}: {message}" for name, message in result.failures)
            self.window.show_warning(
                "Processing Complete",
                f"{len(result.failures)} image(s) could not be processed:\n{details}"
            )
        self._release_export_worker()

    def _on_export_error(self, error_message: str):
        self.window.set_exporting(False)
        self.window.show_error("Processing Error", error_message)
        self._release_export_worker()

    def _release_export_worker(self):
        if self._export_worker:
            self._export_worker.wait()
            self._export_worker.deleteLater()
            self._export_worker = None

    def shutdown(self):
        self.previews.shutdown()
        for worker in list(self._ingest_workers):
            worker.wait()
        if self._export_worker:
            self._export_worker.cancel()
            self._export_worker.wait()


def main():
    """Application entry point."""
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(__version__)

    config = load_config()
    logger.info("Starting %s %s", APP_NAME, __version__)

    window = MainWindow()
    controller = WatermarkController(window, config)
    app.aboutToQuit.connect(controller.shutdown)

    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
