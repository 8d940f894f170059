"""
Main Window
===========
Layout of the watermarking tool. Holds widgets only; all behaviour is wired
by WatermarkController in main.py.

┌──────────────┬───────────────────────────────┐
│ image list   │                               │
│ URL input    │          preview              │
│ watermark    │                               │
│ opacity/size │   ◀  1 / 3  ▶                 │
│ position     ├───────────────────────────────┤
│ compliance   │ [progress]   [Process & Save] │
└──────────────┴───────────────────────────────┘
"""

from typing import List, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QCheckBox, QComboBox, QFormLayout, QGroupBox, QHBoxLayout, QLabel,
    QMainWindow, QMessageBox, QPlainTextEdit, QProgressBar, QPushButton,
    QSlider, QStatusBar, QVBoxLayout, QWidget
)

from watermarkit.config import APP_NAME
from watermarkit.core.positioning import Anchor
from watermarkit.core.watermark import CatalogEntry
from .widgets import ImageListWidget, PreviewWidget

ANCHOR_LABELS = [
    ("Top Left", Anchor.TOP_LEFT),
    ("Top Right", Anchor.TOP_RIGHT),
    ("Bottom Left", Anchor.BOTTOM_LEFT),
    ("Bottom Right", Anchor.BOTTOM_RIGHT),
    ("Center", Anchor.CENTER),
]


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(self, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.setWindowTitle(APP_NAME)
        self.resize(1200, 800)
        self._setup_ui()

    def _setup_ui(self):
        central = QWidget()
        root = QHBoxLayout(central)
        root.setContentsMargins(12, 12, 12, 12)
        root.setSpacing(12)

        # ----- Left panel -----
        side = QVBoxLayout()
        side.setSpacing(10)

        self.image_list = ImageListWidget()
        side.addWidget(self.image_list, 1)

        url_box = QGroupBox("Add from URL")
        url_layout = QVBoxLayout(url_box)
        self.url_input = QPlainTextEdit()
        self.url_input.setPlaceholderText("One image URL per line")
        self.url_input.setMaximumHeight(70)
        url_layout.addWidget(self.url_input)
        self.btn_add_urls = QPushButton("Add URLs")
        url_layout.addWidget(self.btn_add_urls)
        side.addWidget(url_box)

        settings_box = QGroupBox("Watermark")
        form = QFormLayout(settings_box)

        self.watermark_combo = QComboBox()
        form.addRow("Logo", self.watermark_combo)

        self.btn_custom_watermark = QPushButton("Upload custom...")
        form.addRow("", self.btn_custom_watermark)

        self.opacity_slider = QSlider(Qt.Orientation.Horizontal)
        self.opacity_slider.setRange(0, 100)
        self.opacity_value = QLabel()
        form.addRow("Opacity", self._with_value(self.opacity_slider, self.opacity_value))

        self.size_slider = QSlider(Qt.Orientation.Horizontal)
        self.size_slider.setRange(1, 100)
        self.size_value = QLabel()
        form.addRow("Size", self._with_value(self.size_slider, self.size_value))

        self.anchor_combo = QComboBox()
        for label, anchor in ANCHOR_LABELS:
            self.anchor_combo.addItem(label, anchor.value)
        form.addRow("Position", self.anchor_combo)

        self.btn_reset_placement = QPushButton("Reset custom position")
        form.addRow("", self.btn_reset_placement)

        self.compliance_check = QCheckBox("Compliance mode")
        self.compliance_check.setToolTip(
            "Restricts logos to the approved set and forbids center placement"
        )
        form.addRow("", self.compliance_check)

        side.addWidget(settings_box)

        side_widget = QWidget()
        side_widget.setLayout(side)
        side_widget.setFixedWidth(340)
        root.addWidget(side_widget)

        # ----- Preview panel -----
        main = QVBoxLayout()
        self.preview = PreviewWidget()
        main.addWidget(self.preview, 1)

        nav = QHBoxLayout()
        nav.addStretch(1)
        self.btn_prev = QPushButton("◀")
        self.btn_prev.setFixedWidth(40)
        nav.addWidget(self.btn_prev)
        self.counter_label = QLabel("0 / 0")
        self.counter_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.counter_label.setMinimumWidth(80)
        nav.addWidget(self.counter_label)
        self.btn_next = QPushButton("▶")
        self.btn_next.setFixedWidth(40)
        nav.addWidget(self.btn_next)
        nav.addStretch(1)
        self.btn_refresh = QPushButton("Refresh preview")
        nav.addWidget(self.btn_refresh)
        main.addLayout(nav)

        footer = QHBoxLayout()
        self.progress_bar = QProgressBar()
        self.progress_bar.setVisible(False)
        footer.addWidget(self.progress_bar, 1)
        self.btn_export = QPushButton("Process && Save ZIP")
        self.btn_export.setMinimumHeight(36)
        footer.addWidget(self.btn_export)
        main.addLayout(footer)

        root.addLayout(main, 1)
        self.setCentralWidget(central)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

    @staticmethod
    def _with_value(slider: QSlider, label: QLabel) -> QWidget:
        container = QWidget()
        layout = QHBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(slider, 1)
        label.setMinimumWidth(40)
        layout.addWidget(label)
        return container

    # ===== State setters used by the controller =====

    def set_watermarks(self, entries: List[CatalogEntry], selected: Optional[str]):
        self.watermark_combo.blockSignals(True)
        self.watermark_combo.clear()
        for entry in entries:
            self.watermark_combo.addItem(entry.name, entry)
        if selected is not None:
            index = self.watermark_combo.findText(selected)
            if index < 0:
                self.watermark_combo.addItem(selected, None)
                index = self.watermark_combo.count() - 1
            self.watermark_combo.setCurrentIndex(index)
        self.watermark_combo.blockSignals(False)

    def set_placement_controls(self, opacity: float, scale: float, anchor: Anchor, compliance: bool):
        for widget in (self.opacity_slider, self.size_slider, self.anchor_combo, self.compliance_check):
            widget.blockSignals(True)

        self.opacity_slider.setValue(round(opacity * 100))
        self.opacity_value.setText(f"{round(opacity * 100)}%")
        self.size_slider.setValue(round(scale * 100))
        self.size_value.setText(f"{round(scale * 100)}%")
        self.anchor_combo.setCurrentIndex(self.anchor_combo.findData(anchor.value))
        self.compliance_check.setChecked(compliance)

        # Center is not selectable in compliance mode
        center_index = self.anchor_combo.findData(Anchor.CENTER.value)
        item = self.anchor_combo.model().item(center_index)
        if item is not None:
            item.setEnabled(not compliance)

        for widget in (self.opacity_slider, self.size_slider, self.anchor_combo, self.compliance_check):
            widget.blockSignals(False)

    def set_navigation(self, index: int, total: int):
        self.counter_label.setText(f"{index + 1 if total else 0} / {total}")
        self.btn_prev.setEnabled(total > 1)
        self.btn_next.setEnabled(total > 1)

    def set_exporting(self, exporting: bool):
        self.btn_export.setEnabled(not exporting)
        self.progress_bar.setVisible(exporting)
        if exporting:
            self.progress_bar.setValue(0)

    def set_export_progress(self, current: int, total: int):
        self.progress_bar.setMaximum(total)
        self.progress_bar.setValue(current)

    # ===== Notifications =====

    def show_message(self, message: str, timeout: int = 5000):
        self.status_bar.showMessage(message, timeout)

    def show_error(self, title: str, message: str):
        QMessageBox.critical(self, title, message)

    def show_warning(self, title: str, message: str):
        QMessageBox.warning(self, title, message)
