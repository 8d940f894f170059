"""
Custom Widgets
==============
Reusable PyQt6 widgets for the watermarking window.

Widgets:
- DragDropLabel: drop zone / click-to-browse for images and ZIP archives
- ImageListWidget: uploaded images with size and conversion badges
- PreviewWidget: scaled preview display that reports click positions as
  normalized (x, y) points for custom placement
"""

from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QPointF, QRectF, QSize, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QDragEnterEvent, QDropEvent, QMouseEvent, QPainter, QPen, QPixmap
from PyQt6.QtWidgets import (
    QAbstractItemView, QFileDialog, QHBoxLayout, QLabel, QListWidget,
    QListWidgetItem, QPushButton, QSizePolicy, QVBoxLayout, QWidget
)

from watermarkit.config import ARCHIVE_EXTENSIONS, MIME_TYPES
from watermarkit.core.ingest import format_file_size
from watermarkit.core.session import UploadedImage


class DragDropLabel(QLabel):
    """
    A label that accepts drag-and-drop files.

    Signals:
        files_dropped(list[Path]): Emitted when files are dropped or picked.
    """

    files_dropped = pyqtSignal(list)  # List[Path]

    SUPPORTED_FORMATS = set(MIME_TYPES) | ARCHIVE_EXTENSIONS

    ACCENT_COLOR = "#00B4D8"
    BG_COLOR = "#2A2D35"
    BORDER_COLOR = "#4B5563"
    TEXT_COLOR = "#B0B8C4"

    def __init__(self, text: str = "Drop images or a ZIP here", parent: Optional[QWidget] = None):
        super().__init__(parent)
        self._hint_text = text
        self._is_dragging = False
        self.setAcceptDrops(True)
        self.setMinimumHeight(70)
        self.setCursor(Qt.CursorShape.PointingHandCursor)

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        rect = QRectF(self.rect()).adjusted(1, 1, -1, -1)
        border = self.ACCENT_COLOR if self._is_dragging else self.BORDER_COLOR
        pen = QPen(QColor(border))
        pen.setWidth(2)
        pen.setStyle(Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(QColor(self.BG_COLOR))
        painter.drawRoundedRect(rect, 10, 10)

        painter.setPen(QColor(self.ACCENT_COLOR if self._is_dragging else self.TEXT_COLOR))
        painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, self._hint_text)
        painter.end()

    def mousePressEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            self._open_file_dialog()
        super().mousePressEvent(event)

    def _open_file_dialog(self):
        formats = " ".join(f"*{fmt}" for fmt in sorted(self.SUPPORTED_FORMATS))
        files, _ = QFileDialog.getOpenFileNames(
            self, "Select images", "", f"Images ({formats});;All files (*.*)"
        )
        if files:
            self.files_dropped.emit([Path(f) for f in files])

    def _accepted_paths(self, event) -> List[Path]:
        paths = []
        for url in event.mimeData().urls():
            if url.isLocalFile():
                path = Path(url.toLocalFile())
                if path.suffix.lower() in self.SUPPORTED_FORMATS:
                    paths.append(path)
        return paths

    def dragEnterEvent(self, event: QDragEnterEvent):
        if event.mimeData().hasUrls() and self._accepted_paths(event):
            event.acceptProposedAction()
            self._is_dragging = True
            self.update()
            return
        event.ignore()

    def dragLeaveEvent(self, event):
        self._is_dragging = False
        self.update()
        super().dragLeaveEvent(event)

    def dropEvent(self, event: QDropEvent):
        self._is_dragging = False
        self.update()

        paths = self._accepted_paths(event)
        if paths:
            self.files_dropped.emit(paths)
            event.acceptProposedAction()


class ImageListWidget(QWidget):
    """
    Uploaded images, in session order.

    Signals:
        files_dropped(list[Path]): New files picked or dropped.
        remove_requested(list[str]): Identifiers the user wants removed.
        clear_requested(): Remove everything.
        current_changed(str): Identifier of the selected row.
    """

    files_dropped = pyqtSignal(list)
    remove_requested = pyqtSignal(list)
    clear_requested = pyqtSignal()
    current_changed = pyqtSignal(str)

    def __init__(self, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self._setup_ui()

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(8)

        self.drop_label = DragDropLabel()
        self.drop_label.files_dropped.connect(self.files_dropped.emit)
        layout.addWidget(self.drop_label)

        self.list_widget = QListWidget()
        self.list_widget.setObjectName("imageList")
        self.list_widget.setSelectionMode(QAbstractItemView.SelectionMode.ExtendedSelection)
        self.list_widget.currentItemChanged.connect(self._on_current_changed)
        layout.addWidget(self.list_widget, 1)

        btn_layout = QHBoxLayout()
        btn_layout.setSpacing(6)

        self.btn_remove = QPushButton("Remove")
        self.btn_remove.clicked.connect(self._on_remove_clicked)
        btn_layout.addWidget(self.btn_remove)

        self.btn_clear = QPushButton("Clear")
        self.btn_clear.clicked.connect(self.clear_requested.emit)
        btn_layout.addWidget(self.btn_clear)

        btn_layout.addStretch(1)

        self.count_label = QLabel("0 files")
        self.count_label.setObjectName("countLabel")
        btn_layout.addWidget(self.count_label)

        layout.addLayout(btn_layout)

    def set_images(self, images: List[UploadedImage]):
        """Rebuild the list from the session's image collection."""
        current = self.current_identifier()
        self.list_widget.blockSignals(True)
        self.list_widget.clear()
        for image in images:
            label = f"{image.identifier}  ({format_file_size(image.byte_size)})"
            if image.converted:
                label += "  [converted]"
            if image.custom_placement is not None:
                label += "  [custom]"
            item = QListWidgetItem(label)
            item.setData(Qt.ItemDataRole.UserRole, image.identifier)
            item.setToolTip(f"{image.width}x{image.height} {image.mime_type}")
            self.list_widget.addItem(item)
            if image.identifier == current:
                self.list_widget.setCurrentItem(item)
        self.list_widget.blockSignals(False)

        count = len(images)
        self.count_label.setText(f"{count} file{'s' if count != 1 else ''}")

    def current_identifier(self) -> Optional[str]:
        item = self.list_widget.currentItem()
        return item.data(Qt.ItemDataRole.UserRole) if item else None

    def _on_remove_clicked(self):
        identifiers = [
            item.data(Qt.ItemDataRole.UserRole)
            for item in self.list_widget.selectedItems()
        ]
        if identifiers:
            self.remove_requested.emit(identifiers)

    def _on_current_changed(self, current: Optional[QListWidgetItem], _previous):
        if current is not None:
            self.current_changed.emit(current.data(Qt.ItemDataRole.UserRole))


class PreviewWidget(QWidget):
    """
    Displays the current preview surface.

    Clicking on the image emits ``point_picked(x, y)`` with coordinates
    normalized to the image (0..1), used as a custom placement point.
    """

    point_picked = pyqtSignal(float, float)

    def __init__(self, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self._pixmap: Optional[QPixmap] = None
        self._image_rect = QRectF()
        self._setup_ui()

    def _setup_ui(self):
        self.setObjectName("previewWidget")
        self.setMinimumSize(300, 200)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.preview_label = QLabel()
        self.preview_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.preview_label.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.preview_label.setObjectName("previewLabel")
        layout.addWidget(self.preview_label)

        self.clear()

    def set_preview(self, pixmap: QPixmap):
        self._pixmap = pixmap
        self._update_display()

    def set_loading(self):
        if self._pixmap is None:
            self.preview_label.setText("Generating preview...")

    def set_error(self, message: str):
        self._pixmap = None
        self._image_rect = QRectF()
        self.preview_label.clear()
        self.preview_label.setText(message)

    def clear(self):
        self._pixmap = None
        self._image_rect = QRectF()
        self.preview_label.clear()
        self.preview_label.setText("Upload images to see a preview")

    def _update_display(self):
        if self._pixmap is None or self._pixmap.isNull():
            self.clear()
            return

        scaled = self._pixmap.scaled(
            self.preview_label.size() - QSize(20, 20),
            Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation
        )
        self.preview_label.setPixmap(scaled)

        label_rect = QRectF(self.preview_label.geometry())
        self._image_rect = QRectF(
            label_rect.x() + (label_rect.width() - scaled.width()) / 2,
            label_rect.y() + (label_rect.height() - scaled.height()) / 2,
            scaled.width(),
            scaled.height()
        )

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton and not self._image_rect.isEmpty():
            pos: QPointF = event.position()
            if self._image_rect.contains(pos):
                x = (pos.x() - self._image_rect.x()) / self._image_rect.width()
                y = (pos.y() - self._image_rect.y()) / self._image_rect.height()
                self.point_picked.emit(x, y)
        super().mousePressEvent(event)

    def resizeEvent(self, event):
        super().resizeEvent(event)
        if self._pixmap is not None:
            self._update_display()
