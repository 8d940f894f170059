"""
UI Module - PyQt6 Interface Components
======================================
Contains the main window and custom widgets.
"""

from .main_window import MainWindow
from .widgets import DragDropLabel, ImageListWidget, PreviewWidget

__all__ = [
    "MainWindow",
    "DragDropLabel",
    "ImageListWidget",
    "PreviewWidget",
]
