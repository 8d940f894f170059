"""
Watermark-It Application Package
================================
A desktop tool that batch-applies a logo watermark to photos, previews the
result live and exports a ZIP of watermarked JPEGs.

Modules:
    - core: Pure algorithm logic (no UI dependencies)
    - workers: QThread workers for preview and export
    - ui: PyQt6 user interface components

Usage:
    from watermarkit.core import SessionState, Compositor, export_all
    from watermarkit.workers import PreviewManager, ExportWorker
    from watermarkit.ui import MainWindow
"""

__version__ = "1.0.0"
__app_name__ = "Watermark-It"

# Core exports (UI and workers are imported explicitly, they need PyQt6)
from .core import (
    Anchor, Compositor, CustomPoint, PlacementSettings, SessionState,
    WatermarkHandle, export_all, generate_previews
)

__all__ = [
    "__version__",
    "__app_name__",
    "Anchor",
    "Compositor",
    "CustomPoint",
    "PlacementSettings",
    "SessionState",
    "WatermarkHandle",
    "export_all",
    "generate_previews",
]
