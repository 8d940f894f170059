"""
Application constants and configuration.

Module-level constants control preview, export and ingestion behaviour.
User-facing defaults (opacity, scale, anchor, compliance rules) live in
``AppConfig`` and can be overridden by a JSON file, either passed to
``load_config()`` or named by the ``WATERMARKIT_CONFIG`` environment variable.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# APP IDENTITY
# =============================================================================
APP_NAME = "Watermark-It"
CONFIG_ENV_VAR = "WATERMARKIT_CONFIG"
LOG_LEVEL_ENV_VAR = "WATERMARKIT_LOG_LEVEL"

ASSETS_DIR = Path(__file__).parent / "assets"

# =============================================================================
# PREVIEW & EXPORT
# =============================================================================
PREVIEW_MAX_SIZE = 1200          # Long edge cap for preview surfaces (px)
PREVIEW_DEBOUNCE_MS = 80         # Coalescing window for preview triggers
EXPORT_QUALITY = 92              # JPEG quality for exported images
EXPORT_SUFFIX = "-watermarked.jpg"
ARCHIVE_PREFIX = "watermarked-images"
ARCHIVE_COMPRESSION_LEVEL = 6    # zlib level for DEFLATE entries

# =============================================================================
# PLACEMENT
# =============================================================================
PADDING_MIN_PX = 20
PADDING_RATIO = 0.025            # Fraction of the shorter canvas side

# =============================================================================
# INGESTION
# =============================================================================
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}
TRANSCODE_EXTENSIONS = {".heic", ".heif"}
ARCHIVE_EXTENSIONS = {".zip"}
URL_TIMEOUT_SECONDS = 30

# =============================================================================
# WATERMARK CATALOG - Built-in fallback when watermarks.json is missing
# =============================================================================
# Optional manifest overriding the built-in catalog. Built-in entries are
# drawn at load time (see core/builtin_marks.py).
CATALOG_MANIFEST = ASSETS_DIR / "watermarks.json"

DEFAULT_CATALOG = [
    {"name": "Rounded (White)", "file": "builtin:rounded-white", "default": True},
    {"name": "Rounded (Black)", "file": "builtin:rounded-black"},
    {"name": "Square (White)", "file": "builtin:square-white"},
    {"name": "Square (Black)", "file": "builtin:square-black"},
    {"name": "Horizontal (White)", "file": "builtin:horizontal-white"},
    {"name": "Horizontal (Black)", "file": "builtin:horizontal-black"},
]


@dataclass
class AppConfig:
    """
    Overridable user-facing defaults.

    Opacity and anchor defaults differ between deployments (75%/40%/22%,
    center or bottom-right), so the core never hard-wires them.
    """
    default_opacity: float = 0.75
    default_scale: float = 0.5
    default_anchor: str = "center"
    compliance_fallback_anchor: str = "bottom-right"
    compliance_watermarks: List[str] = field(
        default_factory=lambda: ["Square (White)", "Square (Black)"]
    )
    catalog_manifest: Optional[str] = None
    preview_max_size: int = PREVIEW_MAX_SIZE
    debounce_ms: int = PREVIEW_DEBOUNCE_MS
    export_quality: int = EXPORT_QUALITY
    output_dir: str = str(Path.home() / "Downloads")

    @property
    def manifest_path(self) -> Path:
        if self.catalog_manifest:
            return Path(self.catalog_manifest)
        return CATALOG_MANIFEST


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Build an AppConfig, applying JSON overrides when available.

    Args:
        path: Optional JSON file. Falls back to ``$WATERMARKIT_CONFIG``.

    Returns:
        AppConfig with overrides applied. A missing or corrupt file yields
        the defaults.
    """
    config = AppConfig()

    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return config
        path = Path(env_path)

    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Config file not found: %s", path)
        return config
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not read config %s: %s", path, e)
        return config

    if not isinstance(data, dict):
        logger.warning("Config %s must contain a JSON object", path)
        return config

    known = {f.name for f in fields(AppConfig)}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        problem = _check_override(key, value)
        if problem:
            logger.warning("Ignoring config key %s: %s", key, problem)
            continue
        setattr(config, key, value)

    return config


_NUMBER_KEYS = {"default_opacity", "default_scale"}
_INT_KEYS = {"preview_max_size", "debounce_ms", "export_quality"}
_STR_KEYS = {"default_anchor", "compliance_fallback_anchor", "output_dir"}


def _check_override(key: str, value) -> Optional[str]:
    """Return why ``value`` is unusable for ``key``, or None if it is fine."""
    # Local import, positioning imports this module
    from watermarkit.core.positioning import Anchor

    if key in _NUMBER_KEYS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"expected a number, got {value!r}"
        if not 0.0 <= value <= 1.0:
            return f"{value!r} is outside 0..1"
    elif key in _INT_KEYS:
        if isinstance(value, bool) or not isinstance(value, int):
            return f"expected an integer, got {value!r}"
        if value < (0 if key == "debounce_ms" else 1):
            return f"{value!r} is too small"
    elif key in _STR_KEYS:
        if not isinstance(value, str):
            return f"expected a string, got {value!r}"
    elif key == "catalog_manifest":
        if value is not None and not isinstance(value, str):
            return f"expected a path string, got {value!r}"
    elif key == "compliance_watermarks":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return f"expected a list of names, got {value!r}"

    if key in ("default_anchor", "compliance_fallback_anchor"):
        try:
            anchor = Anchor.parse(value)
        except ValueError:
            return f"unknown anchor {value!r}"
        if key == "compliance_fallback_anchor" and not anchor.is_corner:
            return "compliance fallback must be a corner"
    return None
