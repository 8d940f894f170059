"""
Watermark Handles & Catalog
===========================
A WatermarkHandle owns one decoded watermark image and tracks its load
state explicitly (UNLOADED -> LOADING -> READY | FAILED).

The catalog loader reads ``watermarks.json``:

    {"watermarks": [{"name": "...", "file": "...", "default": true}, ...]}

Relative ``file`` entries resolve against the manifest's directory and
``builtin:`` entries are drawn by core/builtin_marks.py. A missing or
corrupt manifest falls back to the built-in DEFAULT_CATALOG.
"""

import io
import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import requests
from PIL import Image

from watermarkit.config import ASSETS_DIR, DEFAULT_CATALOG, URL_TIMEOUT_SECONDS
from watermarkit.core.builtin_marks import is_builtin, render_builtin_mark
from watermarkit.core.errors import WatermarkLoadError

logger = logging.getLogger(__name__)

WatermarkSource = Union[str, Path, bytes]


def is_url(value: str) -> bool:
    return value.lower().startswith(("http://", "https://"))


class LoadState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class WatermarkHandle:
    """
    The active watermark image and its decode state.

    A handle is shared by reference between the session and the workers.
    ``load()`` is idempotent and serialized by a lock, so a worker thread may
    resolve an UNLOADED handle while the GUI thread reads ``state``.
    """

    def __init__(self, name: str, source: WatermarkSource):
        self.name = name
        self.source = source
        self._state = LoadState.UNLOADED
        self._image: Optional[Image.Image] = None
        self._error: Optional[str] = None
        self._lock = threading.Lock()

    @classmethod
    def from_image(cls, name: str, image: Image.Image) -> "WatermarkHandle":
        """Wrap an already decoded image (custom uploads, tests)."""
        handle = cls(name, b"")
        handle._image = image.convert("RGBA")
        handle._state = LoadState.READY
        return handle

    def __repr__(self) -> str:
        return f"WatermarkHandle({self.name!r}, state={self._state.value})"

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is LoadState.READY

    @property
    def image(self) -> Optional[Image.Image]:
        return self._image

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def width(self) -> int:
        return self._image.width if self._image is not None else 0

    @property
    def height(self) -> int:
        return self._image.height if self._image is not None else 0

    def load(self, http: Optional[requests.Session] = None) -> "WatermarkHandle":
        """
        Decode the pixel source.

        Args:
            http: Optional requests session for URL sources.

        Returns:
            self, for chaining.

        Raises:
            WatermarkLoadError: If the source cannot be read or decoded.
                The handle is left FAILED and later calls raise again
                without retrying.
        """
        with self._lock:
            if self._state is LoadState.READY:
                return self
            if self._state is LoadState.FAILED:
                raise WatermarkLoadError(self._error)

            self._state = LoadState.LOADING
            try:
                image = self._open_source(http)
                self._image = image.convert("RGBA")
            except (OSError, ValueError, Image.DecompressionBombError, requests.RequestException) as e:
                self._error = f"Could not load watermark {self.name!r}: {e}"
                self._state = LoadState.FAILED
                logger.warning(self._error)
                raise WatermarkLoadError(self._error) from e

            self._state = LoadState.READY
            logger.debug("Watermark %r ready (%dx%d)", self.name, self.width, self.height)
            return self

    def _open_source(self, http: Optional[requests.Session]) -> Image.Image:
        if is_builtin(self.source):
            return render_builtin_mark(self.source)

        image = Image.open(io.BytesIO(self._read_source(http)))
        image.load()
        return image

    def _read_source(self, http: Optional[requests.Session]) -> bytes:
        if isinstance(self.source, bytes):
            return self.source

        source = str(self.source)
        if is_url(source):
            getter = http or requests
            response = getter.get(source, timeout=URL_TIMEOUT_SECONDS)
            response.raise_for_status()
            return response.content

        return Path(source).read_bytes()


@dataclass(frozen=True)
class CatalogEntry:
    """One selectable watermark: display name, resolvable URL or path."""
    name: str
    url: str
    is_default: bool = False

    def to_handle(self) -> WatermarkHandle:
        return WatermarkHandle(self.name, self.url)


def _resolve(file: str, base_dir: Path) -> str:
    if is_builtin(file) or is_url(file) or Path(file).is_absolute():
        return file
    return str(base_dir / file)


def _entries_from(raw: list, base_dir: Path) -> List[CatalogEntry]:
    entries = []
    for item in raw:
        name = item.get("name")
        file = item.get("file") or item.get("url")
        if not name or not file:
            logger.warning("Skipping malformed catalog entry: %r", item)
            continue
        entries.append(CatalogEntry(
            name=name,
            url=_resolve(file, base_dir),
            is_default=bool(item.get("default", False))
        ))
    return entries


def load_catalog(manifest_path: Optional[Path] = None) -> List[CatalogEntry]:
    """
    Load the watermark catalog.

    Args:
        manifest_path: Path to watermarks.json. None uses the built-in list.

    Returns:
        Catalog entries in manifest order.
    """
    if manifest_path is not None:
        manifest_path = Path(manifest_path)
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            entries = _entries_from(data.get("watermarks") or [], manifest_path.parent)
            if entries:
                return entries
            logger.warning("Watermark manifest %s lists no watermarks", manifest_path)
        except FileNotFoundError:
            logger.debug("No watermark manifest at %s, using built-in catalog", manifest_path)
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            logger.warning("Could not load watermarks from %s, using defaults: %s", manifest_path, e)

    return _entries_from(DEFAULT_CATALOG, ASSETS_DIR)


def default_entry(entries: List[CatalogEntry]) -> Optional[CatalogEntry]:
    """The entry flagged as default, else the first one."""
    for entry in entries:
        if entry.is_default:
            return entry
    return entries[0] if entries else None
