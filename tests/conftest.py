"""
Shared test helpers.

Qt runs with the offscreen platform so worker tests need no display.
"""

import io
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pytest
import requests
from PIL import Image

from watermarkit.config import AppConfig
from watermarkit.core.ingest import IncomingFile
from watermarkit.core.session import SessionState
from watermarkit.core.watermark import CatalogEntry, WatermarkHandle

BASE_COLOR = (40, 40, 40)
MARK_COLOR = (255, 0, 0)


def create_test_image(width: int = 800, height: int = 600, fmt: str = "PNG", gradient: bool = False) -> bytes:
    """Encode a test image: flat gray by default, or an RGB gradient."""
    if gradient:
        xs = np.linspace(0, 255, width, dtype=np.float32)
        ys = np.linspace(0, 255, height, dtype=np.float32)
        arr = np.zeros((height, width, 3), dtype=np.uint8)
        arr[..., 0] = xs[np.newaxis, :].astype(np.uint8)
        arr[..., 1] = ys[:, np.newaxis].astype(np.uint8)
        arr[..., 2] = 128
        img = Image.fromarray(arr)
    else:
        img = Image.new("RGB", (width, height), BASE_COLOR)

    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def create_watermark(width: int = 300, height: int = 100) -> Image.Image:
    """Fully opaque solid red mark."""
    return Image.new("RGBA", (width, height), MARK_COLOR + (255,))


def incoming(name: str, width: int = 800, height: int = 600, **kwargs) -> IncomingFile:
    data = create_test_image(width, height, **kwargs)
    return IncomingFile(
        name=name,
        mime_type="image/png",
        size=len(data),
        data=data,
        width=width,
        height=height
    )


def mark_bbox(surface: Image.Image):
    """
    Bounding box (left, top, right, bottom) of pixels that differ from the
    flat base color, i.e. the drawn watermark. None if nothing was drawn.
    """
    arr = np.asarray(surface.convert("RGB"))
    diff = np.any(arr != np.array(BASE_COLOR, dtype=np.uint8), axis=-1)
    ys, xs = np.nonzero(diff)
    if len(xs) == 0:
        return None
    return int(xs.min()), int(ys.min()), int(xs.max()) + 1, int(ys.max()) + 1


class StubResponse:
    def __init__(self, content=b"", status=200):
        self.content = content
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class StubHttp:
    """Stands in for requests.Session: url -> StubResponse or exception."""

    def __init__(self, routes):
        self.routes = routes
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        outcome = self.routes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def watermark():
    return WatermarkHandle.from_image("Square (White)", create_watermark())


@pytest.fixture
def config():
    return AppConfig(
        default_opacity=0.75,
        default_scale=0.5,
        default_anchor="center",
        compliance_fallback_anchor="bottom-right",
        compliance_watermarks=["Square (White)", "Square (Black)"]
    )


@pytest.fixture
def catalog(tmp_path):
    entries = []
    for name, color in [("Rounded (White)", (255, 255, 255, 255)),
                        ("Square (White)", (250, 250, 250, 255)),
                        ("Square (Black)", (0, 0, 0, 255))]:
        path = tmp_path / f"{name.replace(' ', '_')}.png"
        Image.new("RGBA", (120, 120), color).save(path)
        entries.append(CatalogEntry(name=name, url=str(path), is_default=name == "Rounded (White)"))
    return entries


@pytest.fixture
def session(config):
    return SessionState(config)


@pytest.fixture(scope="session")
def qapp():
    from PyQt6.QtWidgets import QApplication
    app = QApplication.instance() or QApplication([])
    yield app
