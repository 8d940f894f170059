"""
Tests for file ingestion, the watermark catalog and config loading.

Run with: python -m pytest tests/test_ingest.py -v
"""

import io
import json
import zipfile

import numpy as np
import pytest
import requests
from PIL import Image

from conftest import StubHttp, StubResponse, create_test_image
from watermarkit.config import AppConfig, load_config
from watermarkit.core import ingest
from watermarkit.core.builtin_marks import parse_builtin
from watermarkit.core.errors import IngestError, WatermarkLoadError
from watermarkit.core.ingest import FileIngestor, format_file_size, read_dimensions
from watermarkit.core.positioning import Anchor
from watermarkit.core.session import SessionState
from watermarkit.core.watermark import (
    CatalogEntry, LoadState, WatermarkHandle, default_entry, load_catalog
)


# ===== Local files =====

def test_ingest_paths_reads_images(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(create_test_image(320, 240))

    files = FileIngestor().ingest_paths([path])
    assert len(files) == 1
    item = files[0]
    assert item.name == "photo.png"
    assert item.mime_type == "image/png"
    assert (item.width, item.height) == (320, 240)
    assert item.size == path.stat().st_size
    assert not item.converted


def test_unsupported_type_is_rejected(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")

    ingestor = FileIngestor()
    assert ingestor.ingest_paths([path]) == []
    assert ingestor.errors == [("notes.txt", "unsupported file type")]


def test_oversized_file_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setattr(ingest, "MAX_FILE_SIZE", 10)
    path = tmp_path / "big.png"
    path.write_bytes(create_test_image(50, 50))

    ingestor = FileIngestor()
    assert ingestor.ingest_paths([path]) == []
    assert ingestor.errors[0][0] == "big.png"


def test_corrupt_image_is_rejected(tmp_path):
    path = tmp_path / "fake.jpg"
    path.write_bytes(b"\xff\xd8 not really a jpeg")

    ingestor = FileIngestor()
    assert ingestor.ingest_paths([path]) == []
    assert ingestor.errors[0][0] == "fake.jpg"


def test_zip_archive_is_expanded(tmp_path):
    archive = tmp_path / "batch.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("nested/one.png", create_test_image(100, 50))
        zf.writestr("two.jpg", create_test_image(60, 80, fmt="JPEG"))
        zf.writestr("readme.txt", "skip me")
        zf.writestr("__MACOSX/._one.png", b"resource fork")
        zf.writestr("nested/", b"")

    files = FileIngestor().ingest_paths([archive])
    assert [f.name for f in files] == ["one.png", "two.jpg"]
    assert [(f.width, f.height) for f in files] == [(100, 50), (60, 80)]
    assert all(f.converted for f in files)


def test_bad_zip_is_rejected(tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"PK not a zip")

    ingestor = FileIngestor()
    assert ingestor.ingest_paths([archive]) == []
    assert ingestor.errors[0][0] == "broken.zip"


def test_heic_without_transcoder_is_skipped(tmp_path):
    path = tmp_path / "phone.heic"
    path.write_bytes(b"heic bytes")

    ingestor = FileIngestor()
    assert ingestor.ingest_paths([path]) == []
    assert ingestor.errors[0][0] == "phone.heic"


def test_heic_with_transcoder(tmp_path):
    path = tmp_path / "phone.heic"
    path.write_bytes(b"heic bytes")
    jpeg = create_test_image(90, 30, fmt="JPEG")

    def transcode(name, data):
        assert data == b"heic bytes"
        return name.rsplit(".", 1)[0] + ".jpg", jpeg

    files = FileIngestor(transcoder=transcode).ingest_paths([path])
    assert [f.name for f in files] == ["phone.jpg"]
    assert files[0].converted
    assert files[0].mime_type == "image/jpeg"


def test_read_dimensions_honors_exif_rotation():
    img = Image.new("RGB", (400, 200))
    exif = img.getexif()
    exif[0x0112] = 6
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", exif=exif.tobytes())

    assert read_dimensions(buffer.getvalue()) == (200, 400)


def test_read_dimensions_rejects_garbage():
    with pytest.raises(IngestError):
        read_dimensions(b"garbage")


@pytest.mark.parametrize("num_bytes,expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
])
def test_format_file_size(num_bytes, expected):
    assert format_file_size(num_bytes) == expected


# ===== URLs =====

def test_ingest_urls():
    png = create_test_image(64, 48)
    http = StubHttp({
        "https://example.com/img/cat.png": StubResponse(png),
        "https://example.com/render?id=7": StubResponse(png),
        "https://example.com/missing.png": StubResponse(status=404),
        "https://down.example.com/a.png": requests.ConnectionError("refused"),
    })
    ingestor = FileIngestor(http=http)

    files = ingestor.ingest_urls([
        "https://example.com/img/cat.png",
        "  ",
        "ftp://example.com/file.png",
        "https://example.com/render?id=7",
        "https://example.com/missing.png",
        "https://down.example.com/a.png",
    ])

    assert [f.name for f in files] == ["cat.png", "render.jpg"]
    assert files[0].mime_type == "image/png"
    assert [name for name, _ in ingestor.errors] == [
        "ftp://example.com/file.png",
        "https://example.com/missing.png",
        "https://down.example.com/a.png",
    ]
    assert "ftp://example.com/file.png" not in http.requested


# ===== Watermark handles & catalog =====

def test_handle_loads_from_path(tmp_path):
    path = tmp_path / "mark.png"
    Image.new("RGB", (30, 10), (255, 255, 255)).save(path)

    handle = WatermarkHandle("Mark", path)
    assert handle.state is LoadState.UNLOADED
    assert handle.load() is handle
    assert handle.is_ready
    assert handle.image.mode == "RGBA"
    assert (handle.width, handle.height) == (30, 10)
    # Idempotent
    assert handle.load() is handle


def test_handle_loads_from_url():
    png = io.BytesIO()
    Image.new("RGBA", (12, 8)).save(png, format="PNG")
    http = StubHttp({"https://cdn.example.com/mark.png": StubResponse(png.getvalue())})

    handle = WatermarkHandle("Remote", "https://cdn.example.com/mark.png").load(http=http)
    assert (handle.width, handle.height) == (12, 8)


def test_failed_handle_does_not_retry(tmp_path):
    handle = WatermarkHandle("Missing", tmp_path / "missing.png")
    with pytest.raises(WatermarkLoadError):
        handle.load()
    assert handle.state is LoadState.FAILED
    assert handle.error

    (tmp_path / "missing.png").write_bytes(b"still nothing useful")
    with pytest.raises(WatermarkLoadError):
        handle.load()


def test_oversized_watermark_fails_cleanly(tmp_path, monkeypatch):
    path = tmp_path / "huge.png"
    Image.new("RGBA", (300, 100)).save(path)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    handle = WatermarkHandle("Huge", path)
    with pytest.raises(WatermarkLoadError):
        handle.load()
    assert handle.state is LoadState.FAILED
    assert "Huge" in handle.error


def test_unknown_builtin_watermark_fails():
    handle = WatermarkHandle("Odd", "builtin:triangle-red")
    with pytest.raises(WatermarkLoadError):
        handle.load()
    assert handle.state is LoadState.FAILED


def test_load_catalog_from_manifest(tmp_path):
    manifest = tmp_path / "watermarks.json"
    manifest.write_text(json.dumps({"watermarks": [
        {"name": "A", "file": "a.png"},
        {"name": "B", "file": "https://cdn.example.com/b.png", "default": True},
        {"file": "nameless.png"},
    ]}))

    entries = load_catalog(manifest)
    assert [e.name for e in entries] == ["A", "B"]
    assert entries[0].url == str(tmp_path / "a.png")
    assert entries[1].url == "https://cdn.example.com/b.png"
    assert default_entry(entries).name == "B"


def test_load_catalog_falls_back_to_builtin(tmp_path):
    corrupt = tmp_path / "watermarks.json"
    corrupt.write_text("{not json")

    entries = load_catalog(corrupt)
    assert len(entries) == 6
    assert default_entry(entries).name == "Rounded (White)"
    assert load_catalog(tmp_path / "absent.json") == entries


def test_builtin_catalog_loads_without_asset_files():
    entries = load_catalog()
    assert all(e.url.startswith("builtin:") for e in entries)

    for entry in entries:
        handle = entry.to_handle().load()
        assert handle.state is LoadState.READY
        alpha = np.asarray(handle.image.getchannel("A"))
        assert alpha.any() and not alpha.all()

    banner = next(e for e in entries if e.name == "Horizontal (White)").to_handle().load()
    assert banner.width > banner.height
    assert banner.image.getpixel((banner.width // 2, 10)) == (255, 255, 255, 255)


def test_parse_builtin():
    assert parse_builtin("builtin:square-white") == ("square", "white")
    with pytest.raises(ValueError):
        parse_builtin("builtin:square")
    with pytest.raises(ValueError):
        parse_builtin("builtin:oval-white")


def test_manifest_can_reference_builtin_marks(tmp_path):
    manifest = tmp_path / "watermarks.json"
    manifest.write_text(json.dumps({"watermarks": [
        {"name": "Badge", "file": "builtin:rounded-black"},
    ]}))

    entries = load_catalog(manifest)
    assert entries[0].url == "builtin:rounded-black"


def test_default_entry_without_flag():
    entries = [CatalogEntry("A", "a.png"), CatalogEntry("B", "b.png")]
    assert default_entry(entries).name == "A"
    assert default_entry([]) is None


# ===== Config =====

def test_load_config_defaults(monkeypatch):
    monkeypatch.delenv("WATERMARKIT_CONFIG", raising=False)
    config = load_config()
    assert config == AppConfig()
    assert config.default_opacity == 0.75
    assert config.default_anchor == "center"


def test_load_config_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "default_opacity": 0.22,
        "default_anchor": "bottom-right",
        "unknown_key": 1,
    }))

    config = load_config(path)
    assert config.default_opacity == 0.22
    assert config.default_anchor == "bottom-right"
    assert not hasattr(config, "unknown_key")


def test_load_config_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"default_scale": 0.3}))
    monkeypatch.setenv("WATERMARKIT_CONFIG", str(path))

    assert load_config().default_scale == 0.3


def test_load_config_survives_corrupt_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2")
    assert load_config(path) == AppConfig()


def test_load_config_skips_mistyped_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "compliance_watermarks": "Square (White)",
        "default_opacity": "0.5",
        "default_scale": True,
        "export_quality": 85,
        "debounce_ms": 12.5,
    }))

    config = load_config(path)
    assert config.compliance_watermarks == ["Square (White)", "Square (Black)"]
    assert config.default_opacity == 0.75
    assert config.default_scale == 0.5
    assert config.export_quality == 85
    assert config.debounce_ms == AppConfig().debounce_ms


def test_load_config_skips_invalid_anchors(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "default_anchor": "middle-ish",
        "compliance_fallback_anchor": "center",
        "default_opacity": 1.5,
    }))

    config = load_config(path)
    assert config == AppConfig()
    # The defaults still build a session
    assert SessionState(config).settings.anchor is Anchor.CENTER


def test_load_config_accepts_loose_anchor_spelling(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"compliance_fallback_anchor": "Top Left"}))
    assert load_config(path).compliance_fallback_anchor == "Top Left"
