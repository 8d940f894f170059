"""
Tests for the preview and export pipelines (Qt-free).

Run with: python -m pytest tests/test_pipeline.py -v
"""

import io
import zipfile

import pytest
from PIL import Image

from conftest import create_watermark, incoming, mark_bbox
from watermarkit.core.archive import ZipArchiveWriter
from watermarkit.core.errors import ExportError
from watermarkit.core.ingest import IncomingFile
from watermarkit.core.pipeline import export_all, generate_previews, output_name
from watermarkit.core.positioning import Anchor, compute_padding
from watermarkit.core.watermark import WatermarkHandle, load_catalog


def _garbage(name="broken.png"):
    data = b"definitely not an image"
    return IncomingFile(name=name, mime_type="image/png", size=len(data), data=data, width=10, height=10)


def _run_previews(session, **kwargs):
    token = session.issue_job_token()
    return generate_previews(session.snapshot(), token, session.is_current, **kwargs)


def test_end_to_end_previews(session, watermark):
    session.add_images([
        incoming("a.png", 600, 400),
        incoming("b.png", 1000, 1000),
        incoming("c.png", 200, 800),
    ])
    session.select_watermark(watermark)
    session.update_settings(opacity=0.22, scale=0.5, anchor=Anchor.BOTTOM_RIGHT)

    result = _run_previews(session)

    assert result is not None
    assert [p.identifier for p in result.previews] == ["a.png", "b.png", "c.png"]
    assert [p.index for p in result.previews] == [0, 1, 2]

    for preview in result.previews:
        width, height = preview.surface.size
        left, top, right, bottom = mark_bbox(preview.surface)
        padding = compute_padding(width, height)

        assert abs(max(right - left, bottom - top) - 0.5 * min(width, height)) <= 1
        assert right <= width - padding
        assert bottom <= height - padding


def test_previews_are_capped(session, watermark):
    session.add_images([incoming("big.png", 2400, 1600), incoming("small.png", 300, 200)])
    session.select_watermark(watermark)

    result = _run_previews(session)
    sizes = [p.surface.size for p in result.previews]
    assert sizes == [(1200, 800), (300, 200)]


def test_undecodable_image_is_skipped(session, watermark):
    session.add_images([incoming("a.png", 300, 200), _garbage(), incoming("c.png", 300, 200)])
    session.select_watermark(watermark)

    result = _run_previews(session)
    assert [p.identifier for p in result.previews] == ["a.png", "c.png"]
    assert [p.index for p in result.previews] == [0, 1]
    assert result.skipped == ["broken.png"]


def test_stale_run_returns_nothing(session, watermark):
    session.add_images([incoming("a.png", 300, 200), incoming("b.png", 300, 200)])
    session.select_watermark(watermark)

    def remove_first(current, total, identifier):
        if current == 1:
            session.remove_image("a.png")

    result = _run_previews(session, progress=remove_first)
    assert result is None


def test_run_superseded_after_last_image(session, watermark):
    session.add_images([incoming("a.png", 300, 200)])
    session.select_watermark(watermark)

    result = _run_previews(session, progress=lambda *_: session.update_settings(opacity=0.1))
    assert result is None


def test_reused_surfaces_are_carried_over(session, watermark):
    session.add_images([incoming("a.png", 300, 200), incoming("b.png", 300, 200)])
    session.select_watermark(watermark)
    cached = Image.new("RGBA", (300, 200), (1, 2, 3, 255))

    result = _run_previews(session, reuse={"a.png": cached})
    assert result.previews[0].surface is cached
    assert result.previews[1].surface is not cached


def test_failed_watermark_warns_and_renders_image_only(session, tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"nope")
    session.add_images([incoming("a.png", 300, 200)])
    session.select_watermark(WatermarkHandle("Broken", str(bad)))

    result = _run_previews(session)
    assert len(result.previews) == 1
    assert mark_bbox(result.previews[0].surface) is None
    assert result.warnings and "Watermark not applied" in result.warnings[0]


def test_unloaded_watermark_is_loaded_once(session, tmp_path):
    path = tmp_path / "mark.png"
    create_watermark().save(path)
    handle = WatermarkHandle("Square (White)", str(path))
    session.add_images([incoming("a.png", 600, 400)])
    session.select_watermark(handle)

    result = _run_previews(session)
    assert handle.is_ready
    assert mark_bbox(result.previews[0].surface) is not None


def test_oversized_watermark_warns_and_exports_image_only(session, tmp_path, monkeypatch):
    path = tmp_path / "huge.png"
    create_watermark(600, 400).save(path)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 50000)

    session.add_images([incoming("a.png", 100, 100)])
    session.select_watermark(WatermarkHandle("Huge", str(path)))

    result = _run_previews(session)
    assert len(result.previews) == 1
    assert mark_bbox(result.previews[0].surface) is None
    assert "Watermark not applied" in result.warnings[0]

    exported = export_all(session.snapshot())
    assert exported.entries == ["a-watermarked.jpg"]
    assert exported.warnings


def test_builtin_catalog_draws_in_compliance_mode(session):
    session.set_catalog(load_catalog())
    session.add_images([incoming("a.png", 600, 400)])
    session.set_compliance(True)

    assert session.watermark.name == "Square (White)"
    result = _run_previews(session)
    assert not result.warnings
    assert session.watermark.is_ready
    assert mark_bbox(result.previews[0].surface) is not None


@pytest.mark.parametrize("identifier,used,expected", [
    ("photo.png", set(), "photo-watermarked.jpg"),
    ("photo.jpeg", {"photo-watermarked.jpg"}, "photo-2-watermarked.jpg"),
    ("photo.webp", {"photo-watermarked.jpg", "photo-2-watermarked.jpg"}, "photo-3-watermarked.jpg"),
    ("archive.tar.gz", set(), "archive.tar-watermarked.jpg"),
])
def test_output_name(identifier, used, expected):
    assert output_name(identifier, set(used)) == expected


def test_export_writes_full_resolution_jpegs(session, watermark):
    session.add_images([incoming("a.png", 600, 400), incoming("b.png", 1000, 1000)])
    session.select_watermark(watermark)
    session.update_settings(opacity=1.0, anchor=Anchor.BOTTOM_RIGHT)

    progress = []
    result = export_all(session.snapshot(), progress=lambda *args: progress.append(args))

    assert result.entries == ["a-watermarked.jpg", "b-watermarked.jpg"]
    assert progress == [(1, 2, "a.png"), (2, 2, "b.png")]

    with zipfile.ZipFile(io.BytesIO(result.archive)) as zf:
        assert zf.namelist() == result.entries
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in zf.infolist())
        with Image.open(io.BytesIO(zf.read("a-watermarked.jpg"))) as img:
            assert img.format == "JPEG"
            assert img.size == (600, 400)


def test_export_uses_custom_placement(session, watermark):
    session.add_images([incoming("a.png", 600, 400)])
    session.select_watermark(watermark)
    session.update_settings(opacity=1.0, anchor=Anchor.BOTTOM_RIGHT)
    session.set_custom_placement("a.png", (0.0, 0.0))

    result = export_all(session.snapshot())
    with zipfile.ZipFile(io.BytesIO(result.archive)) as zf:
        img = Image.open(io.BytesIO(zf.read("a-watermarked.jpg"))).convert("RGB")

    # Top-left clamped mark is red, bottom-right corner stays base gray
    assert img.getpixel((5, 5))[0] > 200
    assert img.getpixel((590, 390))[0] < 80


def test_export_is_deterministic(session, watermark):
    session.add_images([incoming("a.png", 320, 240, gradient=True)])
    session.select_watermark(watermark)
    snapshot = session.snapshot()

    first = export_all(snapshot)
    second = export_all(snapshot)
    with zipfile.ZipFile(io.BytesIO(first.archive)) as a, zipfile.ZipFile(io.BytesIO(second.archive)) as b:
        assert a.read("a-watermarked.jpg") == b.read("a-watermarked.jpg")


def test_export_numbers_colliding_stems(session, watermark):
    session.add_images([incoming("photo.png", 100, 100), incoming("photo.jpg", 100, 100, fmt="JPEG")])
    session.select_watermark(watermark)

    result = export_all(session.snapshot())
    assert result.entries == ["photo-watermarked.jpg", "photo-2-watermarked.jpg"]


def test_export_reports_failures_and_continues(session, watermark):
    session.add_images([_garbage(), incoming("ok.png", 200, 200)])
    session.select_watermark(watermark)

    result = export_all(session.snapshot())
    assert result.entries == ["ok-watermarked.jpg"]
    assert [name for name, _ in result.failures] == ["broken.png"]


def test_export_with_no_successes_fails(session, watermark):
    session.add_images([_garbage()])
    session.select_watermark(watermark)

    with pytest.raises(ExportError):
        export_all(session.snapshot())


def test_export_cancellation(session, watermark):
    session.add_images([incoming("a.png", 100, 100)])
    session.select_watermark(watermark)

    with pytest.raises(ExportError):
        export_all(session.snapshot(), is_cancelled=lambda: True)


def test_zip_writer_rejects_adds_after_finalize():
    writer = ZipArchiveWriter()
    writer.add("one.jpg", b"abc")
    data = writer.finalize()

    assert writer.names == ["one.jpg"]
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.read("one.jpg") == b"abc"
    with pytest.raises(RuntimeError):
        writer.add("two.jpg", b"def")
