"""
File Ingestion
==============
Turns local paths, ZIP archives and URLs into IncomingFile records for
SessionState.add_images().

Rules:
- Files over MAX_FILE_SIZE or with unsupported extensions are rejected
- ZIP archives are expanded to their image members (directory structure
  is flattened to base names)
- HEIC/HEIF files go through an injected transcoder; without one they are
  skipped
- Every per-item failure is logged and skipped, never fatal to the batch
"""

import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from PIL import ExifTags, Image

from watermarkit.config import (
    ARCHIVE_EXTENSIONS, MAX_FILE_SIZE, MIME_TYPES, TRANSCODE_EXTENSIONS,
    URL_TIMEOUT_SECONDS
)
from watermarkit.core.errors import IngestError

logger = logging.getLogger(__name__)

# (name, data) -> (new_name, jpeg_data)
Transcoder = Callable[[str, bytes], Tuple[str, bytes]]


@dataclass
class IncomingFile:
    """A file ready to be added to the session."""
    name: str
    mime_type: str
    size: int
    data: bytes = field(repr=False)
    width: int = 0
    height: int = 0
    converted: bool = False


def is_image_file(name: str) -> bool:
    return Path(name).suffix.lower() in MIME_TYPES


def guess_mime_type(name: str) -> str:
    return MIME_TYPES.get(Path(name).suffix.lower(), "image/jpeg")


def format_file_size(num_bytes: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    size = float(num_bytes)
    index = 0
    while size >= 1024 and index < len(units) - 1:
        size /= 1024
        index += 1
    return f"{round(size, 2):g} {units[index]}"


def read_dimensions(data: bytes) -> Tuple[int, int]:
    """
    Read the displayed (width, height) from the image header.

    EXIF rotations of 90/270 degrees swap the stored dimensions.

    Raises:
        IngestError: If the bytes are not a recognizable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            orientation = image.getexif().get(ExifTags.Base.Orientation)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise IngestError(f"Not a readable image: {e}") from e

    if orientation in (5, 6, 7, 8):
        width, height = height, width
    return width, height


def _make_incoming(name: str, data: bytes, converted: bool = False) -> IncomingFile:
    if len(data) > MAX_FILE_SIZE:
        raise IngestError(
            f"{name} exceeds {MAX_FILE_SIZE // (1024 * 1024)}MB limit"
        )
    width, height = read_dimensions(data)
    return IncomingFile(
        name=name,
        mime_type=guess_mime_type(name),
        size=len(data),
        data=data,
        width=width,
        height=height,
        converted=converted
    )


class FileIngestor:
    """
    Collects IncomingFile records from paths and URLs.

    Rejected items are appended to ``errors`` as (name, message) pairs so
    the UI can show one summary notification per batch.
    """

    def __init__(
            self,
            transcoder: Optional[Transcoder] = None,
            http: Optional[requests.Session] = None
    ):
        self._transcoder = transcoder
        self._http = http or requests.Session()
        self.errors: List[Tuple[str, str]] = []

    def _reject(self, name: str, message: str):
        logger.warning("Skipping %s: %s", name, message)
        self.errors.append((name, message))

    def ingest_paths(self, paths: Iterable[Path]) -> List[IncomingFile]:
        """Read local files, expanding ZIP archives in place."""
        files: List[IncomingFile] = []
        for path in paths:
            path = Path(path)
            files.extend(self._ingest_path(path))
        return files

    def _ingest_path(self, path: Path) -> Iterator[IncomingFile]:
        suffix = path.suffix.lower()

        try:
            size = path.stat().st_size
        except OSError as e:
            self._reject(path.name, str(e))
            return

        if size > MAX_FILE_SIZE:
            self._reject(path.name, f"exceeds {MAX_FILE_SIZE // (1024 * 1024)}MB limit")
            return

        if suffix not in ARCHIVE_EXTENSIONS and suffix not in MIME_TYPES:
            self._reject(path.name, "unsupported file type")
            return

        try:
            data = path.read_bytes()
        except OSError as e:
            self._reject(path.name, str(e))
            return

        if suffix in ARCHIVE_EXTENSIONS:
            yield from self._expand_archive(path.name, data)
        else:
            item = self._ingest_bytes(path.name, data)
            if item is not None:
                yield item

    def _expand_archive(self, archive_name: str, data: bytes) -> Iterator[IncomingFile]:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            self._reject(archive_name, f"could not extract images from ZIP: {e}")
            return

        count = 0
        with archive:
            for info in archive.infolist():
                if info.is_dir() or not is_image_file(info.filename):
                    continue
                name = PurePosixPath(info.filename).name
                if name.startswith("."):
                    continue
                try:
                    member = archive.read(info)
                except (zipfile.BadZipFile, OSError) as e:
                    self._reject(name, str(e))
                    continue
                item = self._ingest_bytes(name, member, from_archive=True)
                if item is not None:
                    count += 1
                    yield item

        logger.info("%d images extracted from %s", count, archive_name)

    def _ingest_bytes(self, name: str, data: bytes, from_archive: bool = False) -> Optional[IncomingFile]:
        converted = from_archive
        if Path(name).suffix.lower() in TRANSCODE_EXTENSIONS:
            if self._transcoder is None:
                self._reject(name, "HEIC/HEIF needs a transcoder")
                return None
            try:
                name, data = self._transcoder(name, data)
            except Exception as e:
                self._reject(name, f"could not convert: {e}")
                return None
            converted = True

        try:
            return _make_incoming(name, data, converted)
        except IngestError as e:
            self._reject(name, str(e))
            return None

    def ingest_urls(self, urls: Iterable[str]) -> List[IncomingFile]:
        """Fetch images over HTTP(S). Invalid or unreachable URLs are skipped."""
        files: List[IncomingFile] = []
        for raw in urls:
            url = raw.strip()
            if not url:
                continue

            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                self._reject(url, "invalid URL")
                continue

            try:
                response = self._http.get(url, timeout=URL_TIMEOUT_SECONDS)
                response.raise_for_status()
            except requests.RequestException as e:
                self._reject(url, f"could not fetch: {e}")
                continue

            name = PurePosixPath(parsed.path).name or "image.jpg"
            if not is_image_file(name):
                name = f"{name}.jpg"
            item = self._ingest_bytes(name, response.content)
            if item is not None:
                files.append(item)

        return files
