"""
ZIP archive writer used by the export pipeline.

Any object with ``add(name, data)`` and ``finalize() -> bytes`` can stand in
for ZipArchiveWriter.
"""

import io
import zipfile
from typing import List

from watermarkit.config import ARCHIVE_COMPRESSION_LEVEL


class ZipArchiveWriter:
    """Collects (filename, bytes) pairs into an in-memory DEFLATE archive."""

    def __init__(self, compression_level: int = ARCHIVE_COMPRESSION_LEVEL):
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(
            self._buffer, "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level
        )
        self._names: List[str] = []
        self._finalized = False

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def add(self, name: str, data: bytes):
        if self._finalized:
            raise RuntimeError("Archive already finalized")
        self._zip.writestr(name, data)
        self._names.append(name)

    def finalize(self) -> bytes:
        """Close the archive and return its bytes."""
        if not self._finalized:
            self._zip.close()
            self._finalized = True
        return self._buffer.getvalue()
