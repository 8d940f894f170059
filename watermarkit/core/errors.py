"""
Error taxonomy for the watermarking core.

Per-item errors (ingestion, decode) are recovered by the batch loops.
Only ExportError is surfaced as an operation failure.
"""


class WatermarkItError(Exception):
    """Base class for all watermarking errors."""


class IngestError(WatermarkItError):
    """An incoming file was oversized, unsupported or unreachable."""


class DecodeError(WatermarkItError):
    """Image bytes could not be decoded."""


class WatermarkLoadError(WatermarkItError):
    """The watermark pixel source could not be loaded."""


class WatermarkNotReadyError(WatermarkItError):
    """A composite was attempted before the watermark finished decoding."""


class ExportError(WatermarkItError):
    """No image could be exported, so no archive was produced."""
