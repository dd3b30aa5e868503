# errors.py
from __future__ import annotations


class ScanError(Exception):
    """Base class for errors surfaced to callers of the scanner."""


class InvalidBufferSize(ScanError):
    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid image data length: expected {expected}, got {actual}")


class FormatError(ScanError):
    """MRZ text could not be mapped onto a known ICAO layout."""


class NoValidLines(FormatError):
    def __init__(self) -> None:
        super().__init__("No valid MRZ lines found")


class UnsupportedLineCount(FormatError):
    def __init__(self, line_count: int) -> None:
        self.line_count = line_count
        super().__init__(f"Invalid MRZ format: {line_count} lines")


class QrDecodeError(ScanError):
    """A single detected grid failed to decode. Never leaves the scanner."""


class SerializationError(ScanError):
    pass


class OcrFailed(ScanError):
    pass
