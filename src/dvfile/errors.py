"""Exceptions raised while reading DeltaVision files.

Each error also derives from the builtin exception a caller would otherwise
expect (``OSError``, ``ValueError``, ``IndexError``...), so code that catches
builtins keeps working.
"""

from __future__ import annotations

__all__ = [
    "DVError",
    "OpenError",
    "SectionBufferError",
    "SectionIndexError",
    "ShortReadError",
    "StreamNotFoundError",
    "TruncatedFileError",
    "UnrecognizedFormatError",
    "UseAfterCloseError",
]


class DVError(Exception):
    """Base class for all errors raised by dvfile."""


class OpenError(DVError, OSError):
    """The underlying file could not be opened."""


class UnrecognizedFormatError(DVError, ValueError):
    """The byte-order marker at offset 96 is missing or invalid."""


class TruncatedFileError(DVError, EOFError):
    """The file ended before the full header could be read."""


class ShortReadError(TruncatedFileError):
    """Fewer bytes than one full section remain at the current position."""


class UseAfterCloseError(DVError, ValueError):
    """An operation requiring an open file was called on a closed one."""


class SectionBufferError(DVError, ValueError):
    """A buffer cannot hold one section of pixel data."""


class SectionIndexError(DVError, IndexError):
    """A (time, wavelength, section) coordinate exceeds the file extents."""

    def __init__(self, axis: str, index: int, size: int) -> None:
        self.axis = axis
        self.index = index
        self.size = size
        super().__init__(f"{axis} index out of range: {index} (size {size})")


class StreamNotFoundError(DVError, KeyError):
    """No file is registered under the requested stream id."""

    def __init__(self, stream: int) -> None:
        self.stream = stream
        super().__init__(f"Stream not found: {stream}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])
