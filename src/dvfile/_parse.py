"""Decoding of the fixed DeltaVision header."""

from __future__ import annotations

import struct
from contextlib import nullcontext
from typing import TYPE_CHECKING, BinaryIO, ContextManager, cast

from dvfile._util import (
    BIG_ENDIAN_MAGIC,
    DVID_OFFSET,
    HEADER_SIZE,
    LITTLE_ENDIAN_MAGIC,
)
from dvfile.errors import OpenError, TruncatedFileError, UnrecognizedFormatError
from dvfile.structures import Header

if TYPE_CHECKING:
    from dvfile._util import ByteOrder, FileOrBinaryIO

# fmt: off
HEADER_FORMAT = (
    "10i"   # nx, ny, nz, mode, nxst, nyst, nzst, mx, my, mz
    "6f"    # xlen, ylen, zlen, alpha, beta, gamma
    "3i"    # mapc, mapr, maps
    "3f"    # amin, amax, amean
    "2i"    # ispg, inbsym
    "2h"    # nDVID, nblank
    "i"     # ntst
    "24s"   # ibyte
    "4h"    # nint, nreal, nres, nzfact
    "6f"    # min2, max2, min3, max3, min4, max4
    "6h"    # file_type, lens, n1, n2, v1, v2
    "2f"    # min5, max5
    "2h"    # num_times, interleaved
    "3f"    # tilt_x, tilt_y, tilt_z
    "6h"    # num_waves, iwav1 .. iwav5
    "3f"    # zorig, xorig, yorig
    "i"     # nlab
    "800s"  # label
)
# fmt: on

HEADERS: dict[str, struct.Struct] = {
    "<": struct.Struct("<" + HEADER_FORMAT),
    ">": struct.Struct(">" + HEADER_FORMAT),
}
assert HEADERS["<"].size == HEADER_SIZE


def _file_context(fh: FileOrBinaryIO) -> ContextManager[BinaryIO]:
    if hasattr(fh, "read"):
        return nullcontext(cast("BinaryIO", fh))
    try:
        return open(fh, "rb")
    except OSError as e:
        raise OpenError(e.errno, f"Failed to open file: {e.strerror}", str(fh)) from e


def get_byteorder(fh: FileOrBinaryIO) -> ByteOrder:
    """Return the byte order of a DeltaVision file, or raise an exception.

    Parameters
    ----------
    fh : BinaryIO | str | Path
        The file handle or path to the DV file.

    Returns
    -------
    str
        "<" for little endian, ">" for big endian.

    Raises
    ------
    UnrecognizedFormatError
        If the two bytes at offset 96 are not a DeltaVision marker.
    """
    with _file_context(fh) as f:
        fname = str(getattr(f, "name", fh))
        # caller-supplied handles keep their position
        pos = f.tell()
        try:
            f.seek(DVID_OFFSET)
            dvid = f.read(2)
        finally:
            f.seek(pos)

    if dvid == LITTLE_ENDIAN_MAGIC:
        return "<"
    if dvid == BIG_ENDIAN_MAGIC:
        return ">"
    raise UnrecognizedFormatError(
        f"{fname} is not a recognized DV file. (bytes at {DVID_OFFSET}: {dvid!r})"
    )


def read_header(fh: BinaryIO, byteorder: ByteOrder) -> Header:
    """Read the 1024-byte header from the start of `fh`.

    Raises
    ------
    TruncatedFileError
        If the file is shorter than the header.
    """
    fh.seek(0)
    data = fh.read(HEADER_SIZE)
    if len(data) < HEADER_SIZE:
        raise TruncatedFileError(
            f"Truncated DV header in {getattr(fh, 'name', fh)!s}: "
            f"expected {HEADER_SIZE} bytes, got {len(data)}"
        )
    return Header(*HEADERS[byteorder].unpack(data))
