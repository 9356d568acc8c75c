from __future__ import annotations

from os import PathLike
from typing import TYPE_CHECKING, BinaryIO, NamedTuple, Union

from typing_extensions import Final, Literal

from dvfile.errors import DVError, SectionIndexError

if TYPE_CHECKING:
    from dvfile.structures import Header

StrOrPath = Union[str, PathLike]
FileOrBinaryIO = Union[StrOrPath, BinaryIO]
ByteOrder = Literal["<", ">"]

HEADER_SIZE: Final = 1024
# nDVID lives at 24 * 4 bytes into the header
DVID_OFFSET: Final = 96
LITTLE_ENDIAN_MAGIC: Final = b"\xa0\xc0"
BIG_ENDIAN_MAGIC: Final = b"\xc0\xa0"


class AXIS:
    X: Final = "X"
    Y: Final = "Y"
    Z: Final = "Z"
    CHANNEL: Final = "C"
    TIME: Final = "T"

    # physical order of sections in the file, slowest first
    STORAGE_ORDER: Final = "TCZ"


class VoxelSize(NamedTuple):
    x: float
    y: float
    z: float


def is_supported_file(path: FileOrBinaryIO) -> bool:
    """Return `True` if `path` can be opened as a DeltaVision file.

    Parameters
    ----------
    path : Union[str, PathLike, BinaryIO]
        A path (or open binary file) to query

    Returns
    -------
    bool
        Whether the byte-order marker at offset 96 is recognized.
    """
    from dvfile._parse import get_byteorder

    try:
        get_byteorder(path)
    except DVError:
        return False
    return True


def section_index(t: int, c: int, z: int, header: Header) -> int:
    """Return the linear index of section (`t`, `c`, `z`).

    Sections are always stored time-major, then wavelength, then Z,
    independent of the interleave code in the header.

    Raises
    ------
    SectionIndexError
        If any coordinate is outside the extents declared in `header`.
        Axes are checked in the order time, wavelength, section.
    """
    ntimes = header.num_times or 1
    nwaves = header.num_waves or 1
    nplanes = header.num_planes
    if not 0 <= t < ntimes:
        raise SectionIndexError("Time", t, ntimes)
    if not 0 <= c < nwaves:
        raise SectionIndexError("Wavelength", c, nwaves)
    if not 0 <= z < nplanes:
        raise SectionIndexError("Section", z, nplanes)
    return t * nwaves * nplanes + c * nplanes + z


def section_coords(index: int, header: Header) -> tuple[int, int, int]:
    """Inverse of `section_index`: return (t, c, z) for a linear index."""
    nwaves = header.num_waves or 1
    nplanes = header.num_planes or 1
    t, rest = divmod(index, nwaves * nplanes)
    c, z = divmod(rest, nplanes)
    return t, c, z
