from __future__ import annotations

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import NamedTuple

from dvfile._util import HEADER_SIZE

__all__ = [
    "Header",
    "HeaderSummary",
    "IMAGE_TYPES",
    "PixelType",
    "SEQUENCE_ORDERS",
    "pixel_type_size",
]


class PixelType(IntEnum):
    """Pixel data type, as stored in the ``mode`` field of the header."""

    UINT8 = 0
    INT16 = 1
    FLOAT32 = 2
    COMPLEX_INT16 = 3
    COMPLEX64 = 4
    INT16_ALT = 5
    UINT16 = 6
    INT32 = 7


# bytes per sample, complex types include both components
PIXEL_TYPE_SIZES: dict[PixelType, int] = {
    PixelType.UINT8: 1,
    PixelType.INT16: 2,
    PixelType.FLOAT32: 4,
    PixelType.COMPLEX_INT16: 4,
    PixelType.COMPLEX64: 8,
    PixelType.INT16_ALT: 2,
    PixelType.UINT16: 2,
    PixelType.INT32: 4,
}

# numpy type codes, without byte order
PIXEL_TYPE_CODES: dict[PixelType, str | list[tuple[str, str]]] = {
    PixelType.UINT8: "u1",
    PixelType.INT16: "i2",
    PixelType.FLOAT32: "f4",
    PixelType.COMPLEX_INT16: [("real", "i2"), ("imag", "i2")],
    PixelType.COMPLEX64: "c8",
    PixelType.INT16_ALT: "i2",
    PixelType.UINT16: "u2",
    PixelType.INT32: "i4",
}


def pixel_type_size(code: int) -> int:
    """Return the number of bytes in one sample of pixel type `code`.

    Raises
    ------
    ValueError
        If `code` is not a known pixel type.
    """
    return PIXEL_TYPE_SIZES[PixelType(code)]


IMAGE_TYPES: dict[int, str] = {
    0: "NORMAL",
    100: "NORMAL",
    1: "TILT_SERIES",
    2: "STEREO_TILT_SERIES",
    3: "AVERAGED_IMAGES",
    4: "AVERAGED_STEREO_PAIRS",
    5: "EM_TILT_SERIES",
    20: "MULTIPOSITION",
    8000: "PUPIL_FUNCTION",
}

# interleave code -> axis naming order (informational only)
SEQUENCE_ORDERS: dict[int, str] = {0: "CTZ", 1: "TZC", 2: "TCZ"}

TITLE_LENGTH = 80


@dataclass(frozen=True)
class Header:
    """The fixed 1024-byte DeltaVision header.

    Field order matches the on-disk layout. Derived values (`num_planes`,
    `sequence_order`, `image_type`...) are computed on access from the stored
    fields.
    """

    nx: int
    ny: int
    nz: int  # planes * waves * times
    mode: int
    nxst: int
    nyst: int
    nzst: int
    mx: int
    my: int
    mz: int
    xlen: float
    ylen: float
    zlen: float
    alpha: float
    beta: float
    gamma: float
    mapc: int
    mapr: int
    maps: int
    amin: float
    amax: float
    amean: float
    ispg: int
    inbsym: int  # bytes in extended header
    nDVID: int
    nblank: int
    ntst: int
    ibyte: bytes
    nint: int
    nreal: int
    nres: int
    nzfact: int
    min2: float
    max2: float
    min3: float
    max3: float
    min4: float
    max4: float
    file_type: int
    lens: int
    n1: int
    n2: int
    v1: int
    v2: int
    min5: float
    max5: float
    num_times: int
    interleaved: int
    tilt_x: float
    tilt_y: float
    tilt_z: float
    num_waves: int
    iwav1: int
    iwav2: int
    iwav3: int
    iwav4: int
    iwav5: int
    zorig: float
    xorig: float
    yorig: float
    nlab: int
    label: bytes

    @property
    def num_planes(self) -> int:
        """Number of Z sections per (time, wavelength)."""
        return self.nz // (self.num_waves or 1) // (self.num_times or 1)

    @property
    def sequence_order(self) -> str:
        return SEQUENCE_ORDERS.get(self.interleaved, "CTZ")

    @property
    def image_type(self) -> str:
        return IMAGE_TYPES.get(self.file_type, "UNKNOWN")

    @property
    def pixel_type(self) -> PixelType:
        return PixelType(self.mode)

    @property
    def bytes_per_pixel(self) -> int:
        return pixel_type_size(self.mode)

    @property
    def frame_size(self) -> int:
        """Size in bytes of one Y x X section."""
        return self.ny * self.nx * self.bytes_per_pixel

    @property
    def data_offset(self) -> int:
        """Byte offset of the first section (after the extended header)."""
        return HEADER_SIZE + self.inbsym

    @property
    def wavelengths(self) -> tuple[int, ...]:
        waves = (self.iwav1, self.iwav2, self.iwav3, self.iwav4, self.iwav5)
        return waves[: max(0, min(self.num_waves, len(waves)))]

    @property
    def titles(self) -> list[str]:
        n = max(0, min(self.nlab, len(self.label) // TITLE_LENGTH))
        return [
            self.label[i * TITLE_LENGTH : (i + 1) * TITLE_LENGTH]
            .decode("latin-1")
            .rstrip("\x00 ")
            for i in range(n)
        ]

    def summary(self) -> str:
        """Return a human readable description of the header."""
        try:
            bpp = f"{self.bytes_per_pixel} bytes"
        except ValueError:
            bpp = "unknown"
        lines = [
            "Header:",
            f"  Dimensions: {self.ny}x{self.nx}x{self.num_planes}",
            f"  Number of wavelengths: {self.num_waves}",
            f"  Number of time points: {self.num_times}",
            f"  Pixel type: {self.mode}",
            f"  Bytes per pixel: {bpp}",
            f"  Pixel spacing: {self.xlen}x{self.ylen}x{self.zlen}",
            f"  mxyz: {self.mx}x{self.my}x{self.mz}",
            f"  Cell angles: {self.alpha}x{self.beta}x{self.gamma}",
            f"  Min/Max/Mean: {self.amin}/{self.amax}/{self.amean}",
            f"  Image type: {self.image_type}",
            f"  Sequence order: {self.sequence_order}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class HeaderSummary(NamedTuple):
    """Header values reported by the legacy ``IMRdHdr`` call."""

    ixyz: tuple[int, int, int]
    mxyz: tuple[int, int, int]
    mode: int
    min: float
    max: float
    mean: float
