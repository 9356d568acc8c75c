from __future__ import annotations

import logging
import threading
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, overload

import numpy as np

from dvfile._parse import get_byteorder, read_header
from dvfile._util import AXIS, VoxelSize, section_coords, section_index
from dvfile.errors import (
    OpenError,
    SectionBufferError,
    ShortReadError,
    UnrecognizedFormatError,
    UseAfterCloseError,
)
from dvfile.structures import PIXEL_TYPE_CODES, PIXEL_TYPE_SIZES, PixelType

if TYPE_CHECKING:
    from typing import Any, Literal

    import dask.array as da
    import xarray as xr

    from dvfile._util import ByteOrder, StrOrPath
    from dvfile.structures import Header

logger = logging.getLogger(__name__)


def pixel_dtype(mode: int, byteorder: ByteOrder = "<") -> np.dtype:
    """Return the numpy dtype for pixel type `mode` in the given byte order."""
    code = PIXEL_TYPE_CODES[PixelType(mode)]
    if isinstance(code, list):
        return np.dtype([(name, byteorder + c) for name, c in code])
    return np.dtype(byteorder + code)


def _byte_view(buffer: Any) -> memoryview:
    if isinstance(buffer, np.ndarray):
        if not buffer.flags.c_contiguous:
            raise SectionBufferError("Section buffer must be C-contiguous")
        return memoryview(buffer.reshape(-1).view(np.uint8))
    try:
        return memoryview(buffer).cast("B")
    except TypeError as e:
        raise SectionBufferError(
            f"Section buffer is not a C-contiguous buffer: {e}"
        ) from e


class DVFile:
    """Reader for DeltaVision (.dv) files.

    The file is opened, validated and its header parsed on construction.
    Sections are read with `read_section`, either at an explicit
    (t, c, z) coordinate or sequentially from the current position.

    Parameters
    ----------
    path : Union[str, PathLike]
        Path to the DV file.

    Raises
    ------
    OpenError
        If the file cannot be opened.
    UnrecognizedFormatError
        If the file does not carry a DeltaVision byte-order marker.
    TruncatedFileError
        If the file is too short to hold a header.
    """

    def __init__(self, path: StrOrPath) -> None:
        self._path = Path(path).expanduser()
        self._fh: BinaryIO | None = None
        self._lock = threading.RLock()
        self.open()
        fh = self._fh
        assert fh is not None
        try:
            self._byteorder = get_byteorder(fh)
            self._header = read_header(fh, self._byteorder)
            if self._header.mode not in PIXEL_TYPE_SIZES:
                raise UnrecognizedFormatError(
                    f"{self._path}: unsupported pixel type {self._header.mode}"
                )
            self._seek_section(0)
        except BaseException:
            self.close()
            raise

    def open(self) -> None:
        """Open the file handle (no-op if already open).

        A reopened file is positioned at the first section.
        """
        if self.closed:
            try:
                self._fh = open(self._path, "rb")
            except OSError as e:
                raise OpenError(
                    e.errno, f"Failed to open file: {e.strerror}", str(self._path)
                ) from e
            logger.debug("Opened DV file %s", self._path)
            # header is not yet parsed on the first open from __init__
            if hasattr(self, "_header"):
                self._seek_section(0)

    def close(self) -> None:
        """Close the file handle (no-op if already closed)."""
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            logger.debug("Closed DV file %s", self._path)

    @property
    def closed(self) -> bool:
        return self._fh is None or self._fh.closed

    def __enter__(self) -> DVFile:
        self.open()
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "closed", True):
            self.close()

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def header(self) -> Header:
        """The (immutable) file header."""
        return self._header

    @property
    def byteorder(self) -> ByteOrder:
        return self._byteorder

    def _checked_fh(self) -> BinaryIO:
        if self._fh is None or self._fh.closed:
            raise UseAfterCloseError(
                "Cannot read from closed file. Please reopen with .open()"
            )
        return self._fh

    # section access -------------------------------------------------------

    def _seek_section(self, index: int) -> None:
        fh = self._checked_fh()
        hdr = self._header
        fh.seek(hdr.data_offset + index * hdr.frame_size)

    def position(self, t: int = 0, c: int = 0, z: int = 0) -> None:
        """Move the read position to the start of section (`t`, `c`, `z`).

        Raises
        ------
        UseAfterCloseError
            If the file is closed.
        SectionIndexError
            If any coordinate is out of range.
        """
        with self._lock:
            self._checked_fh()
            index = section_index(t, c, z, self._header)
            self._seek_section(index)
            logger.debug("Positioned %s at t=%d c=%d z=%d", self.path, t, c, z)

    def tell_section(self) -> int:
        """Return the linear index of the section at the read position."""
        fh = self._checked_fh()
        hdr = self._header
        if not hdr.frame_size:
            return 0
        return (fh.tell() - hdr.data_offset) // hdr.frame_size

    @overload
    def read_section(self, buffer: None = ..., **coords: int) -> np.ndarray: ...
    @overload
    def read_section(self, buffer: Any, **coords: int) -> Any: ...
    def read_section(
        self,
        buffer: Any = None,
        t: int | None = None,
        c: int | None = None,
        z: int | None = None,
    ) -> Any:
        """Read one section into `buffer` and advance past it.

        If any of `t`, `c`, `z` is given, the file is first positioned at that
        section (missing coordinates default to 0). Otherwise the section at
        the current read position is read, so repeated calls walk through the
        file in storage order.

        Parameters
        ----------
        buffer : writable buffer, optional
            Destination with room for at least `header.frame_size` bytes (e.g.
            a numpy array or bytearray). If None, a new ``(ny, nx)`` array is
            allocated.

        Returns
        -------
        The filled buffer.

        Raises
        ------
        UseAfterCloseError
            If the file is closed.
        SectionBufferError
            If `buffer` is too small, read-only or not C-contiguous.
        ShortReadError
            If fewer than one section's worth of bytes remain.
        """
        hdr = self._header
        if buffer is None:
            buffer = np.empty((hdr.ny, hdr.nx), dtype=self.dtype)
        view = _byte_view(buffer)
        if view.readonly:
            raise SectionBufferError("Section buffer is read-only")
        nbytes = hdr.frame_size
        if view.nbytes < nbytes:
            raise SectionBufferError(
                f"Buffer too small: {view.nbytes} bytes, section needs {nbytes}"
            )
        with self._lock:
            fh = self._checked_fh()
            if t is not None or c is not None or z is not None:
                self.position(t or 0, c or 0, z or 0)
            start = fh.tell()
            nread = fh.readinto(view[:nbytes])  # type: ignore[attr-defined]
            if nread < nbytes:
                fh.seek(start)
                raise ShortReadError(
                    f"Short read in {self.path} at byte {start}: "
                    f"expected {nbytes} bytes, got {nread}"
                )
        return buffer

    def _read_frame(self, index: int) -> np.ndarray:
        with self._lock:
            self._seek_section(index)
            return self.read_section()

    # array interface ------------------------------------------------------

    @cached_property
    def dtype(self) -> np.dtype:
        return pixel_dtype(self._header.mode, self._byteorder)

    @property
    def sizes(self) -> dict[str, int]:
        """Axis sizes, ordered by the file's declared sequence order.

        The order is informational. Data returned by `asarray` is always in
        (T, C, Z, Y, X) order.
        """
        hdr = self._header
        d = {
            AXIS.TIME: hdr.num_times or 1,
            AXIS.CHANNEL: hdr.num_waves or 1,
            AXIS.Z: hdr.num_planes,
            AXIS.Y: hdr.ny,
            AXIS.X: hdr.nx,
        }
        return {k: d[k] for k in hdr.sequence_order + AXIS.Y + AXIS.X}

    @property
    def shape(self) -> tuple[int, ...]:
        sizes = self.sizes
        return tuple(sizes[k] for k in AXIS.STORAGE_ORDER + AXIS.Y + AXIS.X)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape))

    @property
    def nbytes(self) -> int:
        return self.size * self.dtype.itemsize

    @property
    def _frame_count(self) -> int:
        return int(np.prod(self.shape[:-2]))

    def voxel_size(self) -> VoxelSize:
        """Return (x, y, z) pixel spacing as stored in the header."""
        hdr = self._header
        return VoxelSize(hdr.xlen, hdr.ylen, hdr.zlen)

    def asarray(self) -> np.ndarray:
        """Read the full dataset into memory, with shape (T, C, Z, Y, X)."""
        out = np.empty(self.shape, dtype=self.dtype)
        frames = out.reshape((-1,) + self.shape[-2:])
        with self._lock:
            self._seek_section(0)
            for i in range(self._frame_count):
                self.read_section(frames[i])
        return out

    def __array__(self, dtype: Any = None, copy: Any = None) -> np.ndarray:
        arr = self.asarray()
        return arr if dtype is None else arr.astype(dtype)

    def to_dask(self) -> da.Array:
        """Create dask array (delayed reader) representing image.

        The returned array reopens the file when computed if it has been
        closed in the meantime. Each chunk is one (1, 1, 1, Y, X) section.
        """
        from dask.array import map_blocks
        from resource_backed_dask_array import ResourceBackedDaskArray

        coord_shape = self.shape[:-2]
        chunks = [(1,) * x for x in coord_shape]
        chunks += [(x,) for x in self.shape[-2:]]
        meta = np.empty((0,) * self.ndim, dtype=self.dtype)
        darr = map_blocks(
            self._dask_block, chunks=chunks, dtype=self.dtype, meta=meta
        )
        return ResourceBackedDaskArray.from_array(darr, self)

    def _dask_block(self, block_id: tuple[int, ...]) -> np.ndarray:
        ncoords = len(self.shape) - 2
        t, c, z = block_id[:ncoords]
        with self._lock:
            idx = section_index(t, c, z, self._header)
            data = self._read_frame(idx)
        return data[(np.newaxis,) * ncoords]

    def to_xarray(self, delayed: bool = True) -> xr.DataArray:
        """Return a labeled xarray.DataArray with dims (T, C, Z, Y, X)."""
        import xarray as xr

        data = self.to_dask() if delayed else self.asarray()
        dx, dy, dz = self.voxel_size()
        hdr = self._header
        coords: dict[str, Any] = {
            AXIS.Z: np.arange(hdr.num_planes) * dz,
            AXIS.Y: np.arange(hdr.ny) * dy,
            AXIS.X: np.arange(hdr.nx) * dx,
        }
        if hdr.wavelengths and len(hdr.wavelengths) == self.sizes[AXIS.CHANNEL]:
            coords[AXIS.CHANNEL] = list(hdr.wavelengths)
        return xr.DataArray(
            data,
            dims=list(AXIS.STORAGE_ORDER + AXIS.Y + AXIS.X),
            coords=coords,
            attrs={"header": hdr.to_dict(), "titles": hdr.titles},
        )

    def tell_coords(self) -> tuple[int, int, int]:
        """Return the (t, c, z) coordinate of the section at the read position."""
        return section_coords(self.tell_section(), self._header)

    def __repr__(self) -> str:
        try:
            details = " (closed)" if self.closed else f" {self.dtype}: {self.sizes!r}"
            extra = f": {self._path.name!r}{details}"
        except Exception:
            extra = ""
        return f"<DVFile at {hex(id(self))}{extra}>"


@overload
def imread(
    file: StrOrPath, dask: Literal[False] = ..., xarray: Literal[False] = ...
) -> np.ndarray: ...
@overload
def imread(
    file: StrOrPath, dask: bool = ..., xarray: Literal[True] = ...
) -> xr.DataArray: ...
@overload
def imread(
    file: StrOrPath, dask: Literal[True] = ..., xarray: Literal[False] = ...
) -> da.Array: ...
def imread(
    file: StrOrPath, dask: bool = False, xarray: bool = False
) -> np.ndarray | xr.DataArray | da.Array:
    """Open `file`, return requested array type, and close `file`.

    Parameters
    ----------
    file : Union[str, PathLike]
        Filename of the DV file.
    dask : bool
        If True, returns a (delayed) `dask.array.Array`. This will avoid
        reading any data from disk until specifically requested by using
        `.compute()` or casting to a numpy array with `np.asarray()`.
        By default `False`.
    xarray : bool
        If True, returns an `xarray.DataArray`, with dims (T, C, Z, Y, X).
        By default `False`.

    Returns
    -------
    Union[np.ndarray, dask.array.Array, xarray.DataArray]
        Array subclass, depending on arguments used.
    """
    with DVFile(file) as dv:
        if xarray:
            return dv.to_xarray(delayed=dask)
        elif dask:
            return dv.to_dask()
        else:
            return dv.asarray()
