"""IVE-style procedural access to DeltaVision files.

Client code written against the IVE/Priism ``IM*`` library addresses open
files by small integer stream ids. `StreamRegistry` keeps that mapping
explicitly (there is no module-level state); the legacy names (``IMOpen``,
``IMRdSec``...) are available as aliases of the snake_case methods.

Methods returning a status code never raise for file or stream errors: the
error is logged and the failure code returned. Methods returning a value
(`get_header`, `read_header_summary`) raise `StreamNotFoundError` for an
unknown id.

>>> import numpy as np
>>> im = StreamRegistry()
>>> im.IMOpen(1, "example.dv", "ro")
0
>>> ixyz, mxyz, mode, dmin, dmax, dmean = im.IMRdHdr(1)
>>> buf = np.empty((ixyz[1], ixyz[0]), dtype=im.get_file(1).dtype)
>>> im.IMPosnZWT(1, 0, 0, 0)
0
>>> im.IMRdSec(1, buf)
0
>>> im.IMClose(1)
"""

from __future__ import annotations

import logging
import threading
import warnings
from typing import TYPE_CHECKING

from dvfile._dvfile import DVFile
from dvfile.errors import DVError, StreamNotFoundError
from dvfile.structures import HeaderSummary

if TYPE_CHECKING:
    from typing import Any, Iterator, Sequence

    from dvfile._util import StrOrPath
    from dvfile.structures import Header

__all__ = ["StreamRegistry"]

logger = logging.getLogger(__name__)

READ_ONLY = "ro"


def _not_implemented(name: str, detail: str = "") -> None:
    msg = f"{name} is not implemented."
    if detail:
        msg = f"{msg} {detail}"
    warnings.warn(msg, UserWarning, stacklevel=3)


class StreamRegistry:
    """Mapping of integer stream ids to open `DVFile` objects."""

    def __init__(self) -> None:
        self._streams: dict[int, DVFile] = {}
        self._lock = threading.RLock()

    def __contains__(self, istream: object) -> bool:
        return istream in self._streams

    def __len__(self) -> int:
        return len(self._streams)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._streams))

    def __enter__(self) -> StreamRegistry:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close_all()

    def __repr__(self) -> str:
        return f"<StreamRegistry streams={sorted(self._streams)}>"

    def get_file(self, istream: int) -> DVFile:
        """Return the `DVFile` registered under `istream`.

        Raises
        ------
        StreamNotFoundError
            If no file is registered under `istream`.
        """
        try:
            return self._streams[istream]
        except KeyError:
            raise StreamNotFoundError(istream) from None

    # supported calls ------------------------------------------------------

    def open_stream(
        self, istream: int, name: StrOrPath, attrib: str = READ_ONLY
    ) -> int:
        """Open file `name` under stream id `istream`.

        A file already registered under `istream` is closed first (with a
        warning). Only read-only access (``attrib="ro"``) is supported.

        Returns
        -------
        int
            0 on success, -1 on failure.
        """
        with self._lock:
            previous = self._streams.pop(istream, None)
            if previous is not None:
                previous.close()
                warnings.warn(
                    f"Reusing stream identifier {istream}. Previous stream closed.",
                    UserWarning,
                    stacklevel=2,
                )
            if attrib != READ_ONLY:
                logger.error("Unknown file mode: %r", attrib)
                return -1
            try:
                self._streams[istream] = DVFile(name)
            except DVError as e:
                logger.error("Error opening stream %d: %s", istream, e)
                return -1
        logger.debug("Opened stream %d: %s", istream, name)
        return 0

    def close_stream(self, istream: int) -> None:
        """Close and forget stream `istream`. Unknown ids are ignored."""
        with self._lock:
            dv = self._streams.pop(istream, None)
        if dv is not None:
            dv.close()
            logger.debug("Closed stream %d", istream)

    def close_all(self) -> None:
        """Close every registered stream."""
        with self._lock:
            streams = list(self._streams)
        for istream in streams:
            self.close_stream(istream)

    def get_header(self, istream: int) -> Header:
        """Return the header of stream `istream`."""
        return self.get_file(istream).header

    def read_header_summary(self, istream: int) -> HeaderSummary:
        """Return (ixyz, mxyz, mode, min, max, mean) for stream `istream`."""
        hdr = self.get_header(istream)
        return HeaderSummary(
            ixyz=(hdr.nx, hdr.ny, hdr.nz),
            mxyz=(hdr.mx, hdr.my, hdr.mz),
            mode=hdr.mode,
            min=hdr.amin,
            max=hdr.amax,
            mean=hdr.amean,
        )

    def position_stream(self, istream: int, iz: int, iw: int, it: int) -> int:
        """Position stream `istream` at Z section `iz`, wavelength `iw`, time `it`.

        Returns
        -------
        int
            0 if successful and 1 if not.
        """
        try:
            self.get_file(istream).position(t=it, c=iw, z=iz)
        except DVError as e:
            logger.error("Error positioning stream %d: %s", istream, e)
            return 1
        return 0

    def read_section(self, istream: int, buffer: Any) -> int:
        """Read the next section of `istream` into `buffer`.

        Reads one section at the current position and advances past it.
        `buffer` must hold at least ``nx * ny`` samples of the stored data
        type (no conversion is performed).

        Returns
        -------
        int
            0 if successful and 1 if not.
        """
        try:
            self.get_file(istream).read_section(buffer)
        except DVError as e:
            logger.error("Error reading section from stream %d: %s", istream, e)
            return 1
        return 0

    # unsupported calls ----------------------------------------------------

    def set_conversion(self, istream: int, flag: int) -> None:
        """Set the image conversion mode (IVE default: convert to float32).

        Data are never converted, so this is a no-op; enabling conversion
        only warns.
        """
        if flag:
            _not_implemented("IMAlCon", "ConversionFlag=TRUE is not supported.")

    def set_titles(self, istream: int, titles: Sequence[str] | str, nl: int) -> None:
        """Change the image titles (not supported)."""
        _not_implemented("IMAlLab")

    def set_printing(self, flag: int) -> None:
        """Enable or disable printing to stdout (not supported)."""
        if flag:
            _not_implemented("IMAlPrt")

    def put_header(self, istream: int, header: Header) -> None:
        _not_implemented("IMPutHdr")

    def write_header(
        self,
        istream: int,
        title: str,
        ntflag: int,
        dmin: float,
        dmax: float,
        dmean: float,
    ) -> None:
        _not_implemented("IMWrHdr")

    def write_section(self, istream: int, buffer: Any) -> None:
        _not_implemented("IMWrSec")

    def get_extended_header(
        self, istream: int, iz: int, iw: int, it: int
    ) -> tuple[list[int], list[float]]:
        """Return extended header values for one section (not supported)."""
        _not_implemented("IMRtExHdrZWT")
        return [], []

    # legacy names
    IMOpen = open_stream
    IMClose = close_stream
    IMGetHdr = get_header
    IMRdHdr = read_header_summary
    IMPosnZWT = position_stream
    IMRdSec = read_section
    IMAlCon = set_conversion
    IMAlLab = set_titles
    IMAlPrt = set_printing
    IMPutHdr = put_header
    IMWrHdr = write_header
    IMWrSec = write_section
    IMRtExHdrZWT = get_extended_header
