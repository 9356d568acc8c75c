import logging
from pathlib import Path

import numpy as np
import pytest
from dvfile import StreamRegistry
from dvfile.errors import StreamNotFoundError, UseAfterCloseError

from conftest import FIRST_PIXELS, SECOND_PIXELS


@pytest.fixture()
def im():
    with StreamRegistry() as registry:
        yield registry


def test_read_header(im: StreamRegistry, single_dv: Path):
    istream = 1
    assert im.IMOpen(istream, str(single_dv), "ro") == 0

    ixyz, mxyz, pixeltype, dmin, dmax, dmean = im.IMRdHdr(istream)
    assert ixyz == (32, 32, 18)
    assert mxyz == (1, 1, 1)
    assert pixeltype == 6
    assert dmin == 215
    assert dmax == 1743
    assert dmean == pytest.approx(775.83331)

    header = im.IMGetHdr(istream)
    assert (header.nx, header.ny, header.nz) == (32, 32, 18)
    assert header.num_planes == 3
    assert header.num_waves == 3
    assert header.num_times == 2

    im.IMClose(istream)
    assert istream not in im


def test_position_and_read(im: StreamRegistry, single_dv: Path):
    assert im.open_stream(3, single_dv) == 0
    buf = np.empty((32, 32), dtype=np.uint16)
    assert im.position_stream(3, 0, 0, 0) == 0
    assert im.read_section(3, buf) == 0
    assert buf[0, :3].tolist() == FIRST_PIXELS
    # next section without re-positioning
    assert im.read_section(3, buf) == 0
    assert buf[0, :3].tolist() == SECOND_PIXELS

    # z, w, t argument order
    assert im.IMPosnZWT(3, 2, 1, 1) == 0
    assert im.get_file(3).tell_coords() == (1, 1, 2)


@pytest.mark.parametrize("zwt", [(3, 0, 0), (0, 3, 0), (0, 0, 2), (-1, 0, 0)])
def test_position_failure_returns_status(im: StreamRegistry, single_dv: Path, zwt):
    im.open_stream(1, single_dv)
    assert im.position_stream(1, *zwt) == 1


def test_unknown_stream(im: StreamRegistry, caplog):
    with pytest.raises(StreamNotFoundError, match="Stream not found: 7"):
        im.get_header(7)
    with pytest.raises(KeyError):
        im.read_header_summary(7)
    with caplog.at_level(logging.ERROR, logger="dvfile.ive"):
        assert im.position_stream(7, 0, 0, 0) == 1
        assert im.read_section(7, bytearray(2048)) == 1
    assert "Stream not found: 7" in caplog.text
    im.close_stream(7)  # no-op


def test_read_failure_returns_status(im: StreamRegistry, single_dv: Path):
    im.open_stream(1, single_dv)
    im.position_stream(1, 2, 2, 1)
    buf = bytearray(32 * 32 * 2)
    assert im.read_section(1, buf) == 0
    # past the last section
    assert im.read_section(1, buf) == 1


def test_reuse_stream_closes_previous(im: StreamRegistry, single_dv: Path):
    assert im.open_stream(1, single_dv) == 0
    first = im.get_file(1)
    with pytest.warns(UserWarning, match="Reusing stream identifier 1"):
        assert im.open_stream(1, single_dv) == 0
    assert first.closed
    with pytest.raises(UseAfterCloseError):
        first.read_section()
    second = im.get_file(1)
    assert second is not first
    assert not second.closed
    assert len(im) == 1


def test_open_failures(im: StreamRegistry, single_dv: Path, bad_dv: Path, tmp_path):
    assert im.open_stream(1, tmp_path / "missing.dv") == -1
    assert im.open_stream(2, bad_dv) == -1
    assert im.open_stream(3, single_dv, "new") == -1
    assert len(im) == 0

    # a failed reopen still releases the previous stream
    assert im.open_stream(4, single_dv) == 0
    previous = im.get_file(4)
    with pytest.warns(UserWarning):
        assert im.open_stream(4, single_dv, "rw") == -1
    assert previous.closed
    assert 4 not in im


def test_close_all(single_dv: Path):
    im = StreamRegistry()
    for i in range(3):
        im.open_stream(i, single_dv)
    files = [im.get_file(i) for i in im]
    assert sorted(im) == [0, 1, 2]
    im.close_all()
    assert len(im) == 0
    assert all(f.closed for f in files)


def test_registries_are_independent(single_dv: Path):
    with StreamRegistry() as a, StreamRegistry() as b:
        a.open_stream(1, single_dv)
        assert 1 in a
        assert 1 not in b


def test_unsupported_calls_warn(im: StreamRegistry, single_dv: Path):
    im.open_stream(1, single_dv)
    with pytest.warns(UserWarning, match="IMAlCon"):
        im.IMAlCon(1, 1)
    with pytest.warns(UserWarning, match="IMAlLab"):
        im.IMAlLab(1, ["title"], 1)
    with pytest.warns(UserWarning, match="IMAlPrt"):
        im.IMAlPrt(1)
    with pytest.warns(UserWarning, match="IMPutHdr"):
        im.IMPutHdr(1, im.IMGetHdr(1))
    with pytest.warns(UserWarning, match="IMWrHdr"):
        im.IMWrHdr(1, "title", 0, 0.0, 1.0, 0.5)
    with pytest.warns(UserWarning, match="IMWrSec"):
        im.IMWrSec(1, bytearray(10))
    with pytest.warns(UserWarning, match="IMRtExHdrZWT"):
        assert im.IMRtExHdrZWT(1, 0, 0, 0) == ([], [])
    # header is untouched
    assert im.get_header(1).amin == 215


@pytest.mark.filterwarnings("error")
def test_disabled_flags_are_silent(im: StreamRegistry):
    im.IMAlCon(1, 0)
    im.IMAlPrt(0)


@pytest.mark.parametrize(
    "buffer",
    [np.empty(10, np.uint16), np.zeros((32, 64), np.uint16)[:, ::2], bytes(2048)],
    ids=["small", "strided", "readonly"],
)
def test_bad_buffer_returns_status(im: StreamRegistry, single_dv: Path, buffer, caplog):
    im.open_stream(1, single_dv)
    with caplog.at_level(logging.ERROR, logger="dvfile.ive"):
        assert im.IMRdSec(1, buffer) == 1
    assert "Error reading section from stream 1" in caplog.text
    # the stream is still usable
    assert im.get_file(1).tell_section() == 0
    buf = np.empty((32, 32), dtype=np.uint16)
    assert im.IMRdSec(1, buf) == 0
    assert buf[0, :3].tolist() == FIRST_PIXELS
