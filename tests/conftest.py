from __future__ import annotations

import struct
from pathlib import Path
from typing import Sequence

import numpy as np
import psutil
import pytest

# one section of the sample file starts with these values
FIRST_PIXELS = [326, 326, 284]
SECOND_PIXELS = [522, 522, 516]

MODES = {"u1": 0, "i2": 1, "f4": 2, "c8": 4, "u2": 6, "i4": 7}


def write_dv(
    path: Path,
    data: np.ndarray,
    byteorder: str = "<",
    mode: int | None = None,
    extended_header: bytes = b"",
    interleaved: int = 0,
    file_type: int = 0,
    num_times: int | None = None,
    num_waves: int | None = None,
    wavelengths: Sequence[int] = (),
    titles: Sequence[str] = (),
    mxyz: tuple[int, int, int] = (1, 1, 1),
    spacing: tuple[float, float, float] = (0.1, 0.1, 0.3),
    stats: tuple[float, float, float] | None = None,
    magic: bytes | None = None,
) -> Path:
    """Write `data` with shape (T, C, Z, Y, X) as a DeltaVision file."""
    nt, nc, nz, ny, nx = data.shape
    if mode is None:
        mode = MODES[data.dtype.str[1:]]
    if stats is None:
        real = data.real
        stats = (float(real.min()), float(real.max()), float(real.mean()))
    bo = byteorder

    hdr = bytearray(1024)
    struct.pack_into(f"{bo}4i", hdr, 0, nx, ny, nt * nc * nz, mode)
    struct.pack_into(f"{bo}3i", hdr, 28, *mxyz)
    struct.pack_into(f"{bo}3f", hdr, 40, *spacing)
    struct.pack_into(f"{bo}3f", hdr, 52, 90, 90, 90)
    struct.pack_into(f"{bo}3i", hdr, 64, 1, 2, 3)
    struct.pack_into(f"{bo}3f", hdr, 76, *stats)
    struct.pack_into(f"{bo}i", hdr, 92, len(extended_header))
    if magic is None:
        magic = b"\xa0\xc0" if bo == "<" else b"\xc0\xa0"
    hdr[96:98] = magic
    struct.pack_into(f"{bo}h", hdr, 160, file_type)
    struct.pack_into(
        f"{bo}2h",
        hdr,
        180,
        nt if num_times is None else num_times,
        interleaved,
    )
    waves = list(wavelengths) + [0] * (5 - len(wavelengths))
    nwaves = nc if num_waves is None else num_waves
    struct.pack_into(f"{bo}6h", hdr, 196, nwaves, *waves)
    struct.pack_into(f"{bo}i", hdr, 220, len(titles))
    for i, title in enumerate(titles):
        hdr[224 + 80 * i : 224 + 80 * i + len(title)] = title.encode("latin-1")

    with open(path, "wb") as fh:
        fh.write(hdr)
        fh.write(extended_header)
        fh.write(data.astype(data.dtype.newbyteorder(bo)).tobytes())
    return path


def sample_data() -> np.ndarray:
    rng = np.random.default_rng(0)
    data = rng.integers(215, 1744, size=(2, 3, 3, 32, 32)).astype(np.uint16)
    data[0, 0, 0, 0, :3] = FIRST_PIXELS
    data[0, 0, 1, 0, :3] = SECOND_PIXELS
    return data


@pytest.fixture()
def sample_data_array() -> np.ndarray:
    return sample_data()


@pytest.fixture()
def single_dv(tmp_path: Path) -> Path:
    """t2 c3 z3 y32 x32 uint16 file mirroring the reference example file."""
    return write_dv(
        tmp_path / "example.dv",
        sample_data(),
        stats=(215, 1743, 775.83331),
        wavelengths=(528, 617, 683),
        titles=["first title", "second title"],
    )


@pytest.fixture(params=["<", ">"], ids=["little", "big"])
def any_dv(request, tmp_path: Path) -> tuple[Path, np.ndarray, str]:
    """The sample data written in both byte orders."""
    data = sample_data()
    name = "little" if request.param == "<" else "big"
    path = write_dv(tmp_path / f"sample_{name}.dv", data, request.param)
    return path, data, request.param


@pytest.fixture()
def bad_dv(tmp_path: Path) -> Path:
    return write_dv(tmp_path / "bad.dv", sample_data(), magic=b"\x00\x00")


@pytest.fixture(autouse=True)
def _assert_no_files_left_open():
    files_before = {p for p in psutil.Process().open_files() if p.path.endswith(".dv")}
    yield
    files_after = {p for p in psutil.Process().open_files() if p.path.endswith(".dv")}
    assert files_before == files_after == set()
