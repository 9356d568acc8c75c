"""dvfile: A Python library for reading DeltaVision (.dv) files."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"

__all__ = [
    "__version__",
    "AXIS",
    "DVFile",
    "Header",
    "PixelType",
    "StreamRegistry",
    "errors",
    "imread",
    "is_supported_file",
    "pixel_type_size",
    "structures",
]


from . import errors, structures
from ._dvfile import DVFile, imread
from ._util import AXIS, is_supported_file
from .ive import StreamRegistry
from .structures import Header, PixelType, pixel_type_size
