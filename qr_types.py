"""Data carried between the pipeline stages."""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from qr_errors import DecodeError, ImageUnreadable, InsufficientContrast

# Channel layouts understood by PixelBuffer, with their sample count per pixel
LAYOUTS = {'L': 1, 'RGB': 3, 'BGR': 3, 'RGBA': 4, 'BGRA': 4}


@dataclass(frozen=True)
class PixelBuffer:
    """Raw image handed over by a frame grabber or an image-file decoder.

    `data` is any bytes-like object (or a numpy array) holding
    width * height * channels 8-bit samples, row-major.
    """
    width: int
    height: int
    data: object
    layout: str = 'RGBA'

    def __post_init__(self):
        if self.layout not in LAYOUTS:
            raise ValueError(f"Unknown channel layout {self.layout!r}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid size {self.width}x{self.height}")
        expected = self.width * self.height * self.channels
        actual = np.asarray(self.data).size if isinstance(self.data, np.ndarray) else len(self.data)
        if actual != expected:
            raise ValueError(f"Expected {expected} samples for {self.width}x{self.height} "
                             f"{self.layout}, got {actual}")

    @property
    def channels(self) -> int:
        return LAYOUTS[self.layout]

    @classmethod
    def from_array(cls, image, layout=None):
        """Wrap a numpy image. 3-channel arrays are taken as BGR, the cv2 default."""
        image = np.ascontiguousarray(image, dtype=np.uint8)
        if layout is None:
            if image.ndim == 2:
                layout = 'L'
            elif image.shape[2] == 3:
                layout = 'BGR'
            elif image.shape[2] == 4:
                layout = 'BGRA'
            else:
                raise ValueError(f"Unsupported image shape {image.shape}")
        return cls(image.shape[1], image.shape[0], image.reshape(-1), layout)

    def to_array(self) -> np.ndarray:
        if isinstance(self.data, (bytes, bytearray, memoryview)):
            arr = np.frombuffer(self.data, dtype=np.uint8).copy()
        else:
            arr = np.asarray(self.data, dtype=np.uint8).reshape(-1)
        if self.channels == 1:
            return arr.reshape(self.height, self.width)
        return arr.reshape(self.height, self.width, self.channels)


class FinderPattern(NamedTuple):
    x: float
    y: float
    module_size: float
    count: int = 1

    def distance(self, other) -> float:
        return float(np.hypot(self.x - other.x, self.y - other.y))


@dataclass
class SymbolGeometry:
    """Where the symbol sits in the image and how big it is."""
    version: int
    transform: np.ndarray  # 3x3 homography, module space -> pixel space
    module_size: float
    top_left: FinderPattern
    top_right: FinderPattern
    bottom_left: FinderPattern
    alignment: Optional[Tuple[float, float]] = None

    @property
    def dimension(self) -> int:
        return self.version * 4 + 17


class FormatInfo(NamedTuple):
    ec_level: str  # 'L', 'M', 'Q' or 'H'
    mask: int


@dataclass
class CodewordBlock:
    """Data codewords followed by the block's EC codewords."""
    codewords: List[int]
    data_count: int

    @property
    def ec_count(self) -> int:
        return len(self.codewords) - self.data_count

    @property
    def capacity(self) -> int:
        return self.ec_count // 2


class DecodedSegment(NamedTuple):
    mode: str  # 'numeric', 'alphanumeric', 'byte', 'kanji', 'hanzi'
    text: str


# User-facing categories for the upload path
MSG_UNREADABLE = "Unable to process the uploaded image."
MSG_NOT_FOUND = "No QR code detected in the uploaded image."


@dataclass
class DecodeResult:
    text: Optional[str] = None
    version: Optional[int] = None
    ec_level: Optional[str] = None
    mask: Optional[int] = None
    segments: List[DecodedSegment] = field(default_factory=list)
    structured_append: Optional[Tuple[int, int, int]] = None
    error: Optional[DecodeError] = None

    @classmethod
    def failure(cls, error):
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None

    @property
    def reason(self) -> Optional[str]:
        return None if self.error is None else type(self.error).__name__

    @property
    def user_message(self) -> Optional[str]:
        if self.ok:
            return None
        if isinstance(self.error, (InsufficientContrast, ImageUnreadable)):
            return MSG_UNREADABLE
        return MSG_NOT_FOUND

    def __eq__(self, other):
        if not isinstance(other, DecodeResult):
            return NotImplemented
        return (self.text, self.version, self.ec_level, self.mask, self.segments,
                self.structured_append, self.reason, str(self.error or '')) == \
               (other.text, other.version, other.ec_level, other.mask, other.segments,
                other.structured_append, other.reason, str(other.error or ''))
