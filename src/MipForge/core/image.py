"""In-memory image and mip chain data model.

Pixel buffers are numpy arrays shaped ``(H, W, C)`` with 1-4 channels.
Transforms always operate on float32 copies, so a stage never writes into a
buffer owned by the previous stage.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Tuple

import numpy as np
from PIL import Image as PILImage

from .errors import DimensionMismatch, UnsupportedImageKind

logger = logging.getLogger("mipforge.image")

SUPPORTED_CHANNEL_COUNTS = (1, 2, 3, 4)

_PIL_MODE_FOR_CHANNELS = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


class ColorSpace(Enum):
    """Color-space hint carried by every image."""

    LINEAR = "linear"
    SRGB = "srgb"


@dataclass
class Image:
    """A 2D grid of 1-4 channel pixels tagged with a color-space hint."""

    pixels: np.ndarray
    color_space: ColorSpace = ColorSpace.LINEAR

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        self.pixels = pixels
        if isinstance(self.color_space, str):
            self.color_space = ColorSpace(self.color_space)

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 1 else 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2]) if self.pixels.ndim == 3 else 0

    @property
    def size(self) -> Tuple[int, int]:
        """Return ``(width, height)``."""
        return self.width, self.height

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def is_empty(self) -> bool:
        return self.pixels.ndim != 3 or self.width == 0 or self.height == 0

    def validate(self):
        """Raise UnsupportedImageKind for zero-area or odd channel layouts."""
        if self.pixels.ndim != 3:
            raise UnsupportedImageKind(
                f"Image must be HxW or HxWxC, got shape {self.pixels.shape}"
            )
        if self.is_empty:
            raise UnsupportedImageKind(
                f"Image has zero area ({self.width}x{self.height})"
            )
        if self.channels not in SUPPORTED_CHANNEL_COUNTS:
            raise UnsupportedImageKind(
                f"Unsupported channel count {self.channels} "
                f"(expected one of {SUPPORTED_CHANNEL_COUNTS})"
            )
        if self.pixels.dtype.kind not in "uif":
            raise UnsupportedImageKind(
                f"Unsupported pixel dtype {self.pixels.dtype}"
            )

    def as_float(self) -> np.ndarray:
        """Return a float32 copy, scaling integer data into [0, 1]."""
        arr = self.pixels
        if arr.dtype == np.uint8:
            return arr.astype(np.float32) / 255.0
        if arr.dtype == np.uint16:
            return arr.astype(np.float32) / 65535.0
        if arr.dtype.kind in "ui":
            info = np.iinfo(arr.dtype)
            return (arr.astype(np.float64) / float(info.max)).astype(np.float32)
        return arr.astype(np.float32, copy=True)

    def to_float(self) -> "Image":
        return Image(self.as_float(), self.color_space)

    def to_uint8(self) -> np.ndarray:
        return np.round(np.clip(self.as_float(), 0.0, 1.0) * 255.0).astype(np.uint8)

    def copy(self) -> "Image":
        return Image(self.pixels.copy(), self.color_space)

    @classmethod
    def from_pil(cls, img: PILImage.Image,
                 color_space: ColorSpace = ColorSpace.LINEAR) -> "Image":
        """Build an image from an in-memory Pillow image.

        16-bit integer modes are scaled by 65535 and ``F`` keeps absolute
        values.  Palette, CMYK and other modes are converted to RGB(A).
        """
        if img.mode in ("I;16", "I;16B", "I;16L", "I;16N"):
            arr = np.asarray(img, dtype=np.float32) / 65535.0
        elif img.mode == "I":
            arr = np.clip(np.asarray(img, dtype=np.float32) / 65535.0, 0.0, 1.0)
        elif img.mode == "F":
            arr = np.asarray(img, dtype=np.float32)
        elif img.mode in ("L", "LA", "RGB", "RGBA"):
            arr = np.asarray(img, dtype=np.uint8)
        else:
            target = "RGBA" if "A" in img.getbands() or img.mode == "P" else "RGB"
            logger.debug("Converting Pillow image from %s to %s", img.mode, target)
            with img.convert(target) as converted:
                arr = np.asarray(converted, dtype=np.uint8)
        return cls(np.array(arr), color_space)

    def to_pil(self, bits: int = 8) -> PILImage.Image:
        """Convert to a Pillow image (8-bit, or 16-bit for single channel)."""
        if bits not in (8, 16):
            raise ValueError(f"bits must be 8 or 16, got {bits}")
        arr = np.clip(self.as_float(), 0.0, 1.0)
        if bits == 16:
            if self.channels != 1:
                raise ValueError("16-bit Pillow export supports single-channel images only")
            arr_16 = np.round(arr[:, :, 0] * 65535.0).astype(np.uint16)
            return PILImage.fromarray(arr_16, mode="I;16")
        arr_8 = np.round(arr * 255.0).astype(np.uint8)
        mode = _PIL_MODE_FOR_CHANNELS[self.channels]
        if self.channels == 1:
            arr_8 = arr_8[:, :, 0]
        return PILImage.fromarray(arr_8, mode=mode)


def expected_size(base_width: int, base_height: int, level: int) -> Tuple[int, int]:
    """Dimensions of mip ``level`` for a base of the given size."""
    return max(1, base_width >> level), max(1, base_height >> level)


def halve(width: int, height: int) -> Tuple[int, int]:
    return max(1, width // 2), max(1, height // 2)


@dataclass
class MipLevel:
    """One mip level: an image and its index (0 = full resolution)."""

    image: Image
    level: int

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def copy(self) -> "MipLevel":
        return MipLevel(self.image.copy(), self.level)


@dataclass
class MipChain:
    """Ordered mip levels, level 0 first, each the floor-half of the previous."""

    levels: List[MipLevel] = field(default_factory=list)
    min_mip_size: int = 1

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self) -> Iterator[MipLevel]:
        return iter(self.levels)

    def __getitem__(self, index: int) -> MipLevel:
        return self.levels[index]

    @property
    def base(self) -> MipLevel:
        if not self.levels:
            raise IndexError("MipChain is empty")
        return self.levels[0]

    @property
    def channels(self) -> int:
        return self.base.image.channels

    def dimensions(self) -> List[Tuple[int, int]]:
        return [lvl.size for lvl in self.levels]

    def images(self) -> List[Image]:
        return [lvl.image for lvl in self.levels]

    def copy(self) -> "MipChain":
        return MipChain([lvl.copy() for lvl in self.levels], self.min_mip_size)

    def validate(self):
        """Check level indices and the halving-with-floor invariant."""
        for idx, lvl in enumerate(self.levels):
            if lvl.level != idx:
                raise DimensionMismatch(
                    f"Mip level at position {idx} carries index {lvl.level}"
                )
            if idx == 0:
                continue
            prev = self.levels[idx - 1]
            want = halve(prev.width, prev.height)
            if lvl.size != want:
                raise DimensionMismatch(
                    f"Mip level {idx} is {lvl.width}x{lvl.height}, "
                    f"expected {want[0]}x{want[1]}"
                )

    @classmethod
    def from_images(cls, images: Iterable[Image], min_mip_size: int = 1) -> "MipChain":
        """Wrap pre-built images as a chain and validate it."""
        chain = cls(
            [MipLevel(img, idx) for idx, img in enumerate(images)],
            min_mip_size,
        )
        chain.validate()
        return chain
