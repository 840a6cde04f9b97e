"""Per-level mip modifiers.

A modifier receives each freshly filtered level (never level 0) after the
generator's own renormalization step, and returns a replacement image.
Modifiers run in the order they are registered on the profile.
"""

import logging
from typing import Callable, Iterable, Optional

import numpy as np
from scipy.ndimage import gaussian_filter

from ..config import RoughnessEncoding, TextureType
from ..core import (
    DimensionMismatch, Image, color_channel_count, decode_normals, encode_normals,
    renormalize_vectors,
)

logger = logging.getLogger("mipforge.modifiers")

# Maps whose values are data rather than color; never sharpened.
DATA_TEXTURE_TYPES = frozenset({
    TextureType.NORMAL, TextureType.HEIGHT, TextureType.ROUGHNESS,
    TextureType.GLOSS, TextureType.METALLIC, TextureType.AMBIENT_OCCLUSION,
})


class MipModifier:
    """Base class for per-level transforms."""

    name = "modifier"

    def applies_to(self, texture_type: TextureType) -> bool:
        return True

    def apply(self, image: Image, level: int, source: Image) -> Image:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


def _spatial_sigma(radius: float, ndim: int):
    return (radius, radius) + (0,) * (ndim - 2)


class NormalizeNormalsModifier(MipModifier):
    """Decode to [-1,1]^3, rescale to unit length, re-encode."""

    name = "normalize_normals"

    def apply(self, image: Image, level: int, source: Image) -> Image:
        pixels = image.pixels
        if pixels.shape[-1] < 3:
            # Two-channel maps store X/Y only; Z is implied, so just keep
            # the XY pair inside the unit disc.
            decoded = decode_normals(pixels)
            decoded = renormalize_vectors(decoded)
            out = pixels.astype(np.float32, copy=True)
            out[:, :, :2] = encode_normals(decoded)[:, :, :2]
            return Image(out, image.color_space)
        decoded = renormalize_vectors(pixels[:, :, :3].astype(np.float32) * 2.0 - 1.0)
        out = pixels.astype(np.float32, copy=True)
        out[:, :, :3] = encode_normals(decoded)
        return Image(out, image.color_space)


class GaussianBlurModifier(MipModifier):
    """Extra Gaussian softening applied to every produced level."""

    name = "gaussian_blur"

    def __init__(self, radius: float):
        if radius < 0:
            raise ValueError(f"radius must be >= 0, got {radius}")
        self.radius = float(radius)

    def apply(self, image: Image, level: int, source: Image) -> Image:
        if self.radius <= 0:
            return image
        blurred = gaussian_filter(
            image.pixels, sigma=_spatial_sigma(self.radius, image.pixels.ndim), mode="nearest",
        )
        return Image(blurred.astype(np.float32), image.color_space)

    def __repr__(self):
        return f"GaussianBlurModifier(radius={self.radius})"


class RoughnessBiasModifier(MipModifier):
    """Raise roughness per level in GGX alpha (r^2) space.

    new_r = sqrt(r^2 + increase * (2^level - 1)); gloss maps are handled
    through their complement.
    """

    name = "roughness_bias"

    def __init__(self, increase: float, encoding: RoughnessEncoding = RoughnessEncoding.ROUGHNESS):
        self.increase = float(increase)
        self.encoding = encoding

    def applies_to(self, texture_type: TextureType) -> bool:
        return texture_type in (TextureType.ROUGHNESS, TextureType.GLOSS)

    def apply(self, image: Image, level: int, source: Image) -> Image:
        bias = self.increase * (2.0 ** level - 1.0)
        if bias <= 0:
            return image
        out = image.pixels.astype(np.float32, copy=True)
        n = color_channel_count(out.shape[-1])
        values = np.clip(out[:, :, :n], 0.0, 1.0)
        if self.encoding == RoughnessEncoding.GLOSS:
            values = 1.0 - values
        values = np.sqrt(np.clip(values ** 2 + bias, 0.0, 1.0))
        if self.encoding == RoughnessEncoding.GLOSS:
            values = 1.0 - values
        out[:, :, :n] = values
        return Image(out, image.color_space)

    def __repr__(self):
        return f"RoughnessBiasModifier(increase={self.increase}, encoding={self.encoding.value})"


class SharpenModifier(MipModifier):
    """Unsharp mask on selected levels to counter filter softness."""

    name = "sharpen"

    def __init__(self, strength: float = 0.3, radius: float = 1.0,
                 levels: Iterable[int] = (1, 2, 3)):
        self.strength = float(strength)
        self.radius = float(radius)
        self.levels = tuple(levels)

    def applies_to(self, texture_type: TextureType) -> bool:
        return texture_type not in DATA_TEXTURE_TYPES

    def apply(self, image: Image, level: int, source: Image) -> Image:
        if level not in self.levels:
            return image
        out = image.pixels.astype(np.float32, copy=True)
        n = color_channel_count(out.shape[-1])
        color = out[:, :, :n]
        blurred = gaussian_filter(color, sigma=_spatial_sigma(self.radius, color.ndim))
        out[:, :, :n] = np.clip(color + self.strength * (color - blurred), 0.0, 1.0)
        return Image(out, image.color_space)

    def __repr__(self):
        return (
            f"SharpenModifier(strength={self.strength}, radius={self.radius}, "
            f"levels={self.levels})"
        )


class FunctionModifier(MipModifier):
    """Wrap a plain ``func(pixels, level) -> pixels`` callable."""

    def __init__(self, func: Callable[[np.ndarray, int], np.ndarray], name: str = "function",
                 texture_types: Optional[Iterable[TextureType]] = None):
        self.func = func
        self.name = name
        self.texture_types = frozenset(texture_types) if texture_types is not None else None

    def applies_to(self, texture_type: TextureType) -> bool:
        return self.texture_types is None or texture_type in self.texture_types

    def apply(self, image: Image, level: int, source: Image) -> Image:
        result = np.asarray(self.func(image.pixels.copy(), level), dtype=np.float32)
        if result.ndim == 2:
            result = result[:, :, np.newaxis]
        if result.shape[:2] != image.pixels.shape[:2]:
            raise DimensionMismatch(
                f"Modifier '{self.name}' changed level {level} size from "
                f"{image.pixels.shape[:2]} to {result.shape[:2]}"
            )
        return Image(result, image.color_space)

    def __repr__(self):
        return f"FunctionModifier(name={self.name!r})"
