"""Core utilities -- re-exports all public symbols for convenience."""

from .errors import (
    TextureConversionError,
    UnsupportedImageKind,
    DimensionMismatch,
    UnsupportedChannelLayout,
    InvalidParameter,
    ConversionCancelled,
)
from .image import (
    ColorSpace,
    Image,
    MipLevel,
    MipChain,
    expected_size,
    halve,
)
from .color import (
    srgb_to_linear,
    linear_to_srgb,
    decode_transfer,
    encode_transfer,
    color_channel_count,
    luminance_bt709,
    decode_normals,
    encode_normals,
    renormalize_vectors,
)
from .logging import setup_logging

__all__ = [
    "TextureConversionError", "UnsupportedImageKind", "DimensionMismatch",
    "UnsupportedChannelLayout", "InvalidParameter", "ConversionCancelled",
    "ColorSpace", "Image", "MipLevel", "MipChain", "expected_size", "halve",
    "srgb_to_linear", "linear_to_srgb", "decode_transfer", "encode_transfer",
    "color_channel_count", "luminance_bt709",
    "decode_normals", "encode_normals", "renormalize_vectors",
    "setup_logging",
]
