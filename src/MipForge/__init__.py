"""Texture pixel-transform core: mip chains, range normalization, Toksvig, packing.

The five module-level functions below are the library boundary an external
orchestrator calls; each one is a pure transform over in-memory buffers.
Records go to the ``mipforge`` logger tree, which carries only a
``NullHandler`` until the host calls :func:`setup_logging`.
"""

import logging as _logging

from .config import (
    AOProcessingMode,
    ChannelPackingSettings,
    ChannelSource,
    ChannelType,
    FilterType,
    GenerationProfile,
    HistogramChannelMode,
    HistogramQuality,
    HistogramSettings,
    PackingMode,
    PipelineConfig,
    RoughnessEncoding,
    TextureType,
    ToksvigSettings,
    WrapMode,
)
from .core import (
    ColorSpace,
    ConversionCancelled,
    DimensionMismatch,
    Image,
    InvalidParameter,
    MipChain,
    MipLevel,
    TextureConversionError,
    UnsupportedChannelLayout,
    UnsupportedImageKind,
    setup_logging,
)
from .phases.histogram import (
    HistogramResult,
    analyze_histogram,
    apply_histogram_normalization,
)
from .phases.mipmap import generate_mip_chain
from .phases.packing import pack_channels
from .phases.toksvig import apply_toksvig_correction

__version__ = "0.3.0"

_logging.getLogger("mipforge").addHandler(_logging.NullHandler())

__all__ = [
    "__version__",
    "generate_mip_chain",
    "analyze_histogram",
    "apply_histogram_normalization",
    "apply_toksvig_correction",
    "pack_channels",
    "setup_logging",
    "Image", "MipLevel", "MipChain", "ColorSpace",
    "GenerationProfile", "HistogramSettings", "HistogramResult",
    "ToksvigSettings", "ChannelPackingSettings", "ChannelSource",
    "TextureType", "FilterType", "WrapMode", "RoughnessEncoding",
    "HistogramQuality", "HistogramChannelMode", "PackingMode", "ChannelType",
    "AOProcessingMode", "PipelineConfig",
    "TextureConversionError", "UnsupportedImageKind", "DimensionMismatch",
    "UnsupportedChannelLayout", "InvalidParameter", "ConversionCancelled",
]
