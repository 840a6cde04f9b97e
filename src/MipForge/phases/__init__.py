"""Pixel-transform phases: mip generation, normalization, Toksvig, packing."""

from .mipmap import MipChainGenerator, generate_mip_chain
from .histogram import (
    HistogramNormalizer, HistogramResult, analyze_histogram, apply_histogram_normalization,
)
from .toksvig import ToksvigCorrector, ToksvigResult, apply_toksvig_correction, compute_variance
from .ao import AOProcessor
from .packing import ChannelPacker, pack_channels
from .modifiers import (
    MipModifier, NormalizeNormalsModifier, GaussianBlurModifier,
    RoughnessBiasModifier, SharpenModifier, FunctionModifier,
)

__all__ = [
    "MipChainGenerator", "generate_mip_chain",
    "HistogramNormalizer", "HistogramResult", "analyze_histogram",
    "apply_histogram_normalization",
    "ToksvigCorrector", "ToksvigResult", "apply_toksvig_correction", "compute_variance",
    "AOProcessor",
    "ChannelPacker", "pack_channels",
    "MipModifier", "NormalizeNormalsModifier", "GaussianBlurModifier",
    "RoughnessBiasModifier", "SharpenModifier", "FunctionModifier",
]
