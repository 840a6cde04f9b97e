"""Toksvig-style specular anti-aliasing for roughness/gloss mip chains.

For every corrected level the paired normal-map level is decoded, averaged
over a 3x3 clamped-edge neighbourhood, and the shortening of the mean vector
(``1 - |mean|``) is used as a variance estimate.  That variance widens the
GGX alpha of the roughness channel::

    alpha0 = r^2                     (or (1 - g)^2 for gloss)
    alpha' = clamp(alpha0 + k * variance, 1e-4, 1)
    r'     = sqrt(alpha')            (or 1 - sqrt(alpha'))

Pixels whose ``k * variance`` is zero keep their exact input value, so a
composite power of zero reproduces the input chain bit for bit.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy.ndimage import convolve, uniform_filter

from ..config import RoughnessEncoding, ToksvigSettings
from ..core import (
    DimensionMismatch, Image, MipChain, MipLevel, UnsupportedChannelLayout,
    decode_normals, renormalize_vectors,
)

logger = logging.getLogger("mipforge.toksvig")

ALPHA_EPSILON = 1e-4

_BINOMIAL_3X3 = np.outer([1.0, 2.0, 1.0], [1.0, 2.0, 1.0]) / 16.0


@dataclass
class ToksvigResult:
    """Corrected chain plus the per-level variance maps that drove it.

    ``variance_maps[l]`` is None for levels that were passed through.
    """

    chain: MipChain
    variance_maps: List[Optional[np.ndarray]] = field(default_factory=list)


def compute_variance(normal_image: Image, smooth: bool = True,
                     threshold: float = 0.0) -> np.ndarray:
    """Per-pixel normal variance ``1 - |mean3x3(n)|`` in [0, 1)."""
    if normal_image.channels < 2:
        raise UnsupportedChannelLayout(
            f"Normal map needs at least 2 channels, got {normal_image.channels}"
        )
    normals = renormalize_vectors(decode_normals(normal_image.as_float()))
    mean = uniform_filter(normals, size=(3, 3, 1), mode="nearest")
    length = np.sqrt(np.sum(mean ** 2, axis=-1))
    variance = np.clip(1.0 - length, 0.0, 1.0)
    if threshold > 0:
        variance = np.maximum(variance - threshold, 0.0)
    if smooth:
        variance = convolve(variance, _BINOMIAL_3X3, mode="nearest")
    return variance.astype(np.float32)


class ToksvigCorrector:
    """Rewrite a roughness or gloss chain from a paired normal chain."""

    def correct(self, chain: MipChain, normal_chain: MipChain,
                settings: ToksvigSettings) -> MipChain:
        return self.correct_with_variance(chain, normal_chain, settings).chain

    def correct_with_variance(self, chain: MipChain, normal_chain: MipChain,
                              settings: ToksvigSettings) -> ToksvigResult:
        """Correct ``chain`` and keep the variance map of each touched level.

        Raises:
            InvalidParameter: settings out of range.
            DimensionMismatch: level-0 sizes differ.
            UnsupportedChannelLayout: normals have < 2 channels, or the
                value channel does not exist.
        """
        settings.validate()
        self._check_inputs(chain, normal_chain, settings)

        if not settings.enabled:
            return ToksvigResult(chain.copy(), [None] * len(chain))

        levels: List[MipLevel] = []
        variance_maps: List[Optional[np.ndarray]] = []
        for lvl in chain:
            idx = lvl.level
            if idx < settings.min_mip_level:
                levels.append(lvl.copy())
                variance_maps.append(None)
                continue
            if idx >= len(normal_chain):
                logger.warning(
                    "Normal chain has %d levels; roughness level %d passed through uncorrected",
                    len(normal_chain), idx,
                )
                levels.append(lvl.copy())
                variance_maps.append(None)
                continue
            normal_level = normal_chain[idx]
            if normal_level.size != lvl.size:
                raise DimensionMismatch(
                    f"Level {idx}: roughness is {lvl.width}x{lvl.height}, "
                    f"normal is {normal_level.width}x{normal_level.height}"
                )
            variance = compute_variance(
                normal_level.image, settings.smooth_variance, settings.variance_threshold,
            )
            levels.append(MipLevel(self._correct_image(lvl.image, variance, settings), idx))
            variance_maps.append(variance)

        logger.debug(
            "Toksvig corrected %d/%d levels (k=%.3f, encoding=%s, normal=%s)",
            sum(v is not None for v in variance_maps), len(chain),
            settings.composite_power, settings.encoding.value,
            settings.normal_map_id or "<unnamed>",
        )
        return ToksvigResult(MipChain(levels, chain.min_mip_size), variance_maps)

    @staticmethod
    def _check_inputs(chain: MipChain, normal_chain: MipChain, settings: ToksvigSettings):
        if len(chain) == 0 or len(normal_chain) == 0:
            raise DimensionMismatch("Toksvig correction needs two non-empty chains")
        if chain.base.size != normal_chain.base.size:
            raise DimensionMismatch(
                f"Level-0 size mismatch: roughness {chain.base.width}x{chain.base.height}, "
                f"normal {normal_chain.base.width}x{normal_chain.base.height}"
            )
        if normal_chain.channels < 2:
            raise UnsupportedChannelLayout(
                f"Normal chain needs at least 2 encoded components, got {normal_chain.channels}"
            )
        if settings.channel >= chain.channels:
            raise UnsupportedChannelLayout(
                f"Value channel {settings.channel} does not exist in a "
                f"{chain.channels}-channel image"
            )

    @staticmethod
    def _correct_image(image: Image, variance: np.ndarray, settings: ToksvigSettings) -> Image:
        out = image.as_float()
        original = out[:, :, settings.channel].copy()
        delta = settings.composite_power * variance
        if settings.encoding == RoughnessEncoding.GLOSS:
            rough = 1.0 - original
        else:
            rough = original
        alpha = np.clip(np.clip(rough, 0.0, 1.0) ** 2 + delta, ALPHA_EPSILON, 1.0)
        corrected = np.sqrt(alpha)
        if settings.encoding == RoughnessEncoding.GLOSS:
            corrected = 1.0 - corrected
        out[:, :, settings.channel] = np.where(delta > 0, corrected, original)
        return Image(out, image.color_space)


def apply_toksvig_correction(chain: MipChain, normal_chain: MipChain,
                             settings: ToksvigSettings) -> MipChain:
    return ToksvigCorrector().correct(chain, normal_chain, settings)
