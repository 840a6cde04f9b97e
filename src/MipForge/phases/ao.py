"""Ambient-occlusion mip darkening.

Box-filtered occlusion loses contrast with distance because crevices average
away.  These passes reshape each coarse level around its own statistics
(minimum, mean or a low percentile) while keeping per-pixel variation.
"""

import logging

import numpy as np

from ..config import AOProcessingMode
from ..core import Image, MipChain, MipLevel

logger = logging.getLogger("mipforge.ao")

# Share of the distance to the percentile value a dark pixel is moved.
PERCENTILE_BLEND = 0.3


def biased_darkening(values: np.ndarray, bias: float) -> np.ndarray:
    """Lerp towards ``lerp(mean, min, bias)`` by ``bias / 2``."""
    target = float(values.mean()) + (float(values.min()) - float(values.mean())) * bias
    out = values + (target - values) * (bias * 0.5)
    return np.clip(out, 0.0, 1.0)


def percentile_blend(values: np.ndarray, percentile: float) -> np.ndarray:
    """Move values below the level's percentile 30% of the way to it."""
    threshold = float(np.percentile(values, percentile))
    out = np.where(values < threshold, values + (threshold - values) * PERCENTILE_BLEND, values)
    return np.clip(out, 0.0, 1.0)


class AOProcessor:
    """Apply an :class:`AOProcessingMode` to one channel of a chain."""

    def process_chain(self, chain: MipChain, mode: AOProcessingMode, bias: float = 0.5,
                      percentile: float = 10.0, start_level: int = 1,
                      channel: int = 0) -> MipChain:
        if mode == AOProcessingMode.NONE:
            return chain.copy()
        levels = []
        for lvl in chain:
            if lvl.level < start_level:
                levels.append(lvl.copy())
                continue
            pixels = lvl.image.as_float()
            values = pixels[:, :, channel].copy()
            if mode == AOProcessingMode.BIASED_DARKENING:
                pixels[:, :, channel] = biased_darkening(values, bias)
            else:
                pixels[:, :, channel] = percentile_blend(values, percentile)
            logger.debug(
                "AO %s on level %d (%dx%d): mean %.3f -> %.3f",
                mode.value, lvl.level, lvl.width, lvl.height,
                float(values.mean()), float(pixels[:, :, channel].mean()),
            )
            levels.append(MipLevel(Image(pixels, lvl.image.color_space), lvl.level))
        return MipChain(levels, chain.min_mip_size)
