"""Histogram-based dynamic-range normalization.

Analysis finds robust low/high percentile cutoffs on a reference image and
derives ``scale``/``offset`` such that ``low * scale + offset == 0`` and
``high * scale + offset == 1``.  Application remaps every level of a chain;
the high-quality tier rolls off through a quadratic soft knee instead of a
hard clamp.  The inverse pair returned by ``HistogramResult.reconstruction``
is what a shader needs to restore the original range.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from ..config import HistogramChannelMode, HistogramSettings
from ..core import (
    Image, MipChain, MipLevel, UnsupportedChannelLayout,
    color_channel_count, luminance_bt709,
)

logger = logging.getLogger("mipforge.histogram")

_PER_CHANNEL_MODES = (
    HistogramChannelMode.PER_CHANNEL, HistogramChannelMode.PER_CHANNEL_RGBA,
)


@dataclass(frozen=True)
class HistogramResult:
    """Normalization parameters measured from a reference image."""

    scale: Tuple[float, ...] = (1.0,)
    offset: Tuple[float, ...] = (0.0,)
    range_low: float = 0.0
    range_high: float = 1.0
    range_low_per_channel: Tuple[float, ...] = ()
    range_high_per_channel: Tuple[float, ...] = ()
    tail_fraction: float = 0.0
    knee_applied: bool = False
    knee_width: float = 0.0
    channel_mode: HistogramChannelMode = HistogramChannelMode.AVERAGE_LUMINANCE
    percentile_low: float = 0.0
    percentile_high: float = 100.0
    total_pixels: int = 0
    warnings: Tuple[str, ...] = ()

    @classmethod
    def identity(cls, channel_mode: HistogramChannelMode = HistogramChannelMode.AVERAGE_LUMINANCE,
                 **kwargs) -> "HistogramResult":
        return cls(channel_mode=channel_mode, **kwargs)

    @property
    def is_identity(self) -> bool:
        return all(s == 1.0 for s in self.scale) and all(o == 0.0 for o in self.offset)

    @property
    def is_per_channel(self) -> bool:
        return self.channel_mode in _PER_CHANNEL_MODES

    @property
    def channel_count(self) -> int:
        return len(self.scale)

    def reconstruction(self) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
        """Return ``(scale, offset)`` with ``original = raw * scale + offset``."""
        scales = tuple(1.0 / s for s in self.scale)
        offsets = tuple(-o / s for s, o in zip(self.scale, self.offset))
        return scales, offsets

    def to_metadata(self) -> dict:
        """Key/value payload for an encoder that embeds reconstruction data."""
        scales, offsets = self.reconstruction()
        return {
            "histogram.channel_mode": self.channel_mode.value,
            "histogram.scale": [float(s) for s in scales],
            "histogram.offset": [float(o) for o in offsets],
            "histogram.percentiles": [float(self.percentile_low), float(self.percentile_high)],
            "histogram.knee": float(self.knee_width) if self.knee_applied else 0.0,
        }


@dataclass(frozen=True)
class _ChannelRange:
    low: float
    high: float
    tail_count: int
    total: int


def soft_knee(t: np.ndarray, knee: float) -> np.ndarray:
    """Clamp ``t`` to [0, 1] with quadratic roll-offs of half-width ``knee``.

    The curve is C1-continuous, and equals ``t`` on ``[knee, 1 - knee]``.
    """
    if knee <= 0:
        return np.clip(t, 0.0, 1.0)
    four_k = 4.0 * knee
    out = np.where(
        t <= -knee, 0.0,
        np.where(t < knee, (t + knee) ** 2 / four_k, t),
    )
    out = np.where(
        t >= 1.0 + knee, 1.0,
        np.where(t > 1.0 - knee, 1.0 - (1.0 + knee - t) ** 2 / four_k, out),
    )
    return out.astype(np.float32, copy=False)


class HistogramNormalizer:
    """Analyze and apply percentile-based range normalization."""

    def analyze(self, image: Image, settings: HistogramSettings) -> HistogramResult:
        """Measure scale/offset on ``image`` (conventionally mip level 0)."""
        settings.validate()
        image.validate()
        common = dict(
            channel_mode=settings.channel_mode,
            knee_applied=settings.uses_knee,
            knee_width=settings.knee_width if settings.uses_knee else 0.0,
            percentile_low=settings.percentile_low,
            percentile_high=settings.percentile_high,
            total_pixels=image.width * image.height,
        )
        if not settings.enabled:
            return HistogramResult.identity(**common)

        warnings: List[str] = []
        samples = self._channel_samples(image.as_float(), settings.channel_mode)
        ranges = []
        for values in samples:
            finite = values[np.isfinite(values)]
            if finite.size != values.size:
                warnings.append(
                    f"Ignored {values.size - finite.size} non-finite samples"
                )
            if finite.size == 0:
                ranges.append(None)
            else:
                ranges.append(self._percentile_range(finite, settings))

        scales, offsets = [], []
        for idx, rng in enumerate(ranges):
            label = "image" if len(ranges) == 1 else f"channel {idx}"
            if rng is None:
                warnings.append(f"No finite samples in {label}; using identity")
                scales.append(1.0)
                offsets.append(0.0)
                continue
            spread = rng.high - rng.low
            if spread <= 0.0 or spread < settings.min_range_threshold:
                warnings.append(
                    f"Range too small in {label} ({spread:.5f} < "
                    f"{settings.min_range_threshold}); near-constant content, using identity"
                )
                logger.warning(
                    "Near-constant %s (range %.5f); histogram normalization skipped",
                    label, spread,
                )
                scales.append(1.0)
                offsets.append(0.0)
                continue
            scale = 1.0 / spread
            scales.append(scale)
            offsets.append(-rng.low * scale)

        valid = [r for r in ranges if r is not None]
        tail_total = sum(r.tail_count for r in valid)
        sample_total = sum(r.total for r in valid)
        tail_fraction = tail_total / sample_total if sample_total else 0.0
        if tail_fraction > settings.tail_threshold:
            warnings.append(
                f"High tail fraction {tail_fraction:.4f} exceeds threshold "
                f"{settings.tail_threshold}; outliers will be clipped"
            )
            logger.info(
                "Tail fraction %.4f above threshold %.4f", tail_fraction, settings.tail_threshold,
            )

        lows = tuple(r.low if r is not None else 0.0 for r in ranges)
        highs = tuple(r.high if r is not None else 1.0 for r in ranges)
        result = HistogramResult(
            scale=tuple(float(s) for s in scales),
            offset=tuple(float(o) for o in offsets),
            range_low=float(min(lows)),
            range_high=float(max(highs)),
            range_low_per_channel=lows,
            range_high_per_channel=highs,
            tail_fraction=float(tail_fraction),
            warnings=tuple(warnings),
            **common,
        )
        logger.debug(
            "Histogram %s: range [%.4f, %.4f] scale=%s offset=%s tail=%.4f",
            settings.channel_mode.value, result.range_low, result.range_high,
            result.scale, result.offset, result.tail_fraction,
        )
        return result

    @staticmethod
    def _channel_samples(pixels: np.ndarray, mode: HistogramChannelMode) -> List[np.ndarray]:
        n_color = color_channel_count(pixels.shape[-1])
        if mode == HistogramChannelMode.AVERAGE_LUMINANCE:
            return [luminance_bt709(pixels).ravel()]
        if mode == HistogramChannelMode.RGB_ONLY:
            return [pixels[:, :, :n_color].ravel()]
        if mode == HistogramChannelMode.PER_CHANNEL:
            return [pixels[:, :, c].ravel() for c in range(n_color)]
        return [pixels[:, :, c].ravel() for c in range(pixels.shape[-1])]

    @staticmethod
    def _percentile_range(values: np.ndarray, settings: HistogramSettings) -> _ChannelRange:
        """Locate percentile cutoffs on a ``settings.bins`` histogram.

        Bins span [min(0, data), max(1, data)], so for 8-bit data in [0, 1]
        with 256 bins, bin ``k`` is exactly the value ``k / 255``.
        """
        bins = settings.bins
        vmin = min(0.0, float(values.min()))
        vmax = max(1.0, float(values.max()))
        span = vmax - vmin
        idx = np.rint((values - vmin) / span * (bins - 1)).astype(np.intp)
        np.clip(idx, 0, bins - 1, out=idx)
        cumulative = np.cumsum(np.bincount(idx, minlength=bins))
        total = int(cumulative[-1])

        low_target = max(1, math.ceil(total * settings.percentile_low / 100.0))
        high_target = max(1, math.ceil(total * settings.percentile_high / 100.0))
        low_idx = int(np.searchsorted(cumulative, low_target, side="left"))
        high_idx = int(np.searchsorted(cumulative, high_target, side="left"))
        low_idx = min(low_idx, bins - 1)
        high_idx = min(max(high_idx, low_idx), bins - 1)

        below = int(cumulative[low_idx - 1]) if low_idx > 0 else 0
        above = total - int(cumulative[high_idx])
        step = span / (bins - 1)
        return _ChannelRange(
            low=vmin + low_idx * step,
            high=vmin + high_idx * step,
            tail_count=below + above,
            total=total,
        )

    def apply_image(self, image: Image, result: HistogramResult) -> Image:
        """Remap one image; identity results return an unmodified copy."""
        if result.is_identity:
            return image.copy()
        pixels = image.as_float()
        channels = pixels.shape[-1]
        if result.is_per_channel:
            if result.channel_count > channels:
                raise UnsupportedChannelLayout(
                    f"Histogram result has {result.channel_count} channels, "
                    f"image has {channels}"
                )
            targets = list(range(result.channel_count))
            params = list(zip(result.scale, result.offset))
        else:
            targets = list(range(color_channel_count(channels)))
            params = [(result.scale[0], result.offset[0])] * len(targets)

        knee = result.knee_width if result.knee_applied else 0.0
        for channel, (scale, offset) in zip(targets, params):
            if scale == 1.0 and offset == 0.0:
                continue
            mapped = pixels[:, :, channel] * scale + offset
            pixels[:, :, channel] = soft_knee(mapped, knee)
        return Image(pixels, image.color_space)

    def apply(self, chain: MipChain, result: HistogramResult) -> MipChain:
        """Return a new chain with every level remapped."""
        return MipChain(
            [MipLevel(self.apply_image(lvl.image, result), lvl.level) for lvl in chain],
            chain.min_mip_size,
        )

    def normalize(self, chain: MipChain, settings: HistogramSettings):
        """Analyze level 0 and apply the result to the whole chain."""
        result = self.analyze(chain.base.image, settings)
        return self.apply(chain, result), result


def analyze_histogram(image: Image, settings: HistogramSettings) -> HistogramResult:
    return HistogramNormalizer().analyze(image, settings)


def apply_histogram_normalization(chain: MipChain, result: HistogramResult) -> MipChain:
    return HistogramNormalizer().apply(chain, result)
