"""Pack single-channel mip chains into one OG / OGM / OGMH chain.

The packer copies channels; it never resamples.  All sources must share the
same level-0 size.  A slot with no source, or whose source chain is shorter
than the packed chain, is filled with the declared default for that slot.
"""

import dataclasses
import logging
import threading
from typing import Dict, Optional, Tuple

import numpy as np

from ..config import (
    AOProcessingMode, ChannelPackingSettings, ChannelSource, ChannelType,
)
from ..core import (
    ColorSpace, ConversionCancelled, DimensionMismatch, Image, MipChain, MipLevel,
    UnsupportedChannelLayout, expected_size,
)
from .ao import AOProcessor
from .toksvig import ToksvigCorrector

logger = logging.getLogger("mipforge.packing")


class ChannelPacker:
    """Compose per-semantic chains into one packed chain."""

    def pack(self, settings: ChannelPackingSettings,
             cancel_event: Optional[threading.Event] = None) -> MipChain:
        """Build the packed chain described by ``settings``.

        Raises:
            InvalidParameter: malformed settings (no sources, wrong slots...).
            DimensionMismatch: sources disagree on their level-0 size.
            UnsupportedChannelLayout: a source channel index is out of range.
        """
        settings.validate()
        base_w, base_h = self._check_sources(settings)

        processed: Dict[ChannelType, Tuple[MipChain, int]] = {}
        for channel_type, source in settings.sources.items():
            processed[channel_type] = (
                self._preprocess(channel_type, source), source.source_channel,
            )

        level_count = max(len(chain) for chain, _ in processed.values())
        for channel_type, (chain, _) in processed.items():
            if len(chain) < level_count:
                logger.warning(
                    "%s source has %d of %d levels; missing levels use default %.3f",
                    channel_type.value, len(chain), level_count,
                    settings.default_for(channel_type),
                )

        layout = settings.layout
        levels = []
        for level in range(level_count):
            if cancel_event is not None and cancel_event.is_set():
                raise ConversionCancelled(f"Channel packing cancelled at level {level}")
            w, h = expected_size(base_w, base_h, level)
            out = np.empty((h, w, len(layout)), dtype=np.float32)
            cache: Dict[ChannelType, np.ndarray] = {}
            for slot, channel_type in enumerate(layout):
                if channel_type not in cache:
                    cache[channel_type] = self._channel_values(
                        processed.get(channel_type), level, (w, h),
                        settings.default_for(channel_type),
                    )
                out[:, :, slot] = cache[channel_type]
            levels.append(MipLevel(Image(out, ColorSpace.LINEAR), level))

        min_size = min(chain.min_mip_size for chain, _ in processed.values())
        logger.debug(
            "Packed %s: %d levels of %dx%d from %s",
            settings.mode.value.upper(), level_count, base_w, base_h,
            ", ".join(ct.value for ct in processed),
        )
        return MipChain(levels, min_size)

    @staticmethod
    def _check_sources(settings: ChannelPackingSettings) -> Tuple[int, int]:
        base_size = None
        base_name = None
        for channel_type, source in settings.sources.items():
            source.chain.validate()
            size = source.chain.base.size
            if base_size is None:
                base_size, base_name = size, channel_type.value
            elif size != base_size:
                raise DimensionMismatch(
                    f"{channel_type.value} is {size[0]}x{size[1]}, "
                    f"{base_name} is {base_size[0]}x{base_size[1]}"
                )
            if source.source_channel >= source.chain.channels:
                raise UnsupportedChannelLayout(
                    f"{channel_type.value} source_channel {source.source_channel} does not "
                    f"exist in a {source.chain.channels}-channel chain"
                )
            if source.apply_toksvig:
                normal = source.normal_chain
                if len(normal) == 0 or normal.base.size != size:
                    raise DimensionMismatch(
                        f"{channel_type.value} normal chain does not match {size[0]}x{size[1]}"
                    )
                if normal.channels < 2:
                    raise UnsupportedChannelLayout(
                        f"Normal chain for {channel_type.value} needs at least 2 channels"
                    )
        return base_size

    @staticmethod
    def _preprocess(channel_type: ChannelType, source: ChannelSource) -> MipChain:
        chain = source.chain
        if source.ao_mode != AOProcessingMode.NONE:
            chain = AOProcessor().process_chain(
                chain, source.ao_mode, source.ao_bias, source.ao_percentile,
                source.ao_start_level, source.source_channel,
            )
        if source.apply_toksvig:
            toksvig = dataclasses.replace(source.toksvig, channel=source.source_channel)
            chain = ToksvigCorrector().correct(chain, source.normal_chain, toksvig)
        return chain

    @staticmethod
    def _channel_values(entry: Optional[Tuple[MipChain, int]], level: int,
                        size: Tuple[int, int], default: float) -> np.ndarray:
        w, h = size
        if entry is None or level >= len(entry[0]):
            return np.full((h, w), default, dtype=np.float32)
        chain, channel = entry
        image = chain[level].image
        if image.size != size:
            raise DimensionMismatch(
                f"Level {level} is {image.width}x{image.height}, expected {w}x{h}"
            )
        return image.as_float()[:, :, channel]


def pack_channels(settings: ChannelPackingSettings,
                  cancel_event: Optional[threading.Event] = None) -> MipChain:
    return ChannelPacker().pack(settings, cancel_event)
