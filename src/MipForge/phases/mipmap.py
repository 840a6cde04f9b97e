"""Generate mip chains from a single source image.

Each level is reduced from the previous one (never from level 0), so the
chain always satisfies the halving-with-floor invariant for any source size,
power-of-two or not.  Color is filtered in linear light when the profile
asks for it and the source is gamma-encoded.
"""

import logging
import threading
from typing import List, Optional

import numpy as np
from scipy.ndimage import gaussian_filter

from ..config import FilterType, GenerationProfile, RoughnessEncoding, WrapMode
from ..core import (
    ColorSpace, ConversionCancelled, DimensionMismatch, Image, MipChain, MipLevel,
    color_channel_count, decode_transfer, encode_transfer, halve,
)
from ..core import resample
from .modifiers import NormalizeNormalsModifier

logger = logging.getLogger("mipforge.mipmap")


def _kernel_for(profile: GenerationProfile) -> resample.Kernel:
    ft = profile.filter_type
    if ft == FilterType.TENT:
        return resample.tent_kernel()
    if ft == FilterType.BICUBIC:
        return resample.bicubic_kernel()
    if ft == FilterType.MITCHELL:
        return resample.mitchell_kernel()
    if ft == FilterType.LANCZOS:
        return resample.lanczos_kernel(profile.lanczos_lobes)
    if ft == FilterType.KAISER:
        return resample.kaiser_kernel(profile.kaiser_width, profile.kaiser_alpha)
    if ft == FilterType.GAUSSIAN:
        return resample.gaussian_kernel()
    return resample.box_kernel()


class MipChainGenerator:
    """Produce a full mip chain under a generation profile.

    The generator holds no per-call state; one instance may be shared by
    several threads.
    """

    def generate(self, image: Image, profile: GenerationProfile,
                 cancel_event: Optional[threading.Event] = None) -> MipChain:
        """Build the mip chain for ``image``.

        Raises:
            UnsupportedImageKind: zero-area source or unsupported channel count.
            InvalidParameter: the profile is out of range.
            ConversionCancelled: ``cancel_event`` was set between levels.
        """
        image.validate()
        profile.validate()

        base = image.as_float()
        linearize = (
            profile.apply_gamma_correction and image.color_space == ColorSpace.SRGB
        )
        n_color = color_channel_count(base.shape[-1])
        if linearize:
            base[:, :, :n_color] = decode_transfer(
                base[:, :, :n_color], profile.transfer, profile.gamma,
            )
        if profile.energy_preserving:
            base[:, :, :n_color] = self._to_alpha_space(
                base[:, :, :n_color], profile.roughness_encoding,
            )

        working_space = ColorSpace.LINEAR if linearize else image.color_space
        modifiers = []
        if profile.normalize_normals:
            modifiers.append(NormalizeNormalsModifier())
        modifiers.extend(
            m for m in profile.modifiers if m.applies_to(profile.texture_type)
        )

        # Modifiers see roughness or gloss values, never GGX alpha.
        source_img = Image(self._leave_working(base, profile, n_color), working_space)

        levels: List[np.ndarray] = [base]
        width, height = image.width, image.height
        value_range = (base.min(axis=(0, 1)), base.max(axis=(0, 1)))
        while True:
            if width == 1 and height == 1:
                break
            next_w, next_h = halve(width, height)
            if max(next_w, next_h) < profile.min_mip_size:
                break
            if cancel_event is not None and cancel_event.is_set():
                raise ConversionCancelled(
                    f"Mip generation cancelled before level {len(levels)}"
                )
            reduced = self._reduce(levels[-1], next_w, next_h, profile, value_range)
            level_idx = len(levels)
            if modifiers:
                level_img = Image(self._leave_working(reduced, profile, n_color), working_space)
                for modifier in modifiers:
                    out = modifier.apply(level_img, level_idx, source_img)
                    if out.pixels.shape[:2] != (next_h, next_w):
                        raise DimensionMismatch(
                            f"Modifier {modifier!r} returned {out.width}x{out.height} "
                            f"for level {level_idx}, expected {next_w}x{next_h}"
                        )
                    level_img = out
                reduced = self._enter_working(level_img.pixels, profile, n_color)
            levels.append(reduced.astype(np.float32, copy=False))
            width, height = next_w, next_h

        if not profile.include_last_level and len(levels) > 1:
            levels.pop()

        output_space = working_space
        finished = []
        for arr in levels:
            if profile.energy_preserving:
                arr = arr.copy()
                arr[:, :, :n_color] = self._from_alpha_space(
                    arr[:, :, :n_color], profile.roughness_encoding,
                )
            if linearize and profile.encode_output:
                arr = arr.copy() if arr is base else arr
                arr[:, :, :n_color] = encode_transfer(
                    arr[:, :, :n_color], profile.transfer, profile.gamma,
                )
                output_space = ColorSpace.SRGB
            finished.append(arr)

        chain = MipChain(
            [MipLevel(Image(arr, output_space), idx) for idx, arr in enumerate(finished)],
            profile.min_mip_size,
        )
        logger.debug(
            "Generated %d mip levels for %dx%d %s source (filter=%s, gamma=%s)",
            len(chain), image.width, image.height, profile.texture_type.value,
            profile.filter_type.value, linearize,
        )
        return chain

    def _reduce(self, src: np.ndarray, dst_w: int, dst_h: int,
                profile: GenerationProfile, value_range) -> np.ndarray:
        if profile.blur_radius > 0:
            src = gaussian_filter(
                src, sigma=(profile.blur_radius, profile.blur_radius, 0),
                mode="wrap" if profile.wrap_mode == WrapMode.WRAP else "nearest",
            )
        ft = profile.filter_type
        if ft == FilterType.BOX:
            out = resample.resize_area(src, dst_w, dst_h)
        elif ft == FilterType.NEAREST:
            out = resample.resize_nearest(src, dst_w, dst_h)
        elif ft == FilterType.MIN:
            out = resample.reduce_extreme(src, dst_w, dst_h, np.minimum)
        elif ft == FilterType.MAX:
            out = resample.reduce_extreme(src, dst_w, dst_h, np.maximum)
        else:
            out = resample.resample_separable(
                src, dst_w, dst_h, _kernel_for(profile),
                wrap=profile.wrap_mode == WrapMode.WRAP,
            )
            # Negative lobes may ring past each channel's source range.
            out = np.clip(out, value_range[0], value_range[1])
        return out.astype(np.float32, copy=False)

    def _leave_working(self, pixels: np.ndarray, profile: GenerationProfile,
                       n_color: int) -> np.ndarray:
        if not profile.energy_preserving:
            return pixels
        out = pixels.astype(np.float32, copy=True)
        out[:, :, :n_color] = self._from_alpha_space(out[:, :, :n_color], profile.roughness_encoding)
        return out

    def _enter_working(self, pixels: np.ndarray, profile: GenerationProfile,
                       n_color: int) -> np.ndarray:
        if not profile.energy_preserving:
            return pixels
        out = pixels.astype(np.float32, copy=True)
        out[:, :, :n_color] = self._to_alpha_space(out[:, :, :n_color], profile.roughness_encoding)
        return out

    @staticmethod
    def _to_alpha_space(values: np.ndarray, encoding: RoughnessEncoding) -> np.ndarray:
        rough = 1.0 - values if encoding == RoughnessEncoding.GLOSS else values
        return np.clip(rough, 0.0, 1.0) ** 2

    @staticmethod
    def _from_alpha_space(alpha: np.ndarray, encoding: RoughnessEncoding) -> np.ndarray:
        rough = np.sqrt(np.clip(alpha, 0.0, 1.0))
        return 1.0 - rough if encoding == RoughnessEncoding.GLOSS else rough


def generate_mip_chain(image: Image, profile: GenerationProfile,
                       cancel_event: Optional[threading.Event] = None) -> MipChain:
    return MipChainGenerator().generate(image, profile, cancel_event)
