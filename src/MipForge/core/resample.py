"""Separable resampling kernels used for mip reduction.

Box and nearest reductions go through OpenCV.  Every other kernel is turned
into a pair of (dst x src) weight matrices, one per axis, so the kernel
choice only changes the weights and never the control flow.
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Tuple

import cv2
import numpy as np


@dataclass(frozen=True)
class Kernel:
    """A 1D reconstruction kernel with finite support (in source pixels)."""

    name: str
    support: float
    params: Tuple[float, ...] = ()

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return _KERNEL_FUNCS[self.name](np.abs(x), self.support, *self.params)


def _box(x, support):
    return (x < 0.5).astype(np.float64)


def _tent(x, support):
    return np.maximum(0.0, 1.0 - x)


def _cubic(x, support, b, c):
    # Mitchell-Netravali family; (0, 0.5) is Catmull-Rom.
    x2 = x * x
    x3 = x2 * x
    near = ((12 - 9 * b - 6 * c) * x3 + (-18 + 12 * b + 6 * c) * x2 + (6 - 2 * b)) / 6.0
    far = ((-b - 6 * c) * x3 + (6 * b + 30 * c) * x2
           + (-12 * b - 48 * c) * x + (8 * b + 24 * c)) / 6.0
    return np.where(x < 1.0, near, np.where(x < 2.0, far, 0.0))


def _lanczos(x, support):
    return np.where(x < support, np.sinc(x) * np.sinc(x / support), 0.0)


def _kaiser(x, support, alpha):
    ratio = np.clip(x / support, 0.0, 1.0)
    window = np.i0(alpha * np.sqrt(1.0 - ratio * ratio)) / np.i0(alpha)
    return np.where(x < support, np.sinc(x) * window, 0.0)


def _gaussian(x, support, sigma):
    return np.where(x < support, np.exp(-(x * x) / (2.0 * sigma * sigma)), 0.0)


_KERNEL_FUNCS: dict = {
    "box": _box,
    "tent": _tent,
    "cubic": _cubic,
    "lanczos": _lanczos,
    "kaiser": _kaiser,
    "gaussian": _gaussian,
}


def box_kernel() -> Kernel:
    return Kernel("box", 0.5)


def tent_kernel() -> Kernel:
    return Kernel("tent", 1.0)


def bicubic_kernel() -> Kernel:
    return Kernel("cubic", 2.0, (0.0, 0.5))


def mitchell_kernel() -> Kernel:
    return Kernel("cubic", 2.0, (1.0 / 3.0, 1.0 / 3.0))


def lanczos_kernel(lobes: int = 3) -> Kernel:
    return Kernel("lanczos", float(lobes))


def kaiser_kernel(width: float = 3.0, alpha: float = 4.0) -> Kernel:
    return Kernel("kaiser", float(width), (float(alpha),))


def gaussian_kernel(sigma: float = 0.5) -> Kernel:
    return Kernel("gaussian", 3.0 * sigma, (float(sigma),))


@lru_cache(maxsize=256)
def axis_weights(src_n: int, dst_n: int, kernel: Kernel, wrap: bool) -> np.ndarray:
    """Build the normalized (dst_n, src_n) weight matrix for one axis.

    Taps falling outside the source are clamped to the edge, or wrapped
    around for tileable textures.
    """
    if src_n == dst_n:
        identity = np.eye(src_n, dtype=np.float32)
        identity.setflags(write=False)
        return identity
    scale = src_n / dst_n
    filter_scale = max(scale, 1.0)
    support = kernel.support * filter_scale
    weights = np.zeros((dst_n, src_n), dtype=np.float64)
    for i in range(dst_n):
        center = (i + 0.5) * scale
        first = int(math.floor(center - support))
        last = int(math.ceil(center + support))
        taps = np.arange(first, last + 1)
        w = kernel((taps + 0.5 - center) / filter_scale)
        if not np.any(w):
            # Degenerate window, fall back to the nearest sample.
            w = (taps == int(center)).astype(np.float64)
        if wrap:
            idx = np.mod(taps, src_n)
        else:
            idx = np.clip(taps, 0, src_n - 1)
        np.add.at(weights[i], idx, w)
    weights = (weights / weights.sum(axis=1, keepdims=True)).astype(np.float32)
    weights.setflags(write=False)
    return weights


def resample_separable(arr: np.ndarray, dst_w: int, dst_h: int,
                       kernel: Kernel, wrap: bool = False) -> np.ndarray:
    """Resample an (H, W, C) float array with a separable kernel."""
    src_h, src_w = arr.shape[:2]
    wy = axis_weights(src_h, dst_h, kernel, wrap)
    wx = axis_weights(src_w, dst_w, kernel, wrap)
    tmp = np.einsum("ij,jkc->ikc", wy, arr, optimize=True)
    out = np.einsum("kl,ilc->ikc", wx, tmp, optimize=True)
    return out.astype(np.float32, copy=False)


def _cv2_resize(arr: np.ndarray, dst_w: int, dst_h: int, interpolation: int) -> np.ndarray:
    out = cv2.resize(
        np.ascontiguousarray(arr, dtype=np.float32),
        (dst_w, dst_h),
        interpolation=interpolation,
    )
    if out.ndim == 2:
        out = out[:, :, np.newaxis]
    return out


def resize_area(arr: np.ndarray, dst_w: int, dst_h: int) -> np.ndarray:
    """Box reduction (INTER_AREA is the box filter equivalent)."""
    return _cv2_resize(arr, dst_w, dst_h, cv2.INTER_AREA)


def resize_nearest(arr: np.ndarray, dst_w: int, dst_h: int) -> np.ndarray:
    return _cv2_resize(arr, dst_w, dst_h, cv2.INTER_NEAREST)


def _window_starts(src_n: int, dst_n: int) -> np.ndarray:
    scale = src_n / dst_n
    return np.floor(np.arange(dst_n) * scale).astype(np.intp)


def reduce_extreme(arr: np.ndarray, dst_w: int, dst_h: int,
                   ufunc: Callable = np.minimum) -> np.ndarray:
    """Reduce by taking the min (or max) over each covered source window.

    Windows start at ``floor(i * scale)`` and the last window absorbs the
    remainder, so every source pixel contributes to exactly one output.
    """
    src_h, src_w = arr.shape[:2]
    out = arr
    if dst_h != src_h:
        out = ufunc.reduceat(out, _window_starts(src_h, dst_h), axis=0)
    if dst_w != src_w:
        out = ufunc.reduceat(out, _window_starts(src_w, dst_w), axis=1)
    return np.ascontiguousarray(out, dtype=np.float32)
