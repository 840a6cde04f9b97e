"""Transfer curves, luminance, and normal-vector encoding helpers."""

import logging

import numpy as np

logger = logging.getLogger("mipforge.color")

_BT709 = (0.2126, 0.7152, 0.0722)


def srgb_to_linear(arr: np.ndarray) -> np.ndarray:
    """Convert sRGB [0,1] values to linear."""
    if np.isnan(arr).any():
        logger.warning("NaN detected in srgb_to_linear input; replacing with 0.0")
        arr = np.nan_to_num(arr, nan=0.0)
    arr = np.clip(arr, 0.0, 1.0).astype(np.float32, copy=False)
    return np.where(
        arr <= 0.04045,
        arr / 12.92,
        np.power((arr + 0.055) / 1.055, 2.4),
    ).astype(np.float32, copy=False)


def linear_to_srgb(arr: np.ndarray) -> np.ndarray:
    """Convert linear values to sRGB [0,1]."""
    if np.isnan(arr).any():
        logger.warning("NaN detected in linear_to_srgb input; replacing with 0.0")
        arr = np.nan_to_num(arr, nan=0.0)
    arr = np.clip(arr, 0.0, 1.0).astype(np.float32, copy=False)
    return np.where(
        arr <= 0.0031308,
        arr * 12.92,
        1.055 * np.power(arr, 1.0 / 2.4) - 0.055,
    ).astype(np.float32, copy=False)


def gamma_to_linear(arr: np.ndarray, gamma: float) -> np.ndarray:
    """Decode a pure power-law encoded signal."""
    arr = np.clip(arr, 0.0, 1.0).astype(np.float32, copy=False)
    return np.power(arr, gamma).astype(np.float32, copy=False)


def linear_to_gamma(arr: np.ndarray, gamma: float) -> np.ndarray:
    """Encode a linear signal with a pure power law."""
    arr = np.clip(arr, 0.0, 1.0).astype(np.float32, copy=False)
    return np.power(arr, 1.0 / gamma).astype(np.float32, copy=False)


def decode_transfer(arr: np.ndarray, transfer: str, gamma: float) -> np.ndarray:
    if transfer == "srgb":
        return srgb_to_linear(arr)
    return gamma_to_linear(arr, gamma)


def encode_transfer(arr: np.ndarray, transfer: str, gamma: float) -> np.ndarray:
    if transfer == "srgb":
        return linear_to_srgb(arr)
    return linear_to_gamma(arr, gamma)


def color_channel_count(channels: int) -> int:
    """Return how many leading channels carry color (alpha excluded).

    1 -> 1 (L), 2 -> 1 (LA), 3 -> 3 (RGB), 4 -> 3 (RGBA).
    """
    if channels in (1, 2):
        return 1
    return 3


def luminance_bt709(arr: np.ndarray) -> np.ndarray:
    """Compute BT.709 luma from an (H, W, C) array.

    Single-channel and LA inputs return their first channel unchanged.
    """
    if arr.ndim == 2:
        return arr.astype(np.float32, copy=False)
    if arr.shape[-1] < 3:
        return arr[:, :, 0].astype(np.float32, copy=False)
    return (
        _BT709[0] * arr[:, :, 0] +
        _BT709[1] * arr[:, :, 1] +
        _BT709[2] * arr[:, :, 2]
    ).astype(np.float32, copy=False)


def decode_normals(arr: np.ndarray) -> np.ndarray:
    """Decode [0,1] encoded normals to [-1,1] XYZ vectors.

    Two-channel (BC5-style) maps get Z reconstructed from the unit-length
    constraint.  Channels beyond the third are ignored.
    """
    xy = arr[:, :, :2].astype(np.float32) * 2.0 - 1.0
    if arr.shape[-1] >= 3:
        z = arr[:, :, 2:3].astype(np.float32) * 2.0 - 1.0
    else:
        z = np.sqrt(np.clip(1.0 - np.sum(xy ** 2, axis=-1, keepdims=True), 0.0, 1.0))
    return np.concatenate([xy, z], axis=-1).astype(np.float32, copy=False)


def renormalize_vectors(decoded: np.ndarray) -> np.ndarray:
    length = np.sqrt(np.sum(decoded ** 2, axis=-1, keepdims=True))
    length = np.maximum(length, 1e-8)
    return (decoded / length).astype(np.float32)


def encode_normals(decoded: np.ndarray) -> np.ndarray:
    return np.clip(decoded * 0.5 + 0.5, 0.0, 1.0).astype(np.float32)
