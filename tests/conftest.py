"""Shared test fixtures."""

import shutil
import tempfile

import numpy as np
import pytest

from MipForge.config import PipelineConfig
from MipForge.core import ColorSpace, Image


def make_gradient(size: int = 256) -> Image:
    """Horizontal [0, 1] ramp; column k holds exactly k / (size - 1)."""
    ramp = np.linspace(0.0, 1.0, size, dtype=np.float32)
    return Image(np.tile(ramp, (size, 1)))


def make_constant(width: int, height: int, value: float, channels: int = 1) -> Image:
    return Image(np.full((height, width, channels), value, dtype=np.float32))


def make_bumpy_normals(size: int = 32, strength: float = 0.6, seed: int = 7,
                       channels: int = 3) -> Image:
    """Encoded normal map with random per-pixel tilt."""
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-strength, strength, size=(size, size, 2))
    z = np.ones((size, size, 1))
    n = np.concatenate([xy, z], axis=-1)
    n /= np.linalg.norm(n, axis=-1, keepdims=True)
    encoded = (n * 0.5 + 0.5).astype(np.float32)
    return Image(encoded[:, :, :channels])


def make_flat_normals(size: int = 32) -> Image:
    pixels = np.zeros((size, size, 3), dtype=np.float32)
    pixels[:, :, 0] = 0.5
    pixels[:, :, 1] = 0.5
    pixels[:, :, 2] = 1.0
    return Image(pixels)


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return PipelineConfig()


@pytest.fixture
def gradient_image():
    return make_gradient()


@pytest.fixture
def srgb_checker():
    pixels = np.zeros((2, 2, 3), dtype=np.float32)
    pixels[0, 0] = pixels[1, 1] = 1.0
    return Image(pixels, ColorSpace.SRGB)
