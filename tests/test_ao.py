"""Tests for ambient-occlusion mip darkening."""

import unittest

import numpy as np

from MipForge.config import AOProcessingMode
from MipForge.core import Image, MipChain
from MipForge.phases.ao import AOProcessor, biased_darkening, percentile_blend


class TestAOFunctions(unittest.TestCase):
    def test_biased_darkening_constant_unchanged(self):
        values = np.full((4, 4), 0.5, dtype=np.float32)
        np.testing.assert_allclose(biased_darkening(values, 0.5), 0.5)

    def test_biased_darkening_values(self):
        values = np.array([0.0, 1.0], dtype=np.float32)
        np.testing.assert_allclose(biased_darkening(values, 0.5), [0.0625, 0.8125])

    def test_zero_bias_is_identity(self):
        values = np.linspace(0.0, 1.0, 9, dtype=np.float32)
        np.testing.assert_allclose(biased_darkening(values, 0.0), values)

    def test_percentile_blend_lifts_only_low_values(self):
        values = np.arange(10, dtype=np.float32) / 10.0
        out = percentile_blend(values, 50.0)
        self.assertAlmostEqual(float(out[0]), 0.135, places=6)
        self.assertAlmostEqual(float(out[4]), 0.415, places=6)
        np.testing.assert_allclose(out[5:], values[5:])


class TestAOProcessor(unittest.TestCase):
    def _chain(self):
        levels = []
        for size in (8, 4, 2, 1):
            ramp = np.linspace(0.1, 0.9, size * size, dtype=np.float32).reshape(size, size)
            levels.append(Image(ramp))
        return MipChain.from_images(levels)

    def test_none_returns_copy(self):
        chain = self._chain()
        out = AOProcessor().process_chain(chain, AOProcessingMode.NONE)
        for a, b in zip(chain, out):
            np.testing.assert_array_equal(a.image.pixels, b.image.pixels)
            self.assertIsNot(a.image.pixels, b.image.pixels)

    def test_start_level_respected(self):
        chain = self._chain()
        out = AOProcessor().process_chain(
            chain, AOProcessingMode.BIASED_DARKENING, bias=0.5, start_level=2,
        )
        np.testing.assert_array_equal(out[0].image.pixels, chain[0].image.pixels)
        np.testing.assert_array_equal(out[1].image.pixels, chain[1].image.pixels)
        self.assertLess(float(out[2].image.pixels.mean()), float(chain[2].image.pixels.mean()))

    def test_percentile_mode_raises_mean(self):
        chain = self._chain()
        out = AOProcessor().process_chain(chain, AOProcessingMode.PERCENTILE, percentile=50.0)
        self.assertGreater(float(out[1].image.pixels.mean()), float(chain[1].image.pixels.mean()))

    def test_only_selected_channel_changes(self):
        pixels = np.random.default_rng(5).random((4, 4, 3)).astype(np.float32)
        chain = MipChain.from_images([Image(pixels[:4, :4]), Image(pixels[:2, :2])])
        out = AOProcessor().process_chain(
            chain, AOProcessingMode.BIASED_DARKENING, channel=1,
        )
        np.testing.assert_array_equal(out[1].image.pixels[:, :, 0], chain[1].image.pixels[:, :, 0])
        np.testing.assert_array_equal(out[1].image.pixels[:, :, 2], chain[1].image.pixels[:, :, 2])


if __name__ == "__main__":
    unittest.main(verbosity=2)
