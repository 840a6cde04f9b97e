"""Tests for Toksvig specular anti-aliasing."""

import dataclasses
import importlib.util
import unittest

import numpy as np

from MipForge import apply_toksvig_correction, generate_mip_chain
from MipForge.config import (
    FilterType, GenerationProfile, RoughnessEncoding, TextureType, ToksvigSettings,
)
from MipForge.core import (
    DimensionMismatch, Image, InvalidParameter, MipChain, UnsupportedChannelLayout,
)
from MipForge.phases.toksvig import ToksvigCorrector, compute_variance

from conftest import make_bumpy_normals, make_constant, make_flat_normals

HAS_CV2 = importlib.util.find_spec("cv2") is not None
_requires_cv2 = unittest.skipUnless(HAS_CV2, "cv2 (opencv) not installed")

_BOX = GenerationProfile(filter_type=FilterType.BOX)
_NORMAL = GenerationProfile.for_texture_type(TextureType.NORMAL)


def _gloss_chain(size=32, value=0.6, channels=1, min_mip_size=1):
    profile = dataclasses.replace(_BOX, min_mip_size=min_mip_size)
    return generate_mip_chain(make_constant(size, size, value, channels), profile)


def _normal_chain(image, min_mip_size=1):
    return generate_mip_chain(image, dataclasses.replace(_NORMAL, min_mip_size=min_mip_size))


@_requires_cv2
class TestToksvigCorrection(unittest.TestCase):
    def setUp(self):
        self.gloss = _gloss_chain()
        self.normals = _normal_chain(make_bumpy_normals(32))

    def test_zero_power_is_bit_identical(self):
        settings = ToksvigSettings(RoughnessEncoding.GLOSS, composite_power=0.0)
        out = apply_toksvig_correction(self.gloss, self.normals, settings)
        for before, after in zip(self.gloss, out):
            np.testing.assert_array_equal(after.image.pixels, before.image.pixels)

    def test_gloss_decreases_on_bumpy_normals(self):
        settings = ToksvigSettings(RoughnessEncoding.GLOSS)
        out = apply_toksvig_correction(self.gloss, self.normals, settings)
        self.assertEqual(len(out), len(self.gloss))
        self.assertLess(float(out[0].image.pixels.mean()), 0.6)
        self.assertLessEqual(float(out[0].image.pixels.max()), 0.6 + 1e-6)

    def test_roughness_increases_on_bumpy_normals(self):
        rough = _gloss_chain(value=0.3)
        settings = ToksvigSettings(RoughnessEncoding.ROUGHNESS)
        out = apply_toksvig_correction(rough, self.normals, settings)
        self.assertGreater(float(out[0].image.pixels.mean()), 0.3)

    def test_monotone_in_composite_power(self):
        weak = apply_toksvig_correction(
            self.gloss, self.normals, ToksvigSettings(RoughnessEncoding.GLOSS, composite_power=0.5),
        )
        strong = apply_toksvig_correction(
            self.gloss, self.normals, ToksvigSettings(RoughnessEncoding.GLOSS, composite_power=2.0),
        )
        for w, s in zip(weak, strong):
            self.assertTrue(np.all(s.image.pixels <= w.image.pixels + 1e-6))

    def test_flat_normals_leave_values_unchanged(self):
        normals = _normal_chain(make_flat_normals(32))
        out = apply_toksvig_correction(
            self.gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS),
        )
        for before, after in zip(self.gloss, out):
            np.testing.assert_allclose(after.image.pixels, before.image.pixels, atol=1e-5)

    def test_alpha_never_below_epsilon(self):
        mirror = _gloss_chain(value=1.0)
        out = apply_toksvig_correction(
            mirror, self.normals, ToksvigSettings(RoughnessEncoding.GLOSS),
        )
        self.assertLessEqual(float(out[0].image.pixels.max()), 1.0 - np.sqrt(1e-4) + 1e-6)

    def test_min_mip_level_passes_through(self):
        settings = ToksvigSettings(RoughnessEncoding.GLOSS, min_mip_level=2)
        result = ToksvigCorrector().correct_with_variance(self.gloss, self.normals, settings)
        self.assertIsNone(result.variance_maps[0])
        self.assertIsNone(result.variance_maps[1])
        self.assertIsNotNone(result.variance_maps[2])
        np.testing.assert_array_equal(result.chain[0].image.pixels, self.gloss[0].image.pixels)
        np.testing.assert_array_equal(result.chain[1].image.pixels, self.gloss[1].image.pixels)

    def test_variance_maps_match_level_sizes(self):
        result = ToksvigCorrector().correct_with_variance(
            self.gloss, self.normals, ToksvigSettings(RoughnessEncoding.GLOSS),
        )
        self.assertEqual(len(result.variance_maps), len(self.gloss))
        for lvl, variance in zip(self.gloss, result.variance_maps):
            self.assertEqual(variance.shape, (lvl.height, lvl.width))
            self.assertGreaterEqual(float(variance.min()), 0.0)
            self.assertLess(float(variance.max()), 1.0)

    def test_disabled_returns_copy(self):
        settings = ToksvigSettings(RoughnessEncoding.GLOSS, enabled=False)
        out = apply_toksvig_correction(self.gloss, self.normals, settings)
        np.testing.assert_array_equal(out[0].image.pixels, self.gloss[0].image.pixels)
        self.assertIsNot(out[0].image.pixels, self.gloss[0].image.pixels)

    def test_other_channels_untouched(self):
        rough = _gloss_chain(value=0.4, channels=3)
        settings = ToksvigSettings(RoughnessEncoding.ROUGHNESS, channel=1)
        out = apply_toksvig_correction(rough, self.normals, settings)
        np.testing.assert_array_equal(out[0].image.pixels[:, :, 0], rough[0].image.pixels[:, :, 0])
        np.testing.assert_array_equal(out[0].image.pixels[:, :, 2], rough[0].image.pixels[:, :, 2])
        self.assertGreater(float(out[0].image.pixels[:, :, 1].mean()), 0.4)

    def test_two_channel_normals_supported(self):
        normals = generate_mip_chain(make_bumpy_normals(32, channels=2), _BOX)
        out = apply_toksvig_correction(
            self.gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS),
        )
        self.assertLess(float(out[0].image.pixels.mean()), 0.6)

    def test_short_normal_chain_passes_through_with_warning(self):
        normals = _normal_chain(make_bumpy_normals(32), min_mip_size=8)
        self.assertEqual(len(normals), 3)
        with self.assertLogs("mipforge.toksvig", level="WARNING"):
            out = apply_toksvig_correction(
                self.gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS),
            )
        self.assertEqual(len(out), len(self.gloss))
        for idx in range(3, len(self.gloss)):
            np.testing.assert_array_equal(out[idx].image.pixels, self.gloss[idx].image.pixels)


@_requires_cv2
class TestToksvigErrors(unittest.TestCase):
    def test_level_zero_size_mismatch(self):
        gloss = _gloss_chain(size=64)
        normals = _normal_chain(make_bumpy_normals(32))
        with self.assertRaises(DimensionMismatch):
            apply_toksvig_correction(gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS))

    def test_single_channel_normals_rejected(self):
        gloss = _gloss_chain()
        normals = _gloss_chain(value=0.5)
        with self.assertRaises(UnsupportedChannelLayout):
            apply_toksvig_correction(gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS))

    def test_missing_value_channel(self):
        gloss = _gloss_chain()
        normals = _normal_chain(make_bumpy_normals(32))
        with self.assertRaises(UnsupportedChannelLayout):
            apply_toksvig_correction(
                gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS, channel=2),
            )

    def test_non_finite_power_rejected(self):
        gloss = _gloss_chain()
        normals = _normal_chain(make_bumpy_normals(32))
        with self.assertRaises(InvalidParameter):
            apply_toksvig_correction(
                gloss, normals, ToksvigSettings(RoughnessEncoding.GLOSS, composite_power=float("nan")),
            )

    def test_negative_power_rejected(self):
        with self.assertRaises(InvalidParameter):
            ToksvigSettings(RoughnessEncoding.GLOSS, composite_power=-1.0).validate()

    def test_encoding_is_required(self):
        with self.assertRaises(TypeError):
            ToksvigSettings()

    def test_empty_chain_rejected(self):
        normals = _normal_chain(make_bumpy_normals(8))
        with self.assertRaises(DimensionMismatch):
            apply_toksvig_correction(MipChain(), normals, ToksvigSettings(RoughnessEncoding.GLOSS))


class TestVariance(unittest.TestCase):
    def test_flat_normals_have_no_variance(self):
        variance = compute_variance(make_flat_normals(8))
        np.testing.assert_allclose(variance, 0.0, atol=1e-6)

    def test_threshold_removes_small_variance(self):
        img = make_bumpy_normals(16, strength=0.05)
        raw = compute_variance(img, smooth=False)
        gated = compute_variance(img, smooth=False, threshold=float(raw.max()))
        np.testing.assert_allclose(gated, 0.0)

    def test_single_channel_rejected(self):
        with self.assertRaises(UnsupportedChannelLayout):
            compute_variance(Image(np.full((4, 4, 1), 0.5, dtype=np.float32)))


if __name__ == "__main__":
    unittest.main(verbosity=2)
