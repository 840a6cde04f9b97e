"""Tests for pipeline orchestrator flow."""

import importlib.util
import unittest

import numpy as np

from MipForge.config import (
    FilterType, GenerationProfile, PackingMode, PipelineConfig, TextureType,
)
from MipForge.core import (
    ColorSpace, ConversionCancelled, DimensionMismatch, Image, InvalidParameter,
)
from MipForge.phases.modifiers import FunctionModifier
from MipForge.pipeline import TexturePipeline

from conftest import make_bumpy_normals, make_constant, make_gradient

HAS_CV2 = importlib.util.find_spec("cv2") is not None
HAS_SCIPY = importlib.util.find_spec("scipy") is not None
_requires_cv2_scipy = unittest.skipUnless(HAS_CV2 and HAS_SCIPY, "cv2/scipy not installed")


@_requires_cv2_scipy
class TestConvert(unittest.TestCase):
    def test_convert_without_normalization(self):
        pixels = np.random.default_rng(0).random((16, 16, 3)).astype(np.float32)
        result = TexturePipeline().convert(Image(pixels, ColorSpace.SRGB), TextureType.ALBEDO)
        self.assertEqual(len(result.chain), 5)
        self.assertIsNone(result.histogram)
        self.assertEqual(result.metadata(), {})
        self.assertIs(result.chain[1].image.color_space, ColorSpace.SRGB)

    def test_convert_with_normalization_reports_metadata(self):
        result = TexturePipeline().convert(make_gradient(64), TextureType.GENERIC, normalize=True)
        self.assertIsNotNone(result.histogram)
        meta = result.metadata()
        for key in ("histogram.channel_mode", "histogram.scale", "histogram.offset",
                    "histogram.percentiles", "histogram.knee"):
            self.assertIn(key, meta)
        self.assertEqual(meta["histogram.percentiles"], [0.5, 99.5])

    def test_config_enables_normalization(self):
        config = PipelineConfig()
        config.histogram.enabled = True
        config.histogram.quality = "fast"
        result = TexturePipeline(config).convert(make_gradient(64), TextureType.GENERIC)
        self.assertFalse(result.histogram.knee_applied)

    def test_near_constant_normalization_warns(self):
        result = TexturePipeline().convert(
            make_constant(8, 8, 0.5), TextureType.GENERIC, normalize=True,
        )
        self.assertTrue(result.histogram.is_identity)
        self.assertTrue(result.warnings)
        self.assertEqual(result.metadata(), {})

    def test_invalid_config_rejected(self):
        config = PipelineConfig()
        config.max_workers = 0
        with self.assertRaises(InvalidParameter):
            TexturePipeline(config)


@_requires_cv2_scipy
class TestConvertPacked(unittest.TestCase):
    def test_packed_ogm_with_toksvig(self):
        pipeline = TexturePipeline()
        result = pipeline.convert_packed(
            ao=make_constant(16, 16, 0.8),
            gloss=make_constant(16, 16, 0.6),
            metallic=make_constant(16, 16, 1.0),
            normal=make_bumpy_normals(16),
        )
        chain = result.chain
        self.assertEqual(len(chain), 5)
        self.assertEqual(chain.channels, 3)
        base = chain[0].image.pixels
        np.testing.assert_allclose(base[:, :, 0], 0.8, atol=1e-6)
        np.testing.assert_allclose(base[:, :, 2], 1.0, atol=1e-6)
        self.assertLess(float(base[:, :, 1].mean()), 0.6)

    def test_toksvig_disabled_in_config(self):
        config = PipelineConfig()
        config.packing.apply_toksvig = False
        result = TexturePipeline(config).convert_packed(
            gloss=make_constant(16, 16, 0.6), normal=make_bumpy_normals(16),
        )
        np.testing.assert_allclose(result.chain[0].image.pixels[:, :, 1], 0.6, atol=1e-6)

    def test_og_mode_override(self):
        result = TexturePipeline().convert_packed(
            ao=make_constant(8, 8, 0.5), gloss=make_constant(8, 8, 0.25), mode=PackingMode.OG,
        )
        self.assertEqual(result.chain.channels, 4)
        np.testing.assert_allclose(result.chain[0].image.pixels[:, :, 3], 0.25, atol=1e-6)

    def test_size_mismatch_rejected_before_generation(self):
        with self.assertRaises(DimensionMismatch):
            TexturePipeline().convert_packed(
                ao=make_constant(8, 8, 0.5), gloss=make_constant(16, 16, 0.5),
            )

    def test_normal_size_mismatch_rejected(self):
        with self.assertRaises(DimensionMismatch):
            TexturePipeline().convert_packed(
                gloss=make_constant(16, 16, 0.5), normal=make_bumpy_normals(8),
            )

    def test_slot_missing_from_mode(self):
        with self.assertRaises(InvalidParameter):
            TexturePipeline().convert_packed(
                metallic=make_constant(8, 8, 0.5), mode=PackingMode.OG,
            )

    def test_no_sources(self):
        with self.assertRaises(InvalidParameter):
            TexturePipeline().convert_packed()


@_requires_cv2_scipy
class TestConcurrencyAndCancel(unittest.TestCase):
    def test_generate_chains_parallel(self):
        profile = GenerationProfile(filter_type=FilterType.BOX)
        jobs = {
            "a": (make_constant(16, 16, 0.1), profile),
            "b": (make_constant(16, 16, 0.9), profile),
            "c": (make_constant(8, 8, 0.5), profile),
        }
        chains = TexturePipeline().generate_chains(jobs, max_workers=3)
        self.assertEqual(set(chains), {"a", "b", "c"})
        self.assertEqual(len(chains["a"]), 5)
        self.assertEqual(len(chains["c"]), 4)
        np.testing.assert_allclose(chains["b"][2].image.pixels, 0.9, atol=1e-6)

    def test_generate_chains_reraises_first_failure(self):
        def boom(pixels, level):
            raise RuntimeError("boom")

        good = GenerationProfile(filter_type=FilterType.BOX)
        bad = GenerationProfile(modifiers=(FunctionModifier(boom),))
        jobs = {
            "good": (make_constant(16, 16, 0.5), good),
            "bad": (make_constant(16, 16, 0.5), bad),
        }
        with self.assertRaisesRegex(RuntimeError, "boom"):
            TexturePipeline().generate_chains(jobs, max_workers=2)

    def test_generate_chains_validates_up_front(self):
        jobs = {"bad": (make_constant(8, 8, 0.5), GenerationProfile(min_mip_size=0))}
        with self.assertRaises(InvalidParameter):
            TexturePipeline().generate_chains(jobs)

    def test_cancel_and_reset(self):
        pipeline = TexturePipeline()
        pipeline.cancel()
        self.assertTrue(pipeline.cancelled)
        with self.assertRaises(ConversionCancelled):
            pipeline.convert(make_constant(8, 8, 0.5), TextureType.GENERIC)
        with self.assertRaises(ConversionCancelled):
            pipeline.convert_packed(ao=make_constant(8, 8, 0.5))
        pipeline.reset()
        self.assertFalse(pipeline.cancelled)
        self.assertEqual(len(pipeline.convert(make_constant(8, 8, 0.5), TextureType.GENERIC).chain), 4)


@_requires_cv2_scipy
class TestBatch(unittest.TestCase):
    def _items(self):
        return [
            ("a", make_constant(8, 8, 0.5), TextureType.GENERIC),
            ("broken", Image(np.zeros((0, 8, 1), dtype=np.float32)), TextureType.GENERIC),
            ("c", make_constant(4, 4, 0.5), TextureType.ROUGHNESS),
        ]

    def test_batch_records_failures_sequential(self):
        with self.assertLogs("mipforge.pipeline", level="ERROR"):
            results = TexturePipeline().run_batch(self._items(), max_workers=1)
        self.assertEqual([r.name for r in results], ["a", "broken", "c"])
        self.assertEqual([r.ok for r in results], [True, False, True])
        self.assertIn("zero area", results[1].error)
        self.assertEqual(len(results[2].result.chain), 3)

    def test_batch_records_failures_parallel(self):
        results = TexturePipeline().run_batch(self._items(), max_workers=3)
        self.assertEqual([r.ok for r in results], [True, False, True])

    def test_cancelled_batch_raises(self):
        pipeline = TexturePipeline()
        pipeline.cancel()
        with self.assertRaises(ConversionCancelled):
            pipeline.run_batch(self._items(), max_workers=1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
