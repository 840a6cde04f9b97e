"""Tests for the image and mip chain data model."""

import unittest

import numpy as np

from MipForge.core import (
    ColorSpace, DimensionMismatch, Image, MipChain, MipLevel, UnsupportedImageKind,
    expected_size, halve,
)


class TestImage(unittest.TestCase):
    def test_2d_input_promoted_to_single_channel(self):
        img = Image(np.zeros((4, 6), dtype=np.float32))
        self.assertEqual(img.pixels.shape, (4, 6, 1))
        self.assertEqual(img.size, (6, 4))
        self.assertEqual(img.channels, 1)

    def test_string_color_space_coerced(self):
        img = Image(np.zeros((2, 2, 3)), "srgb")
        self.assertIs(img.color_space, ColorSpace.SRGB)

    def test_zero_area_rejected(self):
        with self.assertRaises(UnsupportedImageKind):
            Image(np.zeros((0, 4, 1), dtype=np.float32)).validate()

    def test_five_channels_rejected(self):
        with self.assertRaises(UnsupportedImageKind):
            Image(np.zeros((4, 4, 5), dtype=np.float32)).validate()

    def test_non_numeric_dtype_rejected(self):
        with self.assertRaises(UnsupportedImageKind):
            Image(np.zeros((2, 2, 1), dtype=bool)).validate()

    def test_has_alpha(self):
        self.assertTrue(Image(np.zeros((2, 2, 4))).has_alpha)
        self.assertTrue(Image(np.zeros((2, 2, 2))).has_alpha)
        self.assertFalse(Image(np.zeros((2, 2, 3))).has_alpha)

    def test_as_float_scales_integers(self):
        img8 = Image(np.full((2, 2, 1), 255, dtype=np.uint8))
        img16 = Image(np.full((2, 2, 1), 65535, dtype=np.uint16))
        np.testing.assert_allclose(img8.as_float(), 1.0)
        np.testing.assert_allclose(img16.as_float(), 1.0)
        self.assertEqual(img8.as_float().dtype, np.float32)

    def test_as_float_returns_copy(self):
        pixels = np.full((2, 2, 1), 0.25, dtype=np.float32)
        img = Image(pixels)
        out = img.as_float()
        out[:] = 0.0
        np.testing.assert_allclose(pixels, 0.25)

    def test_pillow_roundtrip_rgba(self):
        rng = np.random.default_rng(3)
        pixels = rng.integers(0, 256, size=(5, 7, 4), dtype=np.uint8)
        img = Image(pixels)
        back = Image.from_pil(img.to_pil())
        np.testing.assert_array_equal(back.pixels, pixels)

    def test_pillow_roundtrip_grayscale(self):
        pixels = np.arange(16, dtype=np.uint8).reshape(4, 4)
        back = Image.from_pil(Image(pixels).to_pil())
        self.assertEqual(back.channels, 1)
        np.testing.assert_array_equal(back.pixels[:, :, 0], pixels)

    def test_pillow_16bit_export(self):
        img = Image(np.full((3, 3, 1), 0.5, dtype=np.float32))
        back = Image.from_pil(img.to_pil(bits=16))
        np.testing.assert_allclose(back.pixels, 0.5, atol=1e-4)

    def test_pillow_16bit_rejects_rgb(self):
        with self.assertRaises(ValueError):
            Image(np.zeros((2, 2, 3))).to_pil(bits=16)


class TestMipChain(unittest.TestCase):
    def test_expected_size_floors_at_one(self):
        self.assertEqual(expected_size(300, 17, 4), (18, 1))
        self.assertEqual(expected_size(1, 1, 5), (1, 1))
        self.assertEqual(halve(3, 1), (1, 1))

    def test_from_images_validates(self):
        images = [Image(np.zeros((h, w, 1))) for w, h in [(5, 3), (2, 1), (1, 1)]]
        chain = MipChain.from_images(images)
        self.assertEqual(len(chain), 3)
        self.assertEqual(chain.dimensions(), [(5, 3), (2, 1), (1, 1)])

    def test_from_images_rejects_bad_halving(self):
        images = [Image(np.zeros((8, 8, 1))), Image(np.zeros((2, 2, 1)))]
        with self.assertRaises(DimensionMismatch):
            MipChain.from_images(images)

    def test_validate_rejects_wrong_level_index(self):
        chain = MipChain([MipLevel(Image(np.zeros((2, 2, 1))), 1)])
        with self.assertRaises(DimensionMismatch):
            chain.validate()

    def test_copy_is_deep(self):
        chain = MipChain.from_images([Image(np.zeros((2, 2, 1), dtype=np.float32))])
        dup = chain.copy()
        dup[0].image.pixels[:] = 1.0
        np.testing.assert_allclose(chain[0].image.pixels, 0.0)

    def test_empty_chain_has_no_base(self):
        with self.assertRaises(IndexError):
            MipChain().base


if __name__ == "__main__":
    unittest.main(verbosity=2)
