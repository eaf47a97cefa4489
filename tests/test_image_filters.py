import unittest

import numpy as np
import pytest
from PIL import Image

from lithorelief.core.errors import InvalidDimensionsError
from lithorelief.core.image_filters import (
    ImageProcessor,
    apply_point_operations,
    contrast_factor,
    fit_within,
    gaussian_blur,
    median_denoise,
    sharpen,
)
from lithorelief.core.raster_image import RasterImage
from lithorelief.core.settings import FilterSettings

NO_EFFECTS = FilterSettings(grayscale=False)


def _random_rgba(width: int, height: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)


def _single_pixel(r: int, g: int, b: int, a: int = 255) -> np.ndarray:
    return np.asarray([[[r, g, b, a]]], dtype=np.uint8)


def _reference_median(pixels: np.ndarray, strength: int) -> np.ndarray:
    data = pixels.copy()
    h, w = data.shape[:2]
    for _ in range(int(np.ceil(strength / 3.0))):
        copy = data.copy()
        for y in range(1, h - 1):
            for x in range(1, w - 1):
                for c in range(3):
                    data[y, x, c] = int(np.median(copy[y - 1:y + 2, x - 1:x + 2, c]))
    return data


def _reference_sharpen(pixels: np.ndarray, strength: int) -> np.ndarray:
    data = pixels.copy()
    copy = pixels.astype(np.float64)
    amount = strength / 10.0
    wc = 1.0 + 4.0 * amount
    wn = -amount
    h, w = data.shape[:2]
    for y in range(1, h - 1):
        for x in range(1, w - 1):
            for c in range(3):
                nsum = copy[y - 1, x, c] + copy[y + 1, x, c] + copy[y, x - 1, c] + copy[y, x + 1, c]
                val = copy[y, x, c] * wc + nsum * wn
                data[y, x, c] = int(np.rint(min(255.0, max(0.0, val))))
    return data


def test_fit_within_keeps_small_images():
    assert fit_within(50, 40, 100) == (50, 40)
    assert fit_within(100, 100, 100) == (100, 100)


def test_fit_within_scales_and_floors():
    assert fit_within(4000, 3000, 1024) == (1024, 768)
    assert fit_within(300, 1000, 100) == (30, 100)


def test_fit_within_keeps_one_pixel_for_extreme_aspect():
    assert fit_within(1000, 5, 100) == (100, 1)


def test_fit_within_rejects_zero_sizes():
    with pytest.raises(InvalidDimensionsError):
        fit_within(0, 10, 100)
    with pytest.raises(InvalidDimensionsError):
        fit_within(10, 10, 0)


def test_contrast_factor_is_one_at_zero():
    assert contrast_factor(0) == 1.0


class TestPointOperations(unittest.TestCase):
    def test_disabled_effects_are_identity(self):
        src = _random_rgba(9, 7, seed=3)
        out = apply_point_operations(src, NO_EFFECTS)
        np.testing.assert_array_equal(out, src)

    def test_grayscale_uses_weighted_luminance(self):
        out = apply_point_operations(_single_pixel(255, 0, 0), FilterSettings(grayscale=True))
        # 0.299 * 255 = 76.245
        self.assertEqual(out[0, 0, :3].tolist(), [76, 76, 76])

    def test_brightness_is_added_and_clamped(self):
        settings = FilterSettings(grayscale=False, brightness=100)
        out = apply_point_operations(_single_pixel(200, 10, 155), settings)
        self.assertEqual(out[0, 0, :3].tolist(), [255, 110, 255])

    def test_contrast_stretches_around_128(self):
        settings = FilterSettings(grayscale=False, contrast=100)
        out = apply_point_operations(_single_pixel(150, 128, 106), settings)
        # f = 259 * 355 / (255 * 159) ~ 2.2677; 128 +- f * 22 ~ 177.9 / 78.1
        self.assertEqual(out[0, 0, :3].tolist(), [178, 128, 78])

    def test_invert(self):
        out = apply_point_operations(_single_pixel(0, 200, 255), FilterSettings(grayscale=False, invert=True))
        self.assertEqual(out[0, 0, :3].tolist(), [255, 55, 0])

    def test_gamma(self):
        out = apply_point_operations(_single_pixel(64, 0, 255), FilterSettings(grayscale=False, gamma=2.0))
        # 255 * sqrt(64 / 255) ~ 127.75
        self.assertEqual(out[0, 0, :3].tolist(), [128, 0, 255])

    def test_clamp_happens_only_at_the_end(self):
        settings = FilterSettings(grayscale=False, brightness=100, contrast=-100)
        out = apply_point_operations(_single_pixel(200, 200, 200), settings)
        # 300 survives until contrast: 0.4385 * (300 - 128) + 128 ~ 203.4.
        # Clamping to 255 first would give ~183.7.
        self.assertEqual(int(out[0, 0, 0]), 203)

    def test_gamma_on_negative_intermediate_is_black(self):
        settings = FilterSettings(grayscale=False, brightness=-100, gamma=2.0)
        out = apply_point_operations(_single_pixel(50, 50, 50), settings)
        self.assertEqual(out[0, 0, :3].tolist(), [0, 0, 0])

    def test_alpha_is_untouched(self):
        src = _random_rgba(5, 4, seed=1)
        out = apply_point_operations(src, FilterSettings(invert=True, brightness=30, contrast=20, gamma=0.7))
        np.testing.assert_array_equal(out[..., 3], src[..., 3])

    def test_input_is_not_modified(self):
        src = _random_rgba(5, 4, seed=2)
        before = src.copy()
        apply_point_operations(src, FilterSettings(invert=True))
        np.testing.assert_array_equal(src, before)


class TestNeighborhoodFilters(unittest.TestCase):
    def test_median_removes_isolated_spike(self):
        src = np.full((5, 5, 4), 100, dtype=np.uint8)
        src[2, 2, :3] = 255
        src[0, 0, :3] = 255
        out = median_denoise(src, 1)
        self.assertEqual(out[2, 2, :3].tolist(), [100, 100, 100])
        # Border ring is left alone.
        self.assertEqual(out[0, 0, :3].tolist(), [255, 255, 255])

    def test_median_matches_snapshot_reference(self):
        src = _random_rgba(8, 6, seed=5)
        for strength in (1, 4, 7, 10):
            np.testing.assert_array_equal(median_denoise(src, strength), _reference_median(src, strength))

    def test_median_leaves_tiny_images(self):
        src = _random_rgba(2, 2, seed=6)
        np.testing.assert_array_equal(median_denoise(src, 10), src)

    def test_sharpen_matches_reference(self):
        src = _random_rgba(7, 6, seed=8)
        for strength in (1, 5, 10):
            np.testing.assert_array_equal(sharpen(src, strength), _reference_sharpen(src, strength))

    def test_sharpen_keeps_flat_regions(self):
        src = np.full((6, 6, 4), 90, dtype=np.uint8)
        np.testing.assert_array_equal(sharpen(src, 10), src)


class TestImageProcessor(unittest.TestCase):
    def test_identity_settings_return_input_pixels(self):
        src = RasterImage(pixels=_random_rgba(12, 9, seed=4))
        out = ImageProcessor().process_image(src, NO_EFFECTS, max_resolution=64)
        self.assertEqual(out.size, (12, 9))
        np.testing.assert_array_equal(out.pixels, src.pixels)

    def test_identity_settings_with_resize_match_plain_resize(self):
        src = RasterImage(pixels=_random_rgba(40, 20, seed=9))
        out = ImageProcessor().process_image(src, NO_EFFECTS, max_resolution=10)
        self.assertEqual(out.size, (10, 5))
        expected = np.asarray(src.to_pil_image().resize((10, 5), Image.Resampling.BILINEAR))
        np.testing.assert_array_equal(out.pixels, expected)

    def test_source_image_is_unchanged(self):
        pixels = _random_rgba(10, 10, seed=10)
        src = RasterImage(pixels=pixels)
        ImageProcessor().process_image(src, FilterSettings(invert=True, sharpen=5, noise_reduction=3), 64)
        np.testing.assert_array_equal(src.pixels, pixels)

    def test_blur_spreads_a_bright_pixel(self):
        pixels = np.zeros((9, 9, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        pixels[4, 4, :3] = 255
        out = ImageProcessor().process_image(RasterImage(pixels=pixels), FilterSettings(grayscale=False, blur=1.5), 64)
        self.assertEqual(out.size, (9, 9))
        self.assertLess(int(out.pixels[4, 4, 0]), 255)
        self.assertGreater(int(out.pixels[4, 5, 0]), 0)
        self.assertGreater(int(out.pixels[3, 4, 0]), 0)

    def test_hard_limit_caps_requested_resolution(self):
        src = RasterImage(pixels=_random_rgba(64, 32, seed=11))
        out = ImageProcessor(hard_max_resolution=16).process_image(src, NO_EFFECTS, max_resolution=1000)
        self.assertEqual(out.size, (16, 8))

    def test_filters_run_in_fixed_order(self):
        src = RasterImage(pixels=_random_rgba(12, 10, seed=12))
        settings = FilterSettings(grayscale=True, contrast=40, noise_reduction=4, sharpen=6)
        out = ImageProcessor().process_image(src, settings, max_resolution=64)

        x = src.pixels
        expected = sharpen(median_denoise(apply_point_operations(x, settings), 4), 6)
        np.testing.assert_array_equal(out.pixels, expected)

        reordered = apply_point_operations(median_denoise(sharpen(x, 6), 4), settings)
        self.assertFalse(np.array_equal(out.pixels, reordered))
        swapped = median_denoise(sharpen(apply_point_operations(x, settings), 6), 4)
        self.assertFalse(np.array_equal(out.pixels, swapped))

    def test_blur_runs_last(self):
        src = RasterImage(pixels=_random_rgba(12, 10, seed=13))
        settings = FilterSettings(grayscale=False, invert=True, sharpen=5, blur=1.0)
        out = ImageProcessor().process_image(src, settings, max_resolution=64)

        sharpened = sharpen(apply_point_operations(src.pixels, settings), 5)
        np.testing.assert_array_equal(out.pixels, gaussian_blur(sharpened, 1.0))

    def test_invalid_resolution_raises(self):
        src = RasterImage(pixels=_random_rgba(4, 4))
        with self.assertRaises(InvalidDimensionsError):
            ImageProcessor().process_image(src, NO_EFFECTS, max_resolution=0)


if __name__ == "__main__":
    unittest.main()
