"""Tests for image decoding and resampling."""

import numpy as np
import pytest

from product_match.preprocessing import (
    DecodeError, decode_image, load_image, opaque_pixels, resize_cover, to_grayscale,
)


class TestDecodeImage:
    """Tests for byte decoding."""

    def test_decodes_png_to_rgba(self, red_square_image, encode_png):
        decoded = decode_image(encode_png(red_square_image))
        assert decoded.shape == (200, 200, 4)
        assert decoded.dtype == np.uint8
        # Channel order is RGB, alpha fully opaque
        assert tuple(decoded[100, 100]) == (200, 30, 30, 255)
        assert tuple(decoded[0, 0]) == (255, 255, 255, 255)

    def test_keeps_alpha(self, transparent_image, encode_png):
        decoded = decode_image(encode_png(transparent_image))
        assert decoded.shape == (100, 100, 4)
        assert decoded[:, :, 3].max() == 0

    def test_grayscale_png(self, encode_png):
        gray = np.full((50, 50), 77, dtype=np.uint8)
        decoded = decode_image(encode_png(gray))
        assert decoded.shape == (50, 50, 4)
        assert tuple(decoded[10, 10]) == (77, 77, 77, 255)

    def test_garbage_raises(self):
        with pytest.raises(DecodeError):
            decode_image(b"definitely not an image")

    def test_empty_raises(self):
        with pytest.raises(DecodeError):
            decode_image(b"")

    def test_decode_error_is_value_error(self):
        assert issubclass(DecodeError, ValueError)


class TestLoadImage:
    """Tests for the bytes-or-array entry point."""

    def test_accepts_rgb_array(self, red_square_image):
        loaded = load_image(red_square_image)
        assert loaded.shape == (200, 200, 4)
        assert tuple(loaded[100, 100]) == (200, 30, 30, 255)

    def test_does_not_alias_input(self, transparent_image):
        loaded = load_image(transparent_image)
        loaded[0, 0] = 1
        assert transparent_image[0, 0, 3] == 0

    def test_float_array_scaled(self):
        img = np.ones((10, 10, 3), dtype=np.float32)
        assert load_image(img)[0, 0, 0] == 255

    def test_empty_array_raises(self):
        with pytest.raises(DecodeError):
            load_image(np.zeros((0, 0, 3), dtype=np.uint8))


class TestResizeCover:
    """Tests for aspect-fill resizing."""

    def test_output_size(self, red_square_image):
        assert resize_cover(red_square_image, 100, 100).shape == (100, 100, 3)

    def test_wide_image_is_center_cropped(self):
        # Left and right thirds red, middle third blue
        img = np.zeros((100, 300, 3), dtype=np.uint8)
        img[:, :100] = [255, 0, 0]
        img[:, 100:200] = [0, 0, 255]
        img[:, 200:] = [255, 0, 0]
        out = resize_cover(img, 100, 100)
        assert out.shape == (100, 100, 3)
        assert np.all(out[:, :, 2] == 255)

    def test_upscales_small_images(self):
        tiny = np.full((10, 20, 3), 128, dtype=np.uint8)
        out = resize_cover(tiny, 100, 100)
        assert out.shape == (100, 100, 3)
        assert np.all(out == 128)


class TestPixelHelpers:
    """Tests for grayscale and alpha helpers."""

    def test_grayscale_shape(self, noise_image):
        assert to_grayscale(noise_image).shape == (200, 200)

    def test_opaque_pixels_drops_transparent(self):
        grid = np.zeros((2, 2, 4), dtype=np.uint8)
        grid[0, 0] = [10, 20, 30, 255]
        grid[0, 1] = [40, 50, 60, 128]
        grid[1, 0] = [70, 80, 90, 127]
        pixels = opaque_pixels(grid)
        assert pixels.tolist() == [[10, 20, 30], [40, 50, 60]]
