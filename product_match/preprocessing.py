"""
Image decoding and resampling for feature extraction.

Every analyzer works on a small, fixed-size square pixel grid so that
results are comparable across arbitrary source resolutions and the cost
of per-pixel statistics stays bounded. This module turns caller-supplied
bytes into an RGBA uint8 array and provides the aspect-fill resize used
by each analysis step.
"""

import logging
from typing import Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, bytearray, memoryview, np.ndarray]


class DecodeError(ValueError):
    """Raised when image bytes cannot be decoded into pixels."""


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (PNG, JPEG, WebP, BMP...) into RGBA.

    Args:
        data: Raw encoded image buffer.

    Returns:
        uint8 array of shape (H, W, 4) in RGBA channel order.

    Raises:
        DecodeError: If the buffer is empty or not a decodable image.
    """
    if data is None or len(data) == 0:
        raise DecodeError("Empty image buffer")

    buffer = np.frombuffer(bytes(data), dtype=np.uint8)
    try:
        decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise DecodeError(f"Image decode failed: {e}") from e

    if decoded is None or decoded.size == 0:
        raise DecodeError("Unsupported or corrupt image data")

    return _to_rgba(normalize_image(decoded), bgr=True)


def load_image(image: ImageInput) -> np.ndarray:
    """
    Accept either encoded bytes or an already decoded array.

    Arrays are assumed to be RGB or RGBA (or single-channel grayscale),
    matching what the rest of the package produces.
    """
    if isinstance(image, np.ndarray):
        if image.size == 0:
            raise DecodeError("Empty image array")
        return _to_rgba(normalize_image(image), bgr=False)
    return decode_image(image)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8, scaling 16-bit and float inputs."""
    if image_np.dtype == np.uint8:
        return image_np
    if image_np.dtype == np.uint16:
        return (image_np >> 8).astype(np.uint8)
    if np.issubdtype(image_np.dtype, np.floating) and image_np.max() <= 1.0:
        return (image_np * 255).round().astype(np.uint8)
    return np.clip(image_np, 0, 255).astype(np.uint8)


def _to_rgba(image_np: np.ndarray, bgr: bool) -> np.ndarray:
    if image_np.ndim == 2:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)

    channels = image_np.shape[2]
    if channels == 1:
        return cv2.cvtColor(image_np[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        code = cv2.COLOR_BGR2RGBA if bgr else cv2.COLOR_RGB2RGBA
        return cv2.cvtColor(image_np, code)
    if channels == 4:
        return cv2.cvtColor(image_np, cv2.COLOR_BGRA2RGBA) if bgr else image_np.copy()

    raise DecodeError(f"Unsupported channel count: {channels}")


def resize_cover(image_np: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Aspect-fill resize: scale so the image covers width x height, then
    crop the overflow evenly from both sides.

    Args:
        image_np: RGBA (or any channel count) uint8 image.
        width: Target width in pixels.
        height: Target height in pixels.

    Returns:
        Array of shape (height, width, C).
    """
    h, w = image_np.shape[:2]
    scale = max(width / w, height / h)
    scaled_w = max(width, int(round(w * scale)))
    scaled_h = max(height, int(round(h * scale)))

    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_LINEAR
    scaled = cv2.resize(image_np, (scaled_w, scaled_h), interpolation=interpolation)

    x1 = (scaled_w - width) // 2
    y1 = (scaled_h - height) // 2
    return scaled[y1:y1 + height, x1:x1 + width]


def to_grayscale(image_np: np.ndarray) -> np.ndarray:
    """Convert an RGBA/RGB grid to a single-channel uint8 luma grid."""
    if image_np.ndim == 2:
        return image_np
    return cv2.cvtColor(np.ascontiguousarray(image_np[:, :, :3]), cv2.COLOR_RGB2GRAY)


def gray_grid(image_np: np.ndarray, size: int) -> np.ndarray:
    """Resample to a size x size square and convert to grayscale."""
    return to_grayscale(resize_cover(image_np, size, size))


def opaque_pixels(grid: np.ndarray, alpha_threshold: int = 128) -> np.ndarray:
    """
    Return the RGB samples of pixels whose alpha is at least the threshold.

    Pixels below the threshold are treated as transparent background and
    excluded from every color statistic.
    """
    rgb = grid[:, :, :3].reshape(-1, 3)
    if grid.shape[2] < 4:
        return rgb
    alpha = grid[:, :, 3].reshape(-1)
    return rgb[alpha >= alpha_threshold]
