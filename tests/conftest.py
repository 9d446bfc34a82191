"""Shared test fixtures for product matching tests."""

import copy

import numpy as np
import cv2
import pytest


def _encode_png(image: np.ndarray) -> bytes:
    if image.ndim == 3 and image.shape[2] == 4:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    elif image.ndim == 3:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    else:
        bgr = image
    ok, buffer = cv2.imencode(".png", bgr)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def encode_png():
    """Encode an RGB/RGBA array as PNG bytes (lossless)."""
    return _encode_png


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def solid_blue_image():
    """Generate a 200x200 uniform blue image."""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    img[:, :] = [30, 30, 200]
    return img


@pytest.fixture
def split_image():
    """Left half black, right half white."""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    img[:, 100:] = 255
    return img


@pytest.fixture
def striped_image():
    """Vertical black/white stripes, 10px wide (intensity changes along rows)."""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    for x in range(10, 200, 20):
        img[:, x:x + 10] = 255
    return img


@pytest.fixture
def textured_image():
    """Generate a 200x200 checkerboard with 20px squares."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 200
    for y in range(0, 200, 20):
        for x in range(0, 200, 20):
            if (x // 20 + y // 20) % 2 == 0:
                img[y:y+20, x:x+20] = [50, 50, 50]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def transparent_image():
    """Fully transparent 100x100 RGBA image."""
    img = np.zeros((100, 100, 4), dtype=np.uint8)
    img[:, :, :3] = [255, 0, 0]
    return img


@pytest.fixture
def uploaded_features():
    """Stored-style features of an uploaded cool, solid, modern image."""
    return {
        "colors": {
            "temperature": "cool",
            "brightness": 75,
            "contrast": 60,
            "dominant_colors": [{"hex": "#667eea", "percentage": 45}],
            "color_palette": ["purple"],
        },
        "pattern": {
            "pattern": "solid",
            "texture": "smooth",
            "complexity": {"score": 35},
            "symmetry": {"overall": 85},
        },
        "style": "modern",
    }


@pytest.fixture
def make_product(uploaded_features):
    """Factory for product records; features default to the uploaded ones."""
    def factory(product_id, features=None, **fields):
        record = {
            "id": product_id,
            "name": f"Product {product_id}",
            "price": 100.0,
            "brand": "Acme",
            "in_stock": True,
            "rating": 4.0,
            "features": copy.deepcopy(features if features is not None else uploaded_features),
        }
        record.update(fields)
        return record
    return factory


@pytest.fixture
def warm_floral_features(uploaded_features):
    """Same as the uploaded features but warm, floral and rough."""
    features = copy.deepcopy(uploaded_features)
    features["colors"]["temperature"] = "warm"
    features["pattern"]["pattern"] = "floral"
    features["pattern"]["texture"] = "rough"
    return features
