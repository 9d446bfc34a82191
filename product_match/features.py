"""
Image → FeatureVector pipeline.

Color and pattern analysis are independent pure functions of the
decoded pixels, so they run side by side; the style label is derived
from the pattern result afterwards.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from .colors import COLOR_RESIZE, NUM_COLORS, extract_colors
from .models import FeatureVector
from .patterns import ANALYSIS_WORKERS, analyze_pattern, suggest_style
from .preprocessing import ImageInput, load_image

logger = logging.getLogger(__name__)


def analyze_image(image: ImageInput,
                  num_colors: int = NUM_COLORS,
                  resize_width: int = COLOR_RESIZE,
                  resize_height: int = COLOR_RESIZE,
                  workers: int = ANALYSIS_WORKERS) -> FeatureVector:
    """
    Extract the full feature vector of an image.

    Args:
        image: Encoded image bytes or a decoded RGB/RGBA array.
        num_colors: Number of dominant colors to keep.
        resize_width: Color analysis grid width.
        resize_height: Color analysis grid height.
        workers: Thread budget; 1 runs every step serially with
            identical results.

    Returns:
        FeatureVector with colors, pattern and style populated.

    Raises:
        DecodeError: If the image cannot be decoded.
    """
    start = time.perf_counter()
    image_np = load_image(image)

    if workers > 1:
        with ThreadPoolExecutor(max_workers=2) as executor:
            colors_future = executor.submit(
                extract_colors, image_np, num_colors, resize_width, resize_height
            )
            pattern_future = executor.submit(analyze_pattern, image_np, workers)
            colors, pattern = colors_future.result(), pattern_future.result()
    else:
        colors = extract_colors(image_np, num_colors, resize_width, resize_height)
        pattern = analyze_pattern(image_np, workers)

    features = FeatureVector(colors=colors, pattern=pattern, style=suggest_style(pattern))

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        f"Analyzed {image_np.shape[1]}x{image_np.shape[0]} image in {elapsed_ms:.1f} ms: "
        f"{colors.primary_color.name} / {pattern.pattern} / {features.style}"
    )
    return features
