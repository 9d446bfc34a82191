"""
Dominant color, brightness and contrast extraction.

The image is aspect-fill resized to a small square grid, each channel is
quantized to multiples of 17 (16 levels per channel) and the most
frequent buckets become the dominant colors. Transparent pixels
(alpha < 128) are background and never counted. Derived labels
(palette names, harmony, grayscale, temperature) are computed from the
dominant colors only, so they stay stable across resolutions.

The analysis size and color count are configurable via environment
variables (COLOR_RESIZE, COLOR_NUM_COLORS) or per call.
"""

import math
import os
import logging
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .models import HSL, RGB, ColorFeatures, DominantColor, NamedColor, hex_to_rgb, rgb_to_hex
from .preprocessing import ImageInput, load_image, opaque_pixels, resize_cover
from .rules import first_match

logger = logging.getLogger(__name__)

COLOR_RESIZE = int(os.environ.get("COLOR_RESIZE", "100"))
NUM_COLORS = int(os.environ.get("COLOR_NUM_COLORS", "5"))

QUANTIZE_STEP = 17
ALPHA_THRESHOLD = 128
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])
MAX_RGB_DISTANCE = math.sqrt(255 * 255 * 3)

# Reference colors for palette naming. Order matters: on equal distance
# the earlier entry wins.
COLOR_NAMES = {
    "#FF0000": "red", "#FF4444": "red", "#CC0000": "dark red",
    "#FFA500": "orange", "#FF8C00": "dark orange", "#FFB347": "light orange",
    "#FFFF00": "yellow", "#FFD700": "gold", "#FFFFE0": "light yellow",
    "#00FF00": "green", "#008000": "dark green", "#90EE90": "light green",
    "#00FFFF": "cyan", "#008B8B": "dark cyan", "#E0FFFF": "light cyan",
    "#0000FF": "blue", "#000080": "navy", "#87CEEB": "sky blue",
    "#800080": "purple", "#4B0082": "indigo", "#DA70D6": "orchid",
    "#FFC0CB": "pink", "#FF1493": "deep pink", "#FFB6C1": "light pink",
    "#A52A2A": "brown", "#8B4513": "saddle brown", "#D2691E": "chocolate",
    "#000000": "black", "#FFFFFF": "white", "#808080": "gray",
    "#C0C0C0": "silver", "#F5F5DC": "beige",
}
_NAME_TABLE = [(hex_to_rgb(h), name) for h, name in COLOR_NAMES.items()]

HARMONY_RULES = [
    (lambda diff: diff < 30, "monochromatic"),
    (lambda diff: diff > 150, "complementary"),
    (lambda diff: diff > 100, "triadic"),
    (lambda diff: diff > 60, "analogous"),
]

ColorLike = Union[str, RGB, DominantColor]


def _as_rgb(color: ColorLike) -> Optional[RGB]:
    if isinstance(color, DominantColor):
        return color.rgb
    if isinstance(color, str):
        return hex_to_rgb(color)
    return RGB(*color)


def rgb_to_hsl(r: int, g: int, b: int) -> HSL:
    """Convert 0-255 RGB to HSL with h in degrees and s, l in percent."""
    r, g, b = r / 255, g / 255, b / 255
    high, low = max(r, g, b), min(r, g, b)
    lightness = (high + low) / 2

    if high == low:
        hue = saturation = 0.0
    else:
        d = high - low
        saturation = d / (2 - high - low) if lightness > 0.5 else d / (high + low)
        if high == r:
            hue = ((g - b) / d + (6 if g < b else 0)) / 6
        elif high == g:
            hue = ((b - r) / d + 2) / 6
        else:
            hue = ((r - g) / d + 4) / 6

    return HSL(int(round(hue * 360)), int(round(saturation * 100)), int(round(lightness * 100)))


def color_distance(color1: ColorLike, color2: ColorLike) -> float:
    """Euclidean RGB distance; 100 when either color cannot be parsed."""
    rgb1, rgb2 = _as_rgb(color1), _as_rgb(color2)
    if rgb1 is None or rgb2 is None:
        return 100.0
    return math.sqrt(sum((a - b) ** 2 for a, b in zip(rgb1, rgb2)))


def closest_color_name(color: ColorLike) -> str:
    """Name of the nearest reference color (first minimal match wins)."""
    rgb = _as_rgb(color)
    if rgb is None:
        return "unknown"

    closest_name = "unknown"
    min_distance = math.inf
    for reference, name in _NAME_TABLE:
        distance = color_distance(rgb, reference)
        if distance < min_distance:
            min_distance = distance
            closest_name = name
    return closest_name


def _apportion(counts: np.ndarray, total: int) -> List[int]:
    """
    Integer percentages for counts out of total.

    Each value is the exact share rounded down or up by at most one, and
    the sum never exceeds 100.
    """
    exact = counts * 100.0 / total
    floors = np.floor(exact).astype(int)
    target = min(100, int(round(exact.sum())))
    remainder = exact - floors
    for idx in np.argsort(-remainder, kind="stable")[:max(0, target - floors.sum())]:
        floors[idx] += 1
    return floors.tolist()


def quantize_colors(pixels: np.ndarray, num_colors: int = NUM_COLORS) -> List[DominantColor]:
    """
    Bucket opaque RGB samples and return the most frequent buckets.

    Args:
        pixels: (N, 3) array of opaque RGB samples.
        num_colors: Maximum number of dominant colors.

    Returns:
        DominantColor list sorted by count descending; equal counts keep
        first-seen order.
    """
    if len(pixels) == 0 or num_colors <= 0:
        return []

    quantized = (np.round(pixels / QUANTIZE_STEP) * QUANTIZE_STEP).astype(np.int64)
    keys = (quantized[:, 0] << 16) | (quantized[:, 1] << 8) | quantized[:, 2]
    unique, first_seen, counts = np.unique(keys, return_index=True, return_counts=True)

    order = np.lexsort((first_seen, -counts))[:num_colors]
    top_keys, top_counts = unique[order], counts[order]
    percentages = _apportion(top_counts, len(pixels))

    colors = []
    for key, count, percentage in zip(top_keys.tolist(), top_counts.tolist(), percentages):
        rgb = RGB((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF)
        colors.append(DominantColor(rgb_to_hex(*rgb), rgb, percentage, count))
    return colors


def _luma(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float64) @ LUMA_WEIGHTS


def calculate_brightness(pixels: np.ndarray) -> int:
    """Mean luma of opaque pixels on a 0-100 scale (50 with no pixels)."""
    if len(pixels) == 0:
        return 50
    return int(round(_luma(pixels).mean() / 255 * 100))


def calculate_contrast(pixels: np.ndarray) -> int:
    """Luma standard deviation scaled by 128 to 0-100 (50 with no pixels)."""
    if len(pixels) == 0:
        return 50
    std = float(_luma(pixels).std())
    return min(int(round(std / 128 * 100)), 100)


def detect_color_harmony(colors: Sequence[DominantColor]) -> str:
    """Classify the mean hue step between consecutive dominant colors."""
    if len(colors) < 2:
        return "monochromatic"

    hues = [rgb_to_hsl(*c.rgb).h for c in colors]
    diffs = [abs(a - b) for a, b in zip(hues, hues[1:])]
    return first_match(HARMONY_RULES, sum(diffs) / len(diffs), "varied")


def is_grayscale(colors: Sequence[DominantColor]) -> bool:
    return all(
        max(abs(c.rgb.r - c.rgb.g), abs(c.rgb.g - c.rgb.b), abs(c.rgb.b - c.rgb.r)) < 20
        for c in colors
    )


def color_temperature(colors: Sequence[DominantColor]) -> str:
    """Compare percentage mass in the warm and cool hue bands."""
    warm = cool = 0
    for color in colors:
        hue = rgb_to_hsl(*color.rgb).h
        share = color.percentage or 0
        if 0 <= hue <= 60 or 300 <= hue <= 360:
            warm += share
        elif 180 <= hue <= 270:
            cool += share

    if warm > cool * 1.5:
        return "warm"
    if cool > warm * 1.5:
        return "cool"
    return "neutral"


def _named(color: DominantColor) -> NamedColor:
    return NamedColor(
        hex=color.hex,
        rgb=color.rgb,
        percentage=color.percentage,
        count=color.count,
        name=closest_color_name(color),
        hsl=rgb_to_hsl(*color.rgb),
    )


def extract_colors(image: ImageInput,
                   num_colors: int = NUM_COLORS,
                   resize_width: int = COLOR_RESIZE,
                   resize_height: int = COLOR_RESIZE) -> ColorFeatures:
    """
    Extract color features from an image.

    Args:
        image: Encoded image bytes or a decoded RGB/RGBA array.
        num_colors: Number of dominant colors to keep.
        resize_width: Analysis grid width.
        resize_height: Analysis grid height.

    Returns:
        Fully populated ColorFeatures. An image with no opaque pixels
        yields empty dominant colors and a black placeholder primary.

    Raises:
        DecodeError: If the image bytes cannot be decoded.
    """
    grid = resize_cover(load_image(image), resize_width, resize_height)
    pixels = opaque_pixels(grid, ALPHA_THRESHOLD)

    dominant = quantize_colors(pixels, num_colors)
    if not dominant:
        logger.warning("No opaque pixels found, color features are placeholders")
        primary = secondary = _named(DominantColor("#000000", RGB(0, 0, 0), 0, 0))
    else:
        primary = _named(dominant[0])
        secondary = _named(dominant[1]) if len(dominant) > 1 else primary

    features = ColorFeatures(
        dominant_colors=dominant,
        color_palette=[closest_color_name(c) for c in dominant],
        primary_color=primary,
        secondary_color=secondary,
        brightness=calculate_brightness(pixels),
        contrast=calculate_contrast(pixels),
        color_harmony=detect_color_harmony(dominant),
        is_grayscale=is_grayscale(dominant),
        temperature=color_temperature(dominant),
    )
    logger.debug(
        f"Extracted {len(dominant)} colors from {len(pixels)} opaque pixels "
        f"(primary {primary.hex}, {features.temperature})"
    )
    return features


def compare_colors(colors1: Sequence[DominantColor],
                   colors2: Sequence[DominantColor]) -> int:
    """
    Percentage-mass weighted similarity of two dominant color sets (0-100).

    Each color is matched to its closest counterpart in the other set
    and that distance similarity is weighted by the color's share; the
    two directions are averaged. Identical sets score 100. A missing
    percentage counts as an equal share of its set, and a set whose
    shares sum to 0 (every bucket rounded down) is weighted evenly.
    """
    if not colors1 or not colors2:
        return 0

    def shares(colors):
        even = 100 / len(colors)
        raw = [c.percentage if c.percentage is not None else even for c in colors]
        total = sum(raw)
        if total <= 0:
            return [1 / len(colors)] * len(colors)
        return [share / total for share in raw]

    def similarity(color1, color2):
        return max(0.0, 100 - color_distance(color1, color2) / MAX_RGB_DISTANCE * 100)

    def directed(source, target):
        return sum(
            share * max(similarity(color, other) for other in target)
            for color, share in zip(source, shares(source))
        )

    return int(round((directed(colors1, colors2) + directed(colors2, colors1)) / 2))


def generate_color_palette(dominant_colors: Sequence[DominantColor],
                           count: int = 5) -> List[Dict[str, object]]:
    """Lighter and darker variants (+/-40 per channel) of the top colors."""
    palette = []
    for color in dominant_colors[:count]:
        r, g, b = color.rgb
        palette.append({
            "original": color.hex,
            "lighter": rgb_to_hex(min(r + 40, 255), min(g + 40, 255), min(b + 40, 255)),
            "darker": rgb_to_hex(max(r - 40, 0), max(g - 40, 0), max(b - 40, 0)),
            "name": closest_color_name(color),
            "percentage": color.percentage,
        })
    return palette
