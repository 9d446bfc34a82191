"""
Pattern, texture, symmetry and style analysis.

Six independent measurements are taken from the image, each on its own
small grayscale (or color) grid:

    edge density       3x3 high-pass kernel, share of strong responses
    line orientation   horizontal vs. vertical neighbor differences
    block repetition   share of similar 10x10 block means
    gray statistics    global mean / stddev of intensity
    color variance     mean per-channel stddev
    symmetry           mirror agreement about both midlines

Labels (pattern, texture, complexity, shape distribution, style) are
derived from those measurements by ordered threshold rules. A
measurement that fails is logged and reported as missing; every label
that depends on it falls back to "unknown", so analysis never aborts on
image content.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

import cv2
import numpy as np

from .models import Complexity, PatternFeatures, Symmetry
from .preprocessing import ImageInput, gray_grid, load_image, resize_cover
from .rules import first_match

logger = logging.getLogger(__name__)

EDGE_GRID = int(os.environ.get("PATTERN_EDGE_GRID", "200"))
ANALYSIS_GRID = int(os.environ.get("PATTERN_ANALYSIS_GRID", "100"))
EDGE_THRESHOLD = int(os.environ.get("PATTERN_EDGE_THRESHOLD", "50"))
ANALYSIS_WORKERS = int(os.environ.get("PATTERN_WORKERS", "6"))

BLOCK_SIZE = 10
BLOCK_SIMILARITY = 15
# Pairwise block comparison is quadratic; the repetition grid is shrunk
# until the block count fits.
MAX_REPETITION_BLOCKS = int(os.environ.get("PATTERN_MAX_BLOCKS", "400"))

EDGE_KERNEL = np.array([[-1, -1, -1],
                        [-1, 8, -1],
                        [-1, -1, -1]], dtype=np.float32)


class PatternStats(NamedTuple):
    """Raw measurements; None marks a measurement that failed."""
    edge_density: Optional[float]
    repetition: Optional[float]
    orientation: str
    gray_mean: Optional[float]
    gray_std: Optional[float]
    color_std: Optional[float]
    symmetry: Symmetry


def _known(*values) -> bool:
    return all(v is not None for v in values)


PATTERN_RULES = [
    (lambda s: s.edge_density < 10 and s.repetition < 20, "solid"),
    (lambda s: s.repetition > 60 and s.orientation in ("horizontal", "vertical"), "striped"),
    (lambda s: s.repetition > 60 and s.edge_density > 40, "checked"),
    (lambda s: s.repetition > 60, "geometric"),
    (lambda s: s.edge_density > 50 and s.repetition > 30, "floral"),
    (lambda s: s.edge_density > 40 and s.repetition < 30, "abstract"),
    (lambda s: s.edge_density > 25, "textured"),
]

TEXTURE_RULES = [
    (lambda s: s.gray_std < 20 and s.edge_density < 10, "smooth"),
    (lambda s: s.gray_std < 30 and s.edge_density < 15, "matte"),
    (lambda s: s.gray_std > 80 and s.edge_density > 40, "rough"),
    (lambda s: s.gray_mean > 200 and s.gray_std < 25, "glossy"),
    (lambda s: s.edge_density > 30, "textured"),
]

SHAPE_RULES = [
    (lambda s: s.edge_density < 15, "uniform"),
    (lambda s: s.repetition > 50, "scattered"),
    (lambda s: s.edge_density > 40 and s.repetition < 30, "random"),
]

COMPLEXITY_RULES = [
    (lambda score: score < 20, "simple"),
    (lambda score: score < 40, "moderate"),
    (lambda score: score < 60, "complex"),
]

ORIENTATION_RULES = [
    (lambda ratio: ratio > 1.3, "horizontal"),
    (lambda ratio: ratio < 0.7, "vertical"),
]

STYLE_RULES = [
    (lambda p: p.pattern == "solid" and p.texture == "smooth", "minimalist"),
    (lambda p: p.pattern == "solid" and p.texture == "matte", "modern"),
    (lambda p: p.pattern == "geometric" and _level(p) == "simple", "contemporary"),
    (lambda p: p.pattern == "geometric" and _level(p) == "complex", "industrial"),
    (lambda p: p.pattern == "floral", "bohemian"),
    (lambda p: p.pattern == "striped", "classic"),
    (lambda p: p.pattern == "abstract" and _level(p) == "very complex", "artistic"),
    (lambda p: p.texture == "rough", "rustic"),
    (lambda p: p.texture == "glossy", "modern"),
]


def _level(pattern: PatternFeatures) -> Optional[str]:
    return pattern.complexity.level if pattern.complexity else None


# --- Measurements -----------------------------------------------------------

def measure_edge_density(image_np: np.ndarray) -> Optional[float]:
    """Percentage of pixels whose high-pass response exceeds the threshold."""
    try:
        gray = gray_grid(image_np, EDGE_GRID)
        # uint8 output saturates: negative responses clamp to 0
        edges = cv2.filter2D(gray, -1, EDGE_KERNEL, borderType=cv2.BORDER_REPLICATE)
        return float(np.count_nonzero(edges > EDGE_THRESHOLD)) / edges.size * 100
    except Exception as e:
        logger.warning(f"Edge density detection failed: {e}")
        return None


def measure_line_orientation(image_np: np.ndarray) -> str:
    """
    Compare summed absolute neighbor differences along rows and columns.

    Returns "horizontal" when row-wise differences dominate, "vertical"
    when column-wise differences dominate, otherwise "mixed" (including
    a flat image with no differences at all).
    """
    try:
        gray = gray_grid(image_np, ANALYSIS_GRID).astype(np.int32)
        core = gray[:-1, :-1]
        horizontal = float(np.abs(core - gray[:-1, 1:]).sum())
        vertical = float(np.abs(core - gray[1:, :-1]).sum())
        if horizontal == 0 and vertical == 0:
            return "mixed"
        return first_match(ORIENTATION_RULES, horizontal / (vertical + 1), "mixed")
    except Exception as e:
        logger.warning(f"Line orientation detection failed: {e}")
        return "mixed"


def _repetition_grid_size(size: int, block: int = BLOCK_SIZE) -> int:
    while size > block and len(range(0, size - block, block)) ** 2 > MAX_REPETITION_BLOCKS:
        size -= block
    return size


def measure_repetition(image_np: np.ndarray) -> Optional[float]:
    """Percentage of block pairs whose mean intensities differ by < 15."""
    try:
        size = _repetition_grid_size(ANALYSIS_GRID)
        gray = gray_grid(image_np, size).astype(np.float64)

        n = len(range(0, size - BLOCK_SIZE, BLOCK_SIZE))
        if n == 0:
            return 0.0
        blocks = gray[:n * BLOCK_SIZE, :n * BLOCK_SIZE]
        means = blocks.reshape(n, BLOCK_SIZE, n, BLOCK_SIZE).mean(axis=(1, 3)).ravel()

        i, j = np.triu_indices(len(means), k=1)
        if len(i) == 0:
            return 0.0
        similar = np.count_nonzero(np.abs(means[i] - means[j]) < BLOCK_SIMILARITY)
        return similar / len(i) * 100
    except Exception as e:
        logger.warning(f"Repetition detection failed: {e}")
        return None


def measure_gray_stats(image_np: np.ndarray) -> Tuple[Optional[float], Optional[float]]:
    """Global (mean, stddev) of grayscale intensity."""
    try:
        gray = gray_grid(image_np, EDGE_GRID).astype(np.float64)
        return float(gray.mean()), float(gray.std())
    except Exception as e:
        logger.warning(f"Intensity statistics failed: {e}")
        return None, None


def measure_color_std(image_np: np.ndarray) -> Optional[float]:
    """Mean of the per-channel RGB standard deviations."""
    try:
        grid = resize_cover(image_np, EDGE_GRID, EDGE_GRID)[:, :, :3].astype(np.float64)
        return float(grid.reshape(-1, 3).std(axis=0).mean())
    except Exception as e:
        logger.warning(f"Color variance failed: {e}")
        return None


def measure_symmetry(image_np: np.ndarray) -> Symmetry:
    """
    Mirror agreement about the vertical and horizontal midlines (0-100).

    Each pixel in the left (top) half is compared with its mirror and
    contributes (255 - |diff|) / 255; sums are normalized by pair count.
    """
    try:
        gray = gray_grid(image_np, ANALYSIS_GRID).astype(np.float64)
        h, w = gray.shape
        mid_x, mid_y = w // 2, h // 2

        left = gray[:, :mid_x]
        right = gray[:, ::-1][:, :mid_x]
        top = gray[:mid_y, :]
        bottom = gray[::-1, :][:mid_y, :]

        vertical = ((255 - np.abs(left - right)) / 255).mean() * 100
        horizontal = ((255 - np.abs(top - bottom)) / 255).mean() * 100
        return Symmetry(
            horizontal=int(round(horizontal)),
            vertical=int(round(vertical)),
            overall=int(round((vertical + horizontal) / 2)),
        )
    except Exception as e:
        logger.warning(f"Symmetry detection failed: {e}")
        return Symmetry(horizontal=0, vertical=0, overall=0)


def _fan_out(image_np: np.ndarray,
             tasks: Dict[str, Callable[[np.ndarray], object]],
             workers: int) -> Dict[str, object]:
    if workers <= 1:
        return {name: task(image_np) for name, task in tasks.items()}
    with ThreadPoolExecutor(max_workers=min(workers, len(tasks))) as executor:
        futures = {name: executor.submit(task, image_np) for name, task in tasks.items()}
        return {name: future.result() for name, future in futures.items()}


def measure_pattern_stats(image: ImageInput, workers: int = ANALYSIS_WORKERS) -> PatternStats:
    """Run all six measurements, concurrently when workers > 1."""
    image_np = load_image(image)

    results = _fan_out(image_np, {
        "edge_density": measure_edge_density,
        "repetition": measure_repetition,
        "orientation": measure_line_orientation,
        "gray_stats": measure_gray_stats,
        "color_std": measure_color_std,
        "symmetry": measure_symmetry,
    }, workers)

    gray_mean, gray_std = results["gray_stats"]
    return PatternStats(
        edge_density=results["edge_density"],
        repetition=results["repetition"],
        orientation=results["orientation"],
        gray_mean=gray_mean,
        gray_std=gray_std,
        color_std=results["color_std"],
        symmetry=results["symmetry"],
    )


# --- Classification ---------------------------------------------------------

def classify_pattern(stats: PatternStats) -> str:
    if not _known(stats.edge_density, stats.repetition):
        return "unknown"
    return first_match(PATTERN_RULES, stats, "plain")


def classify_texture(stats: PatternStats) -> str:
    if not _known(stats.edge_density, stats.gray_mean, stats.gray_std):
        return "unknown"
    return first_match(TEXTURE_RULES, stats, "plain")


def classify_shape_distribution(stats: PatternStats) -> str:
    if not _known(stats.edge_density, stats.repetition):
        return "unknown"
    return first_match(SHAPE_RULES, stats, "mixed")


def score_complexity(stats: PatternStats) -> Complexity:
    """
    Blend edge density (40%), color variance (40%) and lack of
    repetition (20%) into a 0-100 score and band it.
    """
    if not _known(stats.edge_density, stats.repetition, stats.color_std):
        return Complexity(score=0, level="unknown")

    score = (stats.edge_density * 0.4
             + stats.color_std / 2.55 * 0.4
             + (100 - stats.repetition) * 0.2)
    score = min(max(score, 0.0), 100.0)
    return Complexity(score=int(round(score)), level=first_match(COMPLEXITY_RULES, score, "very complex"))


def suggest_style(pattern: PatternFeatures) -> str:
    """Map (pattern, texture, complexity level) to a style label."""
    return first_match(STYLE_RULES, pattern, "contemporary")


def analyze_pattern(image: ImageInput, workers: int = ANALYSIS_WORKERS) -> PatternFeatures:
    """
    Extract pattern features from an image.

    Args:
        image: Encoded image bytes or a decoded RGB/RGBA array.
        workers: Threads used for the independent measurements
            (1 runs them serially; results are identical).

    Returns:
        Fully populated PatternFeatures.

    Raises:
        DecodeError: If the image bytes cannot be decoded.
    """
    stats = measure_pattern_stats(image, workers)
    features = PatternFeatures(
        pattern=classify_pattern(stats),
        texture=classify_texture(stats),
        complexity=score_complexity(stats),
        symmetry=stats.symmetry,
        shape_distribution=classify_shape_distribution(stats),
        orientation=stats.orientation,
    )
    logger.debug(
        f"Pattern analysis: edge={stats.edge_density}, repetition={stats.repetition}, "
        f"pattern={features.pattern}, texture={features.texture}"
    )
    return features


def pattern_tags(pattern: PatternFeatures) -> List[str]:
    """Short descriptive tags for display and search facets."""
    tags = [pattern.pattern, pattern.texture]
    if pattern.complexity:
        tags.append(pattern.complexity.level)
    if pattern.symmetry and (pattern.symmetry.overall or 0) > 70:
        tags.append("symmetric")
    if pattern.orientation and pattern.orientation != "mixed":
        tags.append(f"{pattern.orientation}-lines")
    if pattern.shape_distribution and pattern.shape_distribution != "unknown":
        tags.append(pattern.shape_distribution)
    return [tag for tag in tags if tag]
