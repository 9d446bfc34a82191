"""
Per-factor similarity between an uploaded image and a catalog product.

Six factors are scored on 0-100 (color, pattern, brightness, contrast,
texture, style) and combined with a category weight profile. Stored
product features are often incomplete, so a factor whose inputs are
missing scores a neutral 50 instead of failing; the product still
competes in ranking, just with less precision.
"""

import logging
from typing import Any, Dict, Optional

from .colors import compare_colors, rgb_to_hsl
from .models import (
    FACTORS, ColorFeatures, FeatureVector, PatternFeatures, SimilarityResult,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0

DEFAULT_WEIGHTS = {
    "color": 0.40,
    "pattern": 0.25,
    "brightness": 0.10,
    "contrast": 0.10,
    "texture": 0.10,
    "style": 0.05,
}

# Each profile sums to 1.0; factors a profile leaves out do not count
# toward the overall score.
CATEGORY_WEIGHTS = {
    "shoes": {
        "color": 0.45,
        "pattern": 0.20,
        "texture": 0.20,
        "brightness": 0.10,
        "contrast": 0.05,
    },
    "clothing": {
        "color": 0.40,
        "pattern": 0.30,
        "texture": 0.15,
        "brightness": 0.10,
        "contrast": 0.05,
    },
    "accessories": {
        "color": 0.50,
        "pattern": 0.20,
        "brightness": 0.15,
        "contrast": 0.10,
        "texture": 0.05,
    },
    "furniture": {
        "texture": 0.30,
        "color": 0.30,
        "style": 0.25,
        "pattern": 0.10,
        "brightness": 0.05,
    },
    "electronics": {
        "color": 0.35,
        "brightness": 0.25,
        "texture": 0.20,
        "contrast": 0.15,
        "pattern": 0.05,
    },
}

TEXTURE_FAMILIES = (
    frozenset({"smooth", "matte", "glossy"}),
    frozenset({"rough", "textured"}),
    frozenset({"fabric"}),
    frozenset({"leather", "metal", "wood", "plastic"}),
)

STYLE_FAMILIES = (
    frozenset({"modern", "contemporary", "minimalist"}),
    frozenset({"classic", "vintage", "rustic"}),
    frozenset({"bohemian", "industrial", "abstract"}),
)

# Unordered pattern / texture pairs that earn partial credit.
PATTERN_PAIR_CREDIT = {
    frozenset({"solid", "plain"}): 30,
    frozenset({"striped", "geometric"}): 25,
}
TEXTURE_PAIR_CREDIT = {
    frozenset({"smooth", "matte"}): 20,
}


def weights_for(category: Optional[str]) -> Dict[str, float]:
    """Weight profile for a category key; unknown keys get the default."""
    return dict(CATEGORY_WEIGHTS.get((category or "").lower(), DEFAULT_WEIGHTS))


def _primary_hue(colors: ColorFeatures) -> Optional[int]:
    primary = colors.primary_color
    if primary is not None:
        return primary.hsl.h if primary.hsl is not None else rgb_to_hsl(*primary.rgb).h
    if colors.dominant_colors:
        return rgb_to_hsl(*colors.dominant_colors[0].rgb).h
    return None


def color_similarity(uploaded: Optional[ColorFeatures],
                     candidate: Optional[ColorFeatures]) -> float:
    """
    Blend dominant-color similarity (50%), palette overlap (25%),
    primary hue closeness (15%) and temperature agreement (10%).
    """
    if uploaded is None or candidate is None:
        return NEUTRAL_SCORE

    if uploaded.dominant_colors is None or candidate.dominant_colors is None:
        dominant_score = NEUTRAL_SCORE
    else:
        dominant_score = float(compare_colors(uploaded.dominant_colors, candidate.dominant_colors))

    if uploaded.color_palette is None or candidate.color_palette is None:
        palette_score = NEUTRAL_SCORE
    else:
        common = [name for name in uploaded.color_palette if name in candidate.color_palette]
        palette_score = len(common) / max(len(uploaded.color_palette), 1) * 100

    hue1, hue2 = _primary_hue(uploaded), _primary_hue(candidate)
    if hue1 is None or hue2 is None:
        primary_score = NEUTRAL_SCORE
    else:
        primary_score = max(0.0, 100 - abs(hue1 - hue2) / 360 * 100)

    if uploaded.temperature is None or candidate.temperature is None:
        temperature_score = NEUTRAL_SCORE
    elif uploaded.temperature == candidate.temperature:
        temperature_score = 100.0
    elif "neutral" in (uploaded.temperature, candidate.temperature):
        temperature_score = 50.0
    else:
        temperature_score = 0.0

    return (dominant_score * 0.5 + palette_score * 0.25
            + primary_score * 0.15 + temperature_score * 0.10)


def _label(value: Optional[str]) -> Optional[str]:
    """A label that carries information; "unknown" counts as missing."""
    return None if value in (None, "unknown") else value


def compare_patterns(pattern1: Optional[PatternFeatures],
                     pattern2: Optional[PatternFeatures]) -> float:
    """
    Pattern agreement on 0-100.

    Up to 40 for the pattern label, 30 for texture, 20 for complexity
    score closeness and 10 for overall symmetry closeness. Missing or
    "unknown" labels earn no label credit; missing complexity or
    symmetry scores are taken as 50.
    """
    if pattern1 is None or pattern2 is None:
        return NEUTRAL_SCORE

    score = 0.0
    name1, name2 = _label(pattern1.pattern), _label(pattern2.pattern)
    if name1 is not None and name1 == name2:
        score += 40
    else:
        score += PATTERN_PAIR_CREDIT.get(frozenset({name1, name2}), 0)

    texture1, texture2 = _label(pattern1.texture), _label(pattern2.texture)
    if texture1 is not None and texture1 == texture2:
        score += 30
    else:
        score += TEXTURE_PAIR_CREDIT.get(frozenset({texture1, texture2}), 0)

    def complexity(p):
        return p.complexity.score if p.complexity and p.complexity.score is not None else 50

    def symmetry(p):
        return p.symmetry.overall if p.symmetry and p.symmetry.overall is not None else 50

    score += max(0.0, 20 - abs(complexity(pattern1) - complexity(pattern2)) / 5)
    score += max(0.0, 10 - abs(symmetry(pattern1) - symmetry(pattern2)) / 10)
    return min(score, 100.0)


def absolute_similarity(value1: Optional[float], value2: Optional[float]) -> float:
    """100 minus the absolute difference, floored at 0; 50 if either is missing."""
    if value1 is None or value2 is None:
        return NEUTRAL_SCORE
    return max(0.0, 100 - abs(value1 - value2))


def _family_similarity(label1: Optional[str], label2: Optional[str],
                       families, same: float, other: float) -> float:
    label1, label2 = _label(label1), _label(label2)
    if not label1 or not label2:
        return NEUTRAL_SCORE
    if label1 == label2:
        return 100.0
    if any(label1 in family and label2 in family for family in families):
        return same
    return other


def texture_similarity(texture1: Optional[str], texture2: Optional[str]) -> float:
    return _family_similarity(texture1, texture2, TEXTURE_FAMILIES, 70.0, 30.0)


def style_similarity(style1: Optional[str], style2: Optional[str]) -> float:
    return _family_similarity(style1, style2, STYLE_FAMILIES, 75.0, 25.0)


def factor_scores(uploaded: FeatureVector, candidate: FeatureVector) -> Dict[str, float]:
    """Unrounded 0-100 score for every factor."""
    up_colors, cand_colors = uploaded.colors, candidate.colors
    up_pattern, cand_pattern = uploaded.pattern, candidate.pattern

    return {
        "color": color_similarity(up_colors, cand_colors),
        "pattern": compare_patterns(up_pattern, cand_pattern),
        "brightness": absolute_similarity(
            up_colors.brightness if up_colors else None,
            cand_colors.brightness if cand_colors else None,
        ),
        "contrast": absolute_similarity(
            up_colors.contrast if up_colors else None,
            cand_colors.contrast if cand_colors else None,
        ),
        "texture": texture_similarity(
            up_pattern.texture if up_pattern else None,
            cand_pattern.texture if cand_pattern else None,
        ),
        "style": style_similarity(uploaded.style, candidate.style),
    }


def calculate_similarity(uploaded: Any,
                         candidate: Any,
                         category: Optional[str] = "default") -> SimilarityResult:
    """
    Score a candidate's stored features against uploaded features.

    Args:
        uploaded: FeatureVector (or mapping) of the uploaded image.
        candidate: FeatureVector (or mapping) stored for the product;
            may be partial or None.
        category: Category key selecting the weight profile.

    Returns:
        SimilarityResult with the rounded overall score, the rounded
        per-factor breakdown and the weights used.
    """
    uploaded = FeatureVector.from_dict(uploaded)
    candidate = FeatureVector.from_dict(candidate)
    weights = weights_for(category)

    scores = factor_scores(uploaded, candidate)
    total = sum(scores[factor] * weight for factor, weight in weights.items())

    return SimilarityResult(
        overall_score=int(round(total)),
        breakdown={factor: int(round(scores[factor])) for factor in FACTORS},
        weights=weights,
    )
