"""
Match confidence, explanations and quality grouping.

Confidence rewards both a high overall score and agreement between the
individual factors: a product that scores 70 because every factor is
near 70 is a more trustworthy match than one that averages a perfect
color match with a failed pattern match.

Band thresholds are configurable via environment variables.
"""

import os
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from .models import Confidence, MatchResult

logger = logging.getLogger(__name__)

CONFIDENCE_SCORE_WEIGHT = float(os.environ.get("CONFIDENCE_SCORE_W", "0.7"))
CONFIDENCE_CONSISTENCY_WEIGHT = float(os.environ.get("CONFIDENCE_CONSISTENCY_W", "0.3"))

CONFIDENCE_BANDS = (
    (85, "very high"),
    (70, "high"),
    (50, "medium"),
)

EXPLANATION_BANDS = (
    (80, "Excellent {factor} match ({score}%)"),
    (60, "Good {factor} similarity ({score}%)"),
    (40, "Moderate {factor} match ({score}%)"),
)
LIMITED_SIMILARITY = "Limited visual similarity detected"

QUALITY_BANDS = (
    (85, "excellent"),
    (70, "good"),
    (50, "fair"),
)


def compute_confidence(overall_score: float,
                       match_factors: Mapping[str, float],
                       weights: Optional[Mapping[str, float]] = None) -> Confidence:
    """
    Combine the overall score with factor consistency.

    Args:
        overall_score: Similarity score (0-100).
        match_factors: Per-factor scores (0-100).
        weights: When given, only factors with nonzero weight are
            considered scored and enter the consistency term.

    Returns:
        Confidence with a 0-100 score and a level band.
    """
    scored = [
        score for factor, score in match_factors.items()
        if weights is None or weights.get(factor, 0) > 0
    ]
    if scored:
        deviation = sum(abs(score - overall_score) for score in scored) / len(scored)
    else:
        deviation = 0.0
    consistency = max(0.0, 100 - deviation)

    confidence = (CONFIDENCE_SCORE_WEIGHT * overall_score
                  + CONFIDENCE_CONSISTENCY_WEIGHT * consistency)
    level = next((label for floor, label in CONFIDENCE_BANDS if confidence >= floor), "low")
    return Confidence(level=level, score=int(round(confidence)))


def explain_match(match_factors: Mapping[str, int],
                  weights: Mapping[str, float]) -> List[str]:
    """
    Human-readable reasons, strongest factor first.

    Only weighted factors scoring at least 40 are mentioned; factors
    with equal scores keep their natural order.
    """
    ranked = sorted(
        ((factor, score) for factor, score in match_factors.items() if weights.get(factor, 0) > 0),
        key=lambda item: item[1],
        reverse=True,
    )

    explanations = []
    for factor, score in ranked:
        template = next((text for floor, text in EXPLANATION_BANDS if score >= floor), None)
        if template:
            explanations.append(template.format(factor=factor, score=score))

    return explanations or [LIMITED_SIMILARITY]


def group_by_match_quality(results: Iterable[MatchResult]) -> Dict[str, List[MatchResult]]:
    """Bucket ranked results into excellent / good / fair / poor."""
    groups = {"excellent": [], "good": [], "fair": [], "poor": []}
    for result in results:
        quality = next(
            (label for floor, label in QUALITY_BANDS if result.similarity_score >= floor),
            "poor",
        )
        groups[quality].append(result)
    return groups
