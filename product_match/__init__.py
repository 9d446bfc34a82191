"""
product_match — Explainable image-to-product visual matching.

Extracts deterministic pixel-statistic features from an uploaded image
(dominant colors, brightness, contrast, pattern, texture, symmetry,
style) and ranks catalog products by a category-weighted similarity
score with per-factor explanations.

Modules:
    engine          SearchEngine over a prebuilt catalog
    features        analyze_image: image bytes → FeatureVector
    colors          Dominant colors, palette names, brightness/contrast
    patterns        Edge/repetition/symmetry measurements and labels
    similarity      Per-factor scores and category weight profiles
    scoring         Match confidence, explanations, quality groups
    ranking         Filtering, sorting and ranking of candidates
    histograms      Color signatures + FAISS shortlist search
    index_builder   Catalog ingestion and index construction
    preprocessing   Image decoding and resampling
"""

from .features import analyze_image
from .models import FeatureVector, MatchResult, Product
from .preprocessing import DecodeError
from .ranking import InvalidRankOptions, RankOptions, rank_candidates

__version__ = "1.0.0"

__all__ = [
    "analyze_image",
    "rank_candidates",
    "DecodeError",
    "InvalidRankOptions",
    "FeatureVector",
    "MatchResult",
    "Product",
    "RankOptions",
]
