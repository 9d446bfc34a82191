"""
Candidate ranking.

Scores every candidate against the uploaded features, optionally blends
in price and popularity terms, drops weak matches and products that fail
the caller's preference filters, then sorts, truncates and numbers the
results. All sorts are stable: candidates with equal sort keys keep
their input order.

Scoring is an independent map over candidates and runs on a thread pool
for large candidate sets; the output is identical to serial execution.
"""

import math
import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields, replace
from numbers import Real
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import FeatureVector, MatchResult, Product
from .scoring import compute_confidence, explain_match
from .similarity import calculate_similarity

logger = logging.getLogger(__name__)

RANK_WORKERS = int(os.environ.get("RANK_WORKERS", "4"))
PARALLEL_THRESHOLD = int(os.environ.get("RANK_PARALLEL_THRESHOLD", "64"))


class InvalidRankOptions(ValueError):
    """Raised for structurally invalid ranking options, before any scoring."""


@dataclass
class PreferenceFilters:
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    brands: Optional[List[str]] = None
    in_stock_only: bool = False
    min_rating: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PreferenceFilters":
        if isinstance(data, PreferenceFilters):
            return data
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidRankOptions(f"filters must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidRankOptions(f"Unknown filter(s): {', '.join(sorted(unknown))}")
        return cls(**data)


@dataclass
class RankOptions:
    limit: int = 20
    min_score: float = 30
    sort_by: str = "relevance"
    category: Optional[str] = "default"
    price_weight: float = 0.0
    popularity_weight: float = 0.0
    reference_price: Optional[float] = None
    filters: PreferenceFilters = field(default_factory=PreferenceFilters)
    workers: int = RANK_WORKERS

    @classmethod
    def from_dict(cls, data: Any) -> "RankOptions":
        if isinstance(data, RankOptions):
            return data
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidRankOptions(f"options must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidRankOptions(f"Unknown option(s): {', '.join(sorted(unknown))}")
        values = dict(data)
        values["filters"] = PreferenceFilters.from_dict(values.get("filters"))
        return cls(**values)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_options(options: RankOptions) -> RankOptions:
    """
    Check option structure and return a normalized copy.

    The limit becomes an int, filters a PreferenceFilters and brands a
    list; the caller's options are left untouched.

    Raises:
        InvalidRankOptions: On the first invalid value found.
    """
    limit = options.limit
    if not _is_number(limit) or limit < 1 or int(limit) != limit:
        raise InvalidRankOptions(f"limit must be a positive integer, got {limit!r}")

    if not _is_number(options.min_score) or not 0 <= options.min_score <= 100:
        raise InvalidRankOptions(f"min_score must be within 0-100, got {options.min_score!r}")

    if options.sort_by not in SORT_MODES:
        raise InvalidRankOptions(
            f"Unknown sort_by {options.sort_by!r}; expected one of {', '.join(SORT_MODES)}"
        )

    for name in ("price_weight", "popularity_weight"):
        value = getattr(options, name)
        if not _is_number(value) or not 0 <= value <= 1:
            raise InvalidRankOptions(f"{name} must be within 0-1, got {value!r}")

    if options.reference_price is not None and (
            not _is_number(options.reference_price) or options.reference_price <= 0):
        raise InvalidRankOptions(
            f"reference_price must be a positive number, got {options.reference_price!r}"
        )

    if not isinstance(options.workers, int) or options.workers < 1:
        raise InvalidRankOptions(f"workers must be a positive integer, got {options.workers!r}")

    f = PreferenceFilters.from_dict(options.filters)
    for name in ("min_price", "max_price", "min_rating"):
        value = getattr(f, name)
        if value is not None and (not _is_number(value) or value < 0):
            raise InvalidRankOptions(f"{name} must be a non-negative number, got {value!r}")
    if f.min_price is not None and f.max_price is not None and f.min_price > f.max_price:
        raise InvalidRankOptions(
            f"min_price ({f.min_price}) is greater than max_price ({f.max_price})"
        )
    if f.brands is not None and (isinstance(f.brands, str) or not isinstance(f.brands, Iterable)):
        raise InvalidRankOptions("brands must be a list of brand names")

    return replace(options, limit=int(limit), filters=_materialize(f))


def _materialize(filters: PreferenceFilters) -> PreferenceFilters:
    # Brands may arrive as a one-shot iterator; read it exactly once.
    if filters.brands is None or isinstance(filters.brands, list):
        return replace(filters)
    return replace(filters, brands=list(filters.brands))



# --- Auxiliary terms ----------------------------------------------------------

def price_score(product: Product, reference_price: Optional[float] = None) -> Optional[float]:
    """
    0-100 price attractiveness, None when the product has no price.

    With a reference price the score is proximity to it; otherwise
    cheaper is better, losing one point per 100 currency units.
    """
    if product.price is None:
        return None
    if reference_price:
        return max(0.0, 100 - abs(product.price - reference_price) / reference_price * 100)
    return max(0.0, 100 - product.price / 100)


def popularity_score(product: Product) -> float:
    """Views (50 per 1000) plus purchases (50 per 100), capped at 100."""
    return min(product.views / 1000 * 50 + product.purchases / 100 * 50, 100.0)


def blend(base: float, aux: float, weight: float) -> float:
    return base * (1 - weight) + aux * weight


# --- Filtering and sorting ------------------------------------------------------

def passes_filters(product: Product, filters: PreferenceFilters) -> bool:
    """Hard preference excludes; unknown values never satisfy a bound."""
    if filters.min_price is not None and (product.price is None or product.price < filters.min_price):
        return False
    if filters.max_price is not None and (product.price is None or product.price > filters.max_price):
        return False
    if filters.brands and product.brand not in filters.brands:
        return False
    if filters.in_stock_only and not product.in_stock:
        return False
    if filters.min_rating is not None and (product.rating is None or product.rating < filters.min_rating):
        return False
    return True


def filter_by_preferences(results: Sequence[MatchResult],
                          filters: Any = None) -> List[MatchResult]:
    filters = _materialize(PreferenceFilters.from_dict(filters))
    return [r for r in results if passes_filters(r.product, filters)]


def _missing_last(value: Optional[float], descending: bool) -> Tuple[bool, float]:
    # With reverse=True the tuple order flips, so "present" must sort high.
    if descending:
        return (value is not None, value if value is not None else 0.0)
    return (value is None, value if value is not None else 0.0)


SORT_MODES: Dict[str, Tuple[Callable[[MatchResult], Any], bool]] = {
    "relevance": (lambda r: r.similarity_score, True),
    "similarity": (lambda r: r.raw_score, True),
    "price-low": (lambda r: _missing_last(r.product.price, False), False),
    "price-high": (lambda r: _missing_last(r.product.price, True), True),
    "popularity": (lambda r: popularity_score(r.product), True),
    "rating": (lambda r: _missing_last(r.product.rating, True), True),
}


def sort_results(results: Sequence[MatchResult], sort_by: str = "relevance") -> List[MatchResult]:
    """Stable sort by the requested mode (ties keep input order)."""
    key, descending = SORT_MODES[sort_by]
    return sorted(results, key=key, reverse=descending)


# --- Ranking ------------------------------------------------------------------

def _score_candidate(uploaded: FeatureVector, product: Product,
                     options: RankOptions) -> MatchResult:
    similarity = calculate_similarity(uploaded, product.features, options.category)
    final = float(similarity.overall_score)

    if options.price_weight > 0:
        aux = price_score(product, options.reference_price)
        if aux is not None:
            final = blend(final, aux, options.price_weight)

    if options.popularity_weight > 0:
        final = blend(final, popularity_score(product), options.popularity_weight)

    return MatchResult(
        product=product,
        similarity_score=int(round(final)),
        raw_score=similarity.overall_score,
        match_factors=similarity.breakdown,
        weights=similarity.weights,
    )


def score_candidates(uploaded: FeatureVector,
                     candidates: Sequence[Product],
                     options: RankOptions) -> List[MatchResult]:
    """Score every candidate, in input order."""
    def score(product):
        return _score_candidate(uploaded, product, options)

    if options.workers > 1 and len(candidates) >= PARALLEL_THRESHOLD:
        with ThreadPoolExecutor(max_workers=options.workers) as executor:
            return list(executor.map(score, candidates))
    return [score(product) for product in candidates]


def rank_candidates(uploaded: Any,
                    candidates: Iterable[Any],
                    options: Any = None) -> List[MatchResult]:
    """
    Rank candidate products by visual similarity to uploaded features.

    Args:
        uploaded: FeatureVector (or mapping) of the uploaded image.
        candidates: Products (or product mappings) with stored features.
        options: RankOptions or a mapping of its fields.

    Returns:
        At most options.limit MatchResults, sorted per options.sort_by,
        with confidence, explanation and 1-based rank filled in.

    Raises:
        InvalidRankOptions: If the options are structurally invalid.
    """
    options = validate_options(RankOptions.from_dict(options))
    uploaded = FeatureVector.from_dict(uploaded)
    products = [Product.from_dict(c) for c in candidates]

    scored = score_candidates(uploaded, products, options)
    kept = [r for r in scored if r.similarity_score >= options.min_score]
    kept = filter_by_preferences(kept, options.filters)
    ranked = sort_results(kept, options.sort_by)[:options.limit]

    for rank, result in enumerate(ranked, start=1):
        result.rank = rank
        result.confidence = compute_confidence(result.similarity_score, result.match_factors,
                                               result.weights)
        result.explanation = explain_match(result.match_factors, result.weights)

    logger.info(
        f"Ranked {len(products)} candidates → {len(kept)} above threshold → "
        f"{len(ranked)} results (category={options.category}, sort={options.sort_by})"
    )
    return ranked


def find_best_matches(uploaded: Any, candidates: Iterable[Any],
                      count: int = 10, category: Optional[str] = "default") -> List[MatchResult]:
    """Top matches scoring at least 50."""
    return rank_candidates(uploaded, candidates,
                           RankOptions(limit=count, min_score=50, category=category))
