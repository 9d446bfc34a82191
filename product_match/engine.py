"""
Visual product match engine.

Orchestrates the full pipeline over a catalog built by build_index():
    1. Extract the uploaded image's FeatureVector (colors, pattern, style)
    2. Restrict the catalog to the requested category
    3. Shortlist by FAISS color-signature distance when the category
       holds more than max_candidates products
    4. Score, filter, sort and explain with rank_candidates()
"""

import os
import json
import logging
from typing import Any, List, Optional

import faiss
import numpy as np

from .features import analyze_image
from .histograms import color_signature, search_faiss_index
from .index_builder import CATALOG_FILE, FAISS_FILE, IDS_FILE
from .models import FeatureVector, MatchResult, Product
from .preprocessing import ImageInput
from .ranking import RankOptions, rank_candidates, validate_options

logger = logging.getLogger(__name__)

# Upper bound on products scored per request.
MAX_CANDIDATES = int(os.environ.get("MAX_CANDIDATES", "500"))


class SearchEngine:
    """
    Image-to-product matcher over a prebuilt catalog.

    Loads the catalog (products with stored feature vectors) and the
    color signature index from disk, then accepts query images and
    returns ranked, explained matches.
    """

    def __init__(self, index_dir: str, nprobe: int = 20,
                 max_candidates: int = MAX_CANDIDATES):
        """
        Load the catalog and index from disk.

        Args:
            index_dir: Directory containing files from build_index().
            nprobe: Number of IVF clusters to probe (higher = more accurate,
                    slower). Only applies to IVFFlat indexes.
            max_candidates: Maximum products scored per request.
        """
        self.index_dir = index_dir
        self.nprobe = nprobe
        self.max_candidates = max_candidates

        with open(os.path.join(index_dir, CATALOG_FILE), 'r', encoding='utf-8') as f:
            self.products = [Product.from_dict(record) for record in json.load(f)]
        self._by_id = {p.id: p for p in self.products}
        logger.info(f"Loaded catalog: {len(self.products)} products")

        faiss_path = os.path.join(index_dir, FAISS_FILE)
        self.faiss_index = faiss.read_index(faiss_path)
        if hasattr(self.faiss_index, 'nprobe'):
            self.faiss_index.nprobe = nprobe
        self.index_ids = [str(i) for i in np.load(os.path.join(index_dir, IDS_FILE))]
        logger.info(
            f"Loaded FAISS index: {self.faiss_index.ntotal} vectors, "
            f"{self.faiss_index.d}d"
        )

    def get_product(self, product_id: str) -> Product:
        try:
            return self._by_id[str(product_id)]
        except KeyError:
            raise KeyError(f"Product not found: {product_id}") from None

    def candidates_for(self, category: Optional[str]) -> List[Product]:
        """Catalog products in a category ("default"/None means all; case-insensitive)."""
        key = (category or "default").lower()
        if key == "default":
            return list(self.products)
        return [p for p in self.products if (p.category or "").lower() == key]


    def shortlist(self, features: FeatureVector,
                  candidates: List[Product]) -> List[Product]:
        """
        Keep at most max_candidates products, closest color signatures
        first. Smaller candidate sets are returned unchanged.
        """
        if len(candidates) <= self.max_candidates:
            return candidates

        allowed = {p.id for p in candidates}
        k = self.max_candidates if len(allowed) == len(self.products) else self.faiss_index.ntotal
        _, indices = search_faiss_index(
            self.faiss_index, color_signature(features), k=k, nprobe=self.nprobe
        )

        shortlisted = []
        for idx in indices[0]:
            if idx < 0 or idx >= len(self.index_ids):
                continue
            product_id = self.index_ids[idx]
            if product_id in allowed:
                shortlisted.append(self._by_id[product_id])
                if len(shortlisted) >= self.max_candidates:
                    break

        logger.info(f"Shortlisted {len(shortlisted)} of {len(candidates)} candidates")
        return shortlisted

    def rank(self, features: Any, options: Any = None) -> List[MatchResult]:
        """Rank catalog products against already extracted features."""
        options = validate_options(RankOptions.from_dict(options))
        features = FeatureVector.from_dict(features)
        candidates = self.candidates_for(options.category)
        if not candidates:
            logger.warning(f"No catalog products in category {options.category!r}")
        return rank_candidates(features, self.shortlist(features, candidates), options)

    def search(self, image: ImageInput, options: Any = None) -> List[MatchResult]:
        """
        Find catalog products visually similar to an uploaded image.

        Args:
            image: Encoded image bytes (or a decoded RGB/RGBA array).
            options: RankOptions or mapping; options.category selects
                both the catalog subset and the weight profile.

        Returns:
            Ranked MatchResults.

        Raises:
            DecodeError: If the image cannot be decoded.
            InvalidRankOptions: If the options are invalid.
        """
        options = validate_options(RankOptions.from_dict(options))
        return self.rank(analyze_image(image), options)

    def find_similar(self, product_id: str, limit: int = 10) -> List[MatchResult]:
        """
        Products similar to a catalog product, excluding itself.

        Uses the product's stored features and its category's weights,
        keeping matches that score at least 50.
        """
        product = self.get_product(product_id)
        if product.features is None:
            logger.warning(f"Product {product_id} has no stored features")
            return []

        category = product.category or "default"
        candidates = [p for p in self.candidates_for(category) if p.id != product.id]
        options = RankOptions(limit=limit, min_score=50, category=category)
        return rank_candidates(
            product.features, self.shortlist(product.features, candidates), options
        )
