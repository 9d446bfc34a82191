"""
Color signatures and FAISS-based candidate shortlisting.

A color signature is a coarse RGB histogram (SIGNATURE_LEVELS levels per
channel) of a FeatureVector's dominant-color percentage mass, L2
normalized so FAISS L2 distance tracks color-mass overlap. It is cheap
enough to compute for every catalog product at ingestion time and lets
a large catalog be narrowed to the few hundred closest candidates before
the full weighted similarity runs.

Level count is configurable via the SIGNATURE_LEVELS environment
variable; an index built with one setting must be queried with the same.
"""

import os
import logging
from typing import Any, Tuple

import faiss
import numpy as np

from .models import FeatureVector

logger = logging.getLogger(__name__)

SIGNATURE_LEVELS = int(os.environ.get("SIGNATURE_LEVELS", "4"))
SIGNATURE_DIM = SIGNATURE_LEVELS ** 3


def color_signature(features: Any) -> np.ndarray:
    """
    Build an L2-normalized color-mass histogram from stored features.

    Args:
        features: FeatureVector (or mapping) with dominant colors.

    Returns:
        Float32 vector with SIGNATURE_DIM dimensions. Features without
        dominant colors get a uniform vector.
    """
    features = FeatureVector.from_dict(features)
    colors = features.colors.dominant_colors if features.colors else None
    hist = np.zeros(SIGNATURE_DIM, dtype=np.float32)

    if colors:
        step = 256 // SIGNATURE_LEVELS
        even = 100.0 / len(colors)
        for color in colors:
            r, g, b = (min(c // step, SIGNATURE_LEVELS - 1) for c in color.rgb)
            mass = color.percentage if color.percentage is not None else even
            hist[(r * SIGNATURE_LEVELS + g) * SIGNATURE_LEVELS + b] += mass

    norm = np.linalg.norm(hist)
    if norm == 0:
        return np.full(SIGNATURE_DIM, 1 / np.sqrt(SIGNATURE_DIM), dtype=np.float32)
    return (hist / norm).astype(np.float32)


def search_faiss_index(index: faiss.Index,
                       query_signature: np.ndarray,
                       k: int = 500,
                       nprobe: int = 20) -> Tuple[np.ndarray, np.ndarray]:
    """
    Search a FAISS index for the nearest color signatures.

    Args:
        index: Loaded FAISS index.
        query_signature: SIGNATURE_DIM float32 query vector.
        k: Number of neighbors to retrieve.
        nprobe: Number of cluster probes (for IVF indexes).

    Returns:
        Tuple of (distances, indices) arrays, each shape (1, k).

    Raises:
        ValueError: If query dimensions don't match index.
    """
    query = query_signature.astype(np.float32)

    norm = np.linalg.norm(query)
    if norm > 0:
        query = query / norm

    query = query.reshape(1, -1)

    if query.shape[1] != index.d:
        raise ValueError(
            f"Query dimension {query.shape[1]} doesn't match "
            f"index dimension {index.d}"
        )

    if hasattr(index, 'nprobe'):
        index.nprobe = nprobe

    k = min(k, index.ntotal)
    if k <= 0:
        return np.empty((1, 0), dtype=np.float32), np.empty((1, 0), dtype=np.int64)
    return index.search(query, k)
