"""Tests for color signatures and FAISS search."""

import numpy as np
import faiss
import pytest

from product_match.histograms import SIGNATURE_DIM, color_signature, search_faiss_index


def features(*colors):
    return {"colors": {"dominant_colors": [
        {"hex": hex_value, "percentage": pct} for hex_value, pct in colors
    ]}}


class TestColorSignature:
    """Tests for signature construction."""

    def test_output_shape(self, uploaded_features):
        assert color_signature(uploaded_features).shape == (SIGNATURE_DIM,)

    def test_output_dtype(self, uploaded_features):
        assert color_signature(uploaded_features).dtype == np.float32

    def test_l2_normalized(self):
        sig = color_signature(features(("#FF0000", 60), ("#0000FF", 40)))
        assert np.linalg.norm(sig) == pytest.approx(1.0, abs=1e-5)

    def test_mass_follows_percentage(self):
        sig = color_signature(features(("#FF0000", 60), ("#0000FF", 20)))
        nonzero = np.sort(sig[sig > 0])
        assert len(nonzero) == 2
        assert nonzero[1] / nonzero[0] == pytest.approx(3.0, rel=1e-5)

    def test_nearby_colors_share_a_bin(self):
        a = color_signature(features(("#FF0000", 100)))
        b = color_signature(features(("#F01010", 100)))
        np.testing.assert_allclose(a, b)

    def test_different_colors_differ(self):
        red = color_signature(features(("#FF0000", 100)))
        blue = color_signature(features(("#0000FF", 100)))
        assert np.linalg.norm(red - blue) > 1.0

    def test_missing_colors_give_uniform_vector(self):
        for empty in (None, {}, {"colors": {"dominant_colors": []}}):
            sig = color_signature(empty)
            assert sig.dtype == np.float32
            assert np.allclose(sig, sig[0])
            assert np.linalg.norm(sig) == pytest.approx(1.0, abs=1e-5)


class TestSearchFaissIndex:
    """Tests for FAISS index search."""

    @pytest.fixture
    def index_and_vectors(self):
        palette = ["#FF0000", "#00FF00", "#0000FF", "#FFFFFF", "#000000"]
        vectors = np.vstack([color_signature(features((h, 100))) for h in palette])
        index = faiss.IndexFlatL2(SIGNATURE_DIM)
        index.add(vectors)
        return index, vectors

    def test_self_is_nearest(self, index_and_vectors):
        index, vectors = index_and_vectors
        for i, vector in enumerate(vectors):
            distances, indices = search_faiss_index(index, vector, k=3)
            assert indices[0][0] == i
            assert distances[0][0] == pytest.approx(0.0, abs=1e-5)

    def test_k_capped_at_index_size(self, index_and_vectors):
        index, vectors = index_and_vectors
        _, indices = search_faiss_index(index, vectors[0], k=100)
        assert indices.shape == (1, 5)

    def test_empty_index(self):
        index = faiss.IndexFlatL2(SIGNATURE_DIM)
        distances, indices = search_faiss_index(index, np.ones(SIGNATURE_DIM, dtype=np.float32))
        assert indices.shape == (1, 0)
        assert distances.shape == (1, 0)

    def test_dimension_mismatch_raises(self, index_and_vectors):
        index, _ = index_and_vectors
        with pytest.raises(ValueError, match="doesn't match index dimension"):
            search_faiss_index(index, np.ones(10, dtype=np.float32))
