"""Tests for feature extraction, catalog building and the search engine."""

import json
import os

import cv2
import numpy as np
import pytest

from product_match import analyze_image
from product_match.engine import SearchEngine
from product_match.index_builder import CATALOG_FILE, FAISS_FILE, IDS_FILE, build_index
from product_match.preprocessing import DecodeError
from product_match.ranking import InvalidRankOptions


def write_image(path, image):
    cv2.imwrite(str(path), cv2.cvtColor(image, cv2.COLOR_RGB2BGR))


@pytest.fixture
def catalog_dir(tmp_path, red_square_image, blue_circle_image, solid_blue_image,
                noise_image, textured_image):
    images = tmp_path / "images"
    images.mkdir()
    write_image(images / "red_square.png", red_square_image)
    write_image(images / "blue_circle.png", blue_circle_image)
    write_image(images / "solid_blue.png", solid_blue_image)
    write_image(images / "noise.png", noise_image)
    write_image(images / "checkerboard.png", textured_image)
    return images


@pytest.fixture
def index_dir(tmp_path, catalog_dir):
    out = tmp_path / "index"
    result = build_index(str(catalog_dir), str(out))
    assert result["success"]
    return out


class TestAnalyzeImage:
    """Tests for the image to feature vector pipeline."""

    def test_fields_in_range(self, noise_image, encode_png):
        features = analyze_image(encode_png(noise_image))
        colors, pattern = features.colors, features.pattern
        assert 0 <= colors.brightness <= 100
        assert 0 <= colors.contrast <= 100
        assert colors.temperature in {"warm", "cool", "neutral"}
        assert colors.color_harmony in {
            "monochromatic", "analogous", "triadic", "complementary", "varied",
        }
        assert 0 <= pattern.complexity.score <= 100
        assert features.style in {
            "minimalist", "modern", "contemporary", "industrial", "bohemian",
            "classic", "artistic", "rustic",
        }

    def test_idempotent(self, red_square_image, encode_png):
        data = encode_png(red_square_image)
        assert analyze_image(data).to_dict() == analyze_image(data).to_dict()

    def test_serial_matches_parallel(self, textured_image, encode_png):
        data = encode_png(textured_image)
        assert analyze_image(data, workers=1) == analyze_image(data)

    def test_accepts_arrays(self, red_square_image, encode_png):
        from_bytes = analyze_image(encode_png(red_square_image))
        assert analyze_image(red_square_image) == from_bytes

    def test_round_trips_through_dict(self, red_square_image):
        from product_match import FeatureVector
        features = analyze_image(red_square_image)
        assert FeatureVector.from_dict(features.to_dict()) == features

    def test_decode_error(self):
        with pytest.raises(DecodeError):
            analyze_image(b"not an image")


class TestBuildIndex:
    """Tests for catalog ingestion."""

    def test_writes_catalog(self, tmp_path, catalog_dir):
        out = tmp_path / "out"
        result = build_index(str(catalog_dir), str(out))
        assert result["success"]
        assert result["processed"] == 5
        assert result["vectors"] == 5
        assert result["errors"] == 0
        for name in (CATALOG_FILE, FAISS_FILE, IDS_FILE):
            assert (out / name).exists()

        records = json.loads((out / CATALOG_FILE).read_text())
        assert sorted(r["id"] for r in records) == [
            "blue_circle", "checkerboard", "noise", "red_square", "solid_blue",
        ]
        assert all(r["features"]["colors"]["dominant_colors"] for r in records)

    def test_skips_undecodable_files(self, tmp_path, catalog_dir):
        (catalog_dir / "broken.png").write_bytes(b"garbage")
        result = build_index(str(catalog_dir), str(tmp_path / "out"))
        assert result["processed"] == 5
        assert result["errors"] == 1

    def test_metadata(self, tmp_path, catalog_dir):
        metadata = [
            {"filename": "red_square.png", "id": "sku-1", "price": 40, "category": "shoes"},
            {"filename": "blue_circle.png", "id": "sku-2", "price": 90},
            {"filename": "missing.png", "id": "sku-3"},
        ]
        meta_path = tmp_path / "meta.json"
        meta_path.write_text(json.dumps(metadata))

        out = tmp_path / "out"
        result = build_index(str(catalog_dir), str(out), str(meta_path), category="clothing")
        assert result["processed"] == 2
        assert result["errors"] == 1

        records = {r["id"]: r for r in json.loads((out / CATALOG_FILE).read_text())}
        assert records["sku-1"]["category"] == "shoes"
        assert records["sku-1"]["price"] == 40
        assert records["sku-2"]["category"] == "clothing"

    def test_empty_directory(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = build_index(str(empty), str(tmp_path / "out"))
        assert not result["success"]


class TestSearchEngine:
    """Tests for search over a built catalog."""

    def test_search_finds_identical_product(self, index_dir, catalog_dir):
        engine = SearchEngine(str(index_dir))
        data = (catalog_dir / "red_square.png").read_bytes()
        results = engine.search(data, {"min_score": 0})
        assert results[0].product.id == "red_square"
        assert results[0].similarity_score == 100
        assert [r.rank for r in results] == list(range(1, len(results) + 1))

    def test_search_rejects_bad_options_before_decoding(self, index_dir):
        engine = SearchEngine(str(index_dir))
        with pytest.raises(InvalidRankOptions):
            engine.search(b"not an image", {"sort_by": "newest"})

    def test_search_decode_error(self, index_dir):
        engine = SearchEngine(str(index_dir))
        with pytest.raises(DecodeError):
            engine.search(b"not an image")

    def test_shortlist_limits_candidates(self, index_dir, catalog_dir):
        engine = SearchEngine(str(index_dir), max_candidates=1)
        features = analyze_image((catalog_dir / "red_square.png").read_bytes())
        shortlisted = engine.shortlist(features, engine.candidates_for(None))
        assert [p.id for p in shortlisted] == ["red_square"]

        results = engine.rank(features, {"min_score": 0})
        assert [r.product.id for r in results] == ["red_square"]

    def test_category_restricts_catalog(self, tmp_path, catalog_dir):
        metadata = [
            {"filename": "red_square.png", "id": "a", "category": "shoes"},
            {"filename": "blue_circle.png", "id": "b", "category": "furniture"},
            {"filename": "noise.png", "id": "c", "category": "shoes"},
        ]
        meta_path = tmp_path / "meta.json"
        meta_path.write_text(json.dumps(metadata))
        out = tmp_path / "out"
        build_index(str(catalog_dir), str(out), str(meta_path))

        engine = SearchEngine(str(out))
        data = (catalog_dir / "blue_circle.png").read_bytes()
        results = engine.search(data, {"category": "shoes", "min_score": 0})
        assert sorted(r.product.id for r in results) == ["a", "c"]
        assert results[0].weights["color"] == 0.45
        assert engine.search(data, {"category": "electronics"}) == []

        mixed_case = engine.search(data, {"category": "Shoes", "min_score": 0})
        assert sorted(r.product.id for r in mixed_case) == ["a", "c"]
        assert mixed_case[0].weights["color"] == 0.45
        assert [p.id for p in engine.candidates_for("SHOES")] == ["a", "c"]

    def test_find_similar_excludes_self(self, index_dir):
        engine = SearchEngine(str(index_dir))
        results = engine.find_similar("solid_blue", limit=3)
        assert "solid_blue" not in [r.product.id for r in results]
        assert len(results) <= 3
        assert all(r.similarity_score >= 50 for r in results)

    def test_unknown_product(self, index_dir):
        engine = SearchEngine(str(index_dir))
        with pytest.raises(KeyError, match="Product not found"):
            engine.find_similar("nope")

    def test_ids_align_with_index(self, index_dir):
        engine = SearchEngine(str(index_dir))
        assert engine.faiss_index.ntotal == len(engine.products)
        assert engine.index_ids == [p.id for p in engine.products]
        assert os.path.exists(os.path.join(str(index_dir), FAISS_FILE))
