"""Tests for coercion of stored feature and product records."""

import pytest

from product_match.models import ColorFeatures, NamedColor, PatternFeatures, Product


class TestProductFromDict:
    """Tests for product record coercion."""

    @pytest.mark.parametrize("price", ["nan", float("nan"), float("inf"), "-inf", "cheap"])
    def test_non_finite_price_is_missing(self, price):
        assert Product.from_dict({"id": "p", "price": price}).price is None

    def test_non_finite_counters_default_to_zero(self):
        product = Product.from_dict({"id": "p", "views": float("inf"), "purchases": "nan"})
        assert product.views == 0
        assert product.purchases == 0

    @pytest.mark.parametrize("raw, expected", [
        (True, True),
        (False, False),
        ("false", False),
        ("False", False),
        ("no", False),
        ("0", False),
        ("true", True),
        ("yes", True),
        (1, True),
        (0, False),
        ("maybe", None),
        (None, None),
    ])
    def test_in_stock_parsing(self, raw, expected):
        assert Product.from_dict({"id": "p", "in_stock": raw}).in_stock is expected

    def test_non_string_labels_are_missing(self):
        product = Product.from_dict({"id": 7, "brand": ["Acme"], "category": {"x": 1}})
        assert product.id == "7"
        assert product.brand is None
        assert product.category is None

    def test_missing_id(self):
        with pytest.raises(ValueError):
            Product.from_dict({"name": "nameless"})


class TestFeatureCoercion:
    """Tests for partial and malformed stored features."""

    def test_bad_hsl_is_dropped(self):
        color = NamedColor.from_dict({"hex": "#667EEA", "hsl": {"h": "n/a", "s": 10}})
        assert color.hsl is None
        assert color.rgb == (102, 126, 234)

    def test_bad_rgb_falls_back_to_hex(self):
        color = NamedColor.from_dict({"hex": "#667EEA", "rgb": {"r": "x", "g": 1, "b": 2}})
        assert color.rgb == (102, 126, 234)

    def test_hsl_sequence(self):
        assert NamedColor.from_dict({"hex": "#FF0000", "hsl": [0, 100, 50]}).hsl == (0, 100, 50)

    def test_malformed_color_fields(self):
        colors = ColorFeatures.from_dict({
            "brightness": float("inf"),
            "contrast": "n/a",
            "dominant_colors": [{"hex": "#FF0000", "percentage": "nan"}, {"hex": "bad"}],
            "color_palette": "red",
            "is_grayscale": "false",
            "temperature": 3,
        })
        assert colors.brightness is None
        assert colors.contrast is None
        assert len(colors.dominant_colors) == 1
        assert colors.dominant_colors[0].percentage is None
        assert colors.color_palette is None
        assert colors.is_grayscale is False
        assert colors.temperature is None

    def test_pattern_list_fallback(self):
        pattern = PatternFeatures.from_dict({"patterns": ["striped", "plain"]})
        assert pattern.pattern == "striped"

    def test_malformed_pattern_fields(self):
        pattern = PatternFeatures.from_dict({
            "pattern": 5,
            "patterns": "striped",
            "texture": ["smooth"],
            "complexity": {"score": float("inf"), "level": None},
            "symmetry": {"overall": "high"},
        })
        assert pattern.pattern is None
        assert pattern.texture is None
        assert pattern.complexity.score is None
        assert pattern.symmetry.overall is None
