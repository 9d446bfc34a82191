"""
Feature and match data models.

A FeatureVector is computed once per uploaded image, or once per catalog
product at ingestion time and stored with the product record. Stored
vectors may be partial (older records, hand-entered metadata), so every
field beyond the identifying ones is optional and similarity scoring
treats a missing field as neutral rather than as an error.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

FACTORS = ("color", "pattern", "brightness", "contrast", "texture", "style")

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")


class RGB(NamedTuple):
    r: int
    g: int
    b: int


class HSL(NamedTuple):
    h: int
    s: int
    l: int


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """Format channels as '#RRGGBB' (uppercase)."""
    return "#" + "".join(f"{int(round(c)):02X}" for c in (r, g, b))


def hex_to_rgb(hex_value: str) -> Optional[RGB]:
    """Parse '#RRGGBB' or 'RRGGBB' (any case); None if malformed."""
    if not isinstance(hex_value, str):
        return None
    match = _HEX_RE.match(hex_value.strip())
    if not match:
        return None
    return RGB(*(int(part, 16) for part in match.groups()))


def _rgb_from(value: Any) -> Optional[RGB]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        channels = [_opt_int(value.get(key)) for key in ("r", "g", "b")]
    else:
        try:
            channels = [_opt_int(c) for c in value]
        except TypeError:
            return None
    if len(channels) != 3 or any(c is None for c in channels):
        return None
    return RGB(*channels)


def _hsl_from(value: Any) -> Optional[HSL]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        h, s, l = (_opt_int(value.get(key)) for key in ("h", "s", "l"))
        if h is None:
            return None
        return HSL(h, s or 0, l or 0)
    try:
        channels = [_opt_int(c) for c in value]
    except TypeError:
        return None
    if len(channels) != 3 or any(c is None for c in channels):
        return None
    return HSL(*channels)


def _opt_float(value: Any) -> Optional[float]:
    """Finite float or None; NaN and infinities count as missing."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _opt_int(value: Any) -> Optional[int]:
    number = _opt_float(value)
    return int(round(number)) if number is not None else None


_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0", ""}


def _opt_bool(value: Any) -> Optional[bool]:
    """Parse stored booleans, including 'true'/'false' strings; None if unclear."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        return None
    number = _opt_float(value)
    return bool(number) if number is not None else None


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _opt_list(value: Any) -> Optional[list]:
    return list(value) if isinstance(value, (list, tuple)) else None


@dataclass
class DominantColor:
    hex: str
    rgb: RGB
    percentage: Optional[int] = None
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hex": self.hex,
            "rgb": self.rgb._asdict(),
            "percentage": self.percentage,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["DominantColor"]:
        """Build from a stored record; hex or rgb may be given alone."""
        if isinstance(data, DominantColor):
            return data
        if isinstance(data, str):
            data = {"hex": data}
        if not isinstance(data, Mapping):
            return None

        rgb = _rgb_from(data.get("rgb")) or hex_to_rgb(data.get("hex"))
        if rgb is None:
            return None
        return cls(
            hex=rgb_to_hex(*rgb),
            rgb=rgb,
            percentage=_opt_int(data.get("percentage")),
            count=_opt_int(data.get("count")) or 0,
        )


@dataclass
class NamedColor(DominantColor):
    name: str = ""
    hsl: Optional[HSL] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["name"] = self.name
        data["hsl"] = self.hsl._asdict() if self.hsl else None
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional["NamedColor"]:
        if isinstance(data, NamedColor):
            return data
        if isinstance(data, DominantColor):
            data = data.to_dict()
        if isinstance(data, str):
            data = {"hex": data}
        base = DominantColor.from_dict(data)
        if base is None:
            return None
        return cls(
            hex=base.hex,
            rgb=base.rgb,
            percentage=base.percentage,
            count=base.count,
            name=_opt_str(data.get("name")) or "",
            hsl=_hsl_from(data.get("hsl")),
        )


@dataclass
class ColorFeatures:
    dominant_colors: Optional[List[DominantColor]] = None
    color_palette: Optional[List[str]] = None
    primary_color: Optional[NamedColor] = None
    secondary_color: Optional[NamedColor] = None
    brightness: Optional[int] = None
    contrast: Optional[int] = None
    color_harmony: Optional[str] = None
    is_grayscale: Optional[bool] = None
    temperature: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominant_colors": (
                [c.to_dict() for c in self.dominant_colors]
                if self.dominant_colors is not None else None
            ),
            "color_palette": list(self.color_palette) if self.color_palette is not None else None,
            "primary_color": self.primary_color.to_dict() if self.primary_color else None,
            "secondary_color": self.secondary_color.to_dict() if self.secondary_color else None,
            "brightness": self.brightness,
            "contrast": self.contrast,
            "color_harmony": self.color_harmony,
            "is_grayscale": self.is_grayscale,
            "temperature": self.temperature,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ColorFeatures"]:
        if isinstance(data, ColorFeatures):
            return data
        if not isinstance(data, Mapping):
            return None

        dominant = _opt_list(data.get("dominant_colors"))
        if dominant is not None:
            dominant = [c for c in map(DominantColor.from_dict, dominant) if c is not None]
        palette = _opt_list(data.get("color_palette"))
        if palette is not None:
            palette = [name for name in palette if isinstance(name, str)]

        return cls(
            dominant_colors=dominant,
            color_palette=palette,
            primary_color=NamedColor.from_dict(data.get("primary_color")),
            secondary_color=NamedColor.from_dict(data.get("secondary_color")),
            brightness=_opt_int(data.get("brightness")),
            contrast=_opt_int(data.get("contrast")),
            color_harmony=_opt_str(data.get("color_harmony")),
            is_grayscale=_opt_bool(data.get("is_grayscale")),
            temperature=_opt_str(data.get("temperature")),
        )


@dataclass
class Complexity:
    score: Optional[int] = None
    level: Optional[str] = None


@dataclass
class Symmetry:
    horizontal: Optional[int] = None
    vertical: Optional[int] = None
    overall: Optional[int] = None


@dataclass
class PatternFeatures:
    pattern: Optional[str] = None
    texture: Optional[str] = None
    complexity: Optional[Complexity] = None
    symmetry: Optional[Symmetry] = None
    shape_distribution: Optional[str] = None
    orientation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "texture": self.texture,
            "complexity": (
                {"score": self.complexity.score, "level": self.complexity.level}
                if self.complexity else None
            ),
            "symmetry": (
                {
                    "horizontal": self.symmetry.horizontal,
                    "vertical": self.symmetry.vertical,
                    "overall": self.symmetry.overall,
                }
                if self.symmetry else None
            ),
            "shape_distribution": self.shape_distribution,
            "orientation": self.orientation,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["PatternFeatures"]:
        if isinstance(data, PatternFeatures):
            return data
        if not isinstance(data, Mapping):
            return None

        pattern = _opt_str(data.get("pattern"))
        patterns = _opt_list(data.get("patterns"))
        if pattern is None and patterns:
            pattern = _opt_str(patterns[0])

        complexity = data.get("complexity")
        if isinstance(complexity, Mapping):
            complexity = Complexity(
                _opt_int(complexity.get("score")), _opt_str(complexity.get("level"))
            )
        elif not isinstance(complexity, Complexity):
            complexity = None

        symmetry = data.get("symmetry")
        if isinstance(symmetry, Mapping):
            symmetry = Symmetry(
                _opt_int(symmetry.get("horizontal")),
                _opt_int(symmetry.get("vertical")),
                _opt_int(symmetry.get("overall")),
            )
        elif not isinstance(symmetry, Symmetry):
            symmetry = None

        return cls(
            pattern=pattern,
            texture=_opt_str(data.get("texture")),
            complexity=complexity,
            symmetry=symmetry,
            shape_distribution=_opt_str(data.get("shape_distribution")),
            orientation=_opt_str(data.get("orientation")),
        )


@dataclass
class FeatureVector:
    colors: Optional[ColorFeatures] = None
    pattern: Optional[PatternFeatures] = None
    style: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "colors": self.colors.to_dict() if self.colors else None,
            "pattern": self.pattern.to_dict() if self.pattern else None,
            "style": self.style,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FeatureVector":
        """Coerce a stored mapping (or an existing vector) to a FeatureVector."""
        if isinstance(data, FeatureVector):
            return data
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            colors=ColorFeatures.from_dict(data.get("colors")),
            pattern=PatternFeatures.from_dict(data.get("pattern")),
            style=_opt_str(data.get("style")),
        )


@dataclass
class Product:
    """A catalog candidate as supplied by the caller."""

    id: str
    name: str = ""
    price: Optional[float] = None
    brand: Optional[str] = None
    in_stock: Optional[bool] = None
    rating: Optional[float] = None
    views: int = 0
    purchases: int = 0
    category: Optional[str] = None
    features: Optional[FeatureVector] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "brand": self.brand,
            "in_stock": self.in_stock,
            "rating": self.rating,
            "views": self.views,
            "purchases": self.purchases,
            "category": self.category,
            "features": self.features.to_dict() if self.features else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Product":
        if isinstance(data, Product):
            return data
        if not isinstance(data, Mapping):
            raise TypeError(f"Product record must be a mapping, got {type(data).__name__}")

        product_id = data.get("id", data.get("_id"))
        if product_id is None:
            raise ValueError("Product record has no 'id'")

        features = data.get("features")
        return cls(
            id=str(product_id),
            name=_opt_str(data.get("name")) or "",
            price=_opt_float(data.get("price")),
            brand=_opt_str(data.get("brand")),
            in_stock=_opt_bool(data.get("in_stock")),
            rating=_opt_float(data.get("rating")),
            views=_opt_int(data.get("views")) or 0,
            purchases=_opt_int(data.get("purchases")) or 0,
            category=_opt_str(data.get("category")),
            features=FeatureVector.from_dict(features) if features is not None else None,
        )


class SimilarityResult(NamedTuple):
    overall_score: int
    breakdown: Dict[str, int]
    weights: Dict[str, float]


@dataclass
class Confidence:
    level: str
    score: int


@dataclass
class MatchResult:
    product: Product
    similarity_score: int
    raw_score: int
    match_factors: Dict[str, int]
    weights: Dict[str, float]
    confidence: Optional[Confidence] = None
    explanation: List[str] = field(default_factory=list)
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "similarity_score": self.similarity_score,
            "raw_score": self.raw_score,
            "match_factors": dict(self.match_factors),
            "weights": dict(self.weights),
            "confidence": (
                {"level": self.confidence.level, "score": self.confidence.score}
                if self.confidence else None
            ),
            "explanation": list(self.explanation),
            "rank": self.rank,
        }
