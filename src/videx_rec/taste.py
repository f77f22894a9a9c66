"""
Taste vector schema and similarity.

A taste vector is a plain mapping of dimension name -> float:
- 19 genre dimensions (0.0 to 1.0): how much the user likes each genre
- 5 meta dimensions (-1.0 to +1.0): cross-genre preference axes

User vectors are continuous; content vectors use binary genre values.
Cosine similarity handles the asymmetry.
"""
import logging
import math
from typing import Any, Mapping

import numpy as np
from scipy.spatial import distance

from .config import CONFIDENCE_FLOOR
from .models import TasteProfile

logger = logging.getLogger(__name__)

TasteVector = dict[str, float]
ConfidenceVector = dict[str, float]

GENRE_DIMENSIONS = (
    'action', 'adventure', 'animation', 'comedy', 'crime',
    'documentary', 'drama', 'family', 'fantasy', 'history', 'horror',
    'musical', 'mystery', 'reality', 'romance', 'scifi', 'thriller',
    'war', 'western',
)

META_DIMENSIONS = (
    'tone',        # -1 dark/gritty       -> +1 light/uplifting
    'pacing',      # -1 slow burn         -> +1 high-energy
    'era',         # -1 classic/period    -> +1 contemporary
    'popularity',  # -1 indie/niche       -> +1 mainstream
    'intensity',   # -1 cerebral          -> +1 visceral
)

ALL_DIMENSIONS = GENRE_DIMENSIONS + META_DIMENSIONS

# Static per-dimension weights for the weighted cosine
DIMENSION_WEIGHTS: dict[str, float] = {
    **{dim: 1.0 for dim in GENRE_DIMENSIONS},
    'tone': 0.8,
    'pacing': 0.6,
    'era': 0.4,
    'popularity': 0.5,
    'intensity': 0.7,
}

# Frozen positional orders of older stored arrays
_LEGACY_25D = (
    'action', 'adventure', 'animation', 'anime', 'comedy', 'crime',
    'documentary', 'drama', 'family', 'fantasy', 'history', 'horror',
    'musical', 'mystery', 'reality', 'romance', 'scifi', 'thriller',
    'war', 'western', 'tone', 'pacing', 'era', 'popularity', 'intensity',
)
_LEGACY_22D = (
    'action', 'adventure', 'animation', 'comedy', 'crime',
    'documentary', 'drama', 'fantasy', 'history', 'horror',
    'musical', 'mystery', 'reality', 'romance', 'scifi', 'thriller',
    'war', 'tone', 'pacing', 'era', 'popularity', 'intensity',
)


def create_empty_vector() -> TasteVector:
    return {dim: 0.0 for dim in ALL_DIMENSIONS}


def clamp_vector(vector: Mapping[str, float]) -> TasteVector:
    """Clamp to valid ranges: genres [0, 1], meta [-1, 1]."""
    out = create_empty_vector()
    for dim in GENRE_DIMENSIONS:
        out[dim] = max(0.0, min(1.0, float(vector.get(dim, 0.0))))
    for dim in META_DIMENSIONS:
        out[dim] = max(-1.0, min(1.0, float(vector.get(dim, 0.0))))
    return out


def is_non_zero(vector: Mapping[str, float]) -> bool:
    return any(vector.get(dim, 0.0) != 0 for dim in ALL_DIMENSIONS)


def _as_array(vector: Mapping[str, float]) -> np.ndarray:
    return np.array([vector.get(dim, 0.0) for dim in ALL_DIMENSIONS], dtype=np.float64)


def _dimension_scale(
    weights: Mapping[str, float] | None,
    confidence: Mapping[str, float] | None,
) -> np.ndarray:
    """
    Per-dimension multiplier applied to both vectors.

    Confidence is mapped onto [CONFIDENCE_FLOOR, 1] so an untested dimension
    is damped rather than erased.
    """
    weights = weights if weights is not None else DIMENSION_WEIGHTS
    scale = np.array([weights.get(dim, 1.0) for dim in ALL_DIMENSIONS], dtype=np.float64)
    if confidence:
        conf = np.clip(_as_array(confidence), 0.0, 1.0)
        scale = scale * (CONFIDENCE_FLOOR + (1.0 - CONFIDENCE_FLOOR) * conf)
    return scale


def similarity(
    a: Mapping[str, float],
    b: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
    confidence: Mapping[str, float] | None = None,
) -> int:
    """
    Weighted cosine similarity on a 0-100 scale.

    Each dimension is scaled by its static weight and its confidence before
    the dot product and both magnitudes are taken. Returns 0 when either
    side has zero magnitude.
    """
    scale = _dimension_scale(weights, confidence)
    wa = _as_array(a) * scale
    wb = _as_array(b) * scale

    if not np.any(wa) or not np.any(wb):
        return 0

    raw = 1.0 - distance.cosine(wa, wb)
    raw = max(-1.0, min(1.0, float(raw)))
    # Cosine is [-1, 1]; map to [0, 100] rounding half up
    return int(math.floor((raw + 1.0) / 2.0 * 100.0 + 0.5))


def top_vector_genres(
    vector: Mapping[str, float],
    min_score: float = 0.0,
    count: int | None = None,
) -> list[tuple[str, float]]:
    """Genre dimensions above `min_score`, strongest first."""
    ranked = [
        (dim, float(vector.get(dim, 0.0)))
        for dim in GENRE_DIMENSIONS
        if float(vector.get(dim, 0.0)) >= min_score
    ]
    ranked.sort(key=lambda item: -item[1])
    return ranked[:count] if count is not None else ranked


# Serialisation -----------------------------------------------------------

def vector_to_array(vector: Mapping[str, float]) -> list[float]:
    """Positional form used by remote storage (canonical 24-D order)."""
    return [float(vector.get(dim, 0.0)) for dim in ALL_DIMENSIONS]


def array_to_vector(values: list[float]) -> TasteVector:
    """
    Read a positional array, accepting legacy layouts.

    - 25 values: original layout with `anime` (dropped)
    - 22 values: interim layout without anime/family/western
    - anything else: canonical order, missing tail dimensions stay 0
    """
    vector = create_empty_vector()
    if len(values) == len(_LEGACY_25D):
        order = _LEGACY_25D
    elif len(values) == len(_LEGACY_22D):
        order = _LEGACY_22D
    else:
        order = ALL_DIMENSIONS

    for dim, value in zip(order, values):
        if dim in vector:
            vector[dim] = float(value)
    return vector


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def coerce_vector(raw: Any) -> TasteVector | None:
    """
    Turn stored vector data into a clamped TasteVector.

    Returns None for anything malformed: wrong container type, non-numeric
    values, no known dimensions, or an all-zero vector.
    """
    if isinstance(raw, (list, tuple)):
        if not raw or not all(_is_number(v) for v in raw):
            return None
        vector = array_to_vector(list(raw))
    elif isinstance(raw, Mapping):
        known = {dim: raw[dim] for dim in ALL_DIMENSIONS if dim in raw}
        if not known or not all(_is_number(v) for v in known.values()):
            return None
        vector = create_empty_vector()
        vector.update({dim: float(v) for dim, v in known.items()})
    else:
        return None

    vector = clamp_vector(vector)
    if not is_non_zero(vector):
        return None
    return vector


def coerce_confidence(raw: Any) -> ConfidenceVector | None:
    """Like `coerce_vector` but clipped to [0, 1]; None means uniform weighting."""
    if isinstance(raw, (list, tuple)):
        if not raw or not all(_is_number(v) for v in raw):
            return None
        values = array_to_vector(list(raw))
    elif isinstance(raw, Mapping):
        known = {dim: raw[dim] for dim in ALL_DIMENSIONS if dim in raw}
        if not known or not all(_is_number(v) for v in known.values()):
            return None
        values = {dim: float(known.get(dim, 0.0)) for dim in ALL_DIMENSIONS}
    else:
        return None
    return {dim: max(0.0, min(1.0, values[dim])) for dim in ALL_DIMENSIONS}


def parse_taste_profile(raw: Any) -> TasteProfile | None:
    """
    Read a stored `{vector, confidence}` payload.

    A malformed or all-zero vector yields None (no taste vector). A malformed
    confidence vector is dropped so similarity falls back to uniform weighting.
    """
    if not isinstance(raw, Mapping):
        return None

    vector = coerce_vector(raw.get('vector'))
    if vector is None:
        if raw.get('vector') is not None:
            logger.warning("Ignoring malformed or empty taste vector")
        return None

    confidence = None
    if raw.get('confidence') is not None:
        confidence = coerce_confidence(raw.get('confidence'))
        if confidence is None:
            logger.warning("Ignoring malformed confidence vector, using uniform weighting")

    return TasteProfile(vector=vector, confidence=confidence)
