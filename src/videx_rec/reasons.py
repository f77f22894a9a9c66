import logging

from .config import REASON_GREAT_MATCH, REASON_GOOD_MATCH
from .genres import genre_name
from .models import ScoredCandidate
from .scoring import Regime, VectorRegime, content_similarity

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Popular in your region"
SIMILAR_FALLBACK_TITLE = "a title you liked"


def _first_named_genre(genre_ids: list[int]) -> str | None:
    for genre_id in genre_ids:
        name = genre_name(genre_id)
        if name:
            return name
    return None


def _vector_reason(candidate: ScoredCandidate, regime: VectorRegime) -> str | None:
    match = content_similarity(regime, candidate)
    name = _first_named_genre(candidate.genre_ids)
    if match >= REASON_GREAT_MATCH:
        return f"Great match for your taste in {name}" if name else "Great match for your taste"
    if match >= REASON_GOOD_MATCH:
        return f"Matches your {name} preferences" if name else "Matches your preferences"
    return None


def _affinity_reason(candidate: ScoredCandidate, affinities: dict[int, float]) -> str | None:
    genre_ids = candidate.matched_genres or candidate.genre_ids
    best_genre = None
    best_score = 0.0
    for genre_id in genre_ids:
        score = affinities.get(genre_id, 0)
        if score > best_score:
            best_genre, best_score = genre_id, score
    name = genre_name(best_genre)
    return f"Because you like {name}" if name else None


def generate_reason(candidate: ScoredCandidate, regime: Regime) -> str:
    """
    Short justification for one recommendation.

    Similar-lane items name their seed; vector matches at 80+ or 60+ name the
    first known genre; otherwise the strongest liked genre; otherwise a
    generic line.
    """
    if candidate.source == 'similar':
        return f"Similar to {candidate.similar_to_title or SIMILAR_FALLBACK_TITLE}"

    if isinstance(regime, VectorRegime):
        reason = _vector_reason(candidate, regime)
        if reason:
            return reason

    return _affinity_reason(candidate, regime.affinities) or FALLBACK_REASON


def hidden_gem_reason(candidate: ScoredCandidate) -> str:
    name = genre_name(candidate.primary_genre)
    return f"Hidden gem in {name}" if name else "Hidden gem"
