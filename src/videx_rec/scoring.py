"""
Candidate scoring.

Exactly one regime is active per call. `select_regime` makes the choice once
and everything downstream dispatches on the returned value:

- VectorRegime: a usable taste vector exists
    similarity * 0.60 + (similar lane) 50 * 0.25 + trending * 0.15
- AffinityRegime: the unconditional fallback
    genre lane:   normalized affinity * 0.70
    similar lane: 50 * 0.30 + normalized affinity * 0.70 * 0.5
    plus a popularity discovery boost of up to 10

Both regimes add the same rating bonus. Scores are rounded to 2 places.
"""
import logging
from dataclasses import dataclass

from .config import (
    VECTOR_WEIGHTS,
    AFFINITY_WEIGHTS,
    SIMILAR_CONTENT_CREDIT,
    SIMILAR_AFFINITY_DAMPING,
    AFFINITY_NORMALIZER,
    POPULARITY_NORMALIZER,
    DISCOVERY_BOOST,
    RATING_BONUS_THRESHOLD,
    RATING_BONUS_MULTIPLIER,
    DEFAULT_VOTE_COUNT,
)
from .content_vector import content_to_vector
from .models import ScoredCandidate, TasteProfile
from .taste import DIMENSION_WEIGHTS, TasteVector, ConfidenceVector, similarity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorRegime:
    vector: TasteVector
    confidence: ConfidenceVector | None
    affinities: dict[int, float]


@dataclass(frozen=True)
class AffinityRegime:
    affinities: dict[int, float]


Regime = VectorRegime | AffinityRegime


def select_regime(profile: TasteProfile | None, affinities: dict[int, float]) -> Regime:
    """Vector regime iff the profile carries a usable vector; confidence alone never counts."""
    if profile is not None and profile.vector:
        return VectorRegime(vector=profile.vector, confidence=profile.confidence, affinities=affinities)
    return AffinityRegime(affinities=affinities)


def candidate_vector(candidate: ScoredCandidate) -> TasteVector:
    vote_count = candidate.vote_count if candidate.vote_count is not None else DEFAULT_VOTE_COUNT
    return content_to_vector(
        candidate.genre_ids,
        popularity=candidate.popularity,
        vote_count=vote_count,
        release_year=candidate.release_year,
        original_language=candidate.original_language,
    )


def content_similarity(regime: VectorRegime, candidate: ScoredCandidate) -> int:
    """Weighted similarity (0-100) between the user's vector and the candidate."""
    return similarity(regime.vector, candidate_vector(candidate), DIMENSION_WEIGHTS, regime.confidence)


def normalized_affinity(candidate: ScoredCandidate, affinities: dict[int, float]) -> float:
    genre_score = sum(affinities.get(genre_id, 0) for genre_id in candidate.genre_ids)
    return min(genre_score / AFFINITY_NORMALIZER, 1.0) * 100


def _popularity_ratio(candidate: ScoredCandidate) -> float:
    return min((candidate.popularity or 0) / POPULARITY_NORMALIZER, 1.0)


def rating_bonus(vote_average: float) -> float:
    if vote_average >= RATING_BONUS_THRESHOLD:
        return (vote_average - RATING_BONUS_THRESHOLD) * RATING_BONUS_MULTIPLIER
    return 0.0


def _vector_score(regime: VectorRegime, candidate: ScoredCandidate) -> float:
    score = content_similarity(regime, candidate) * VECTOR_WEIGHTS['taste_vector']
    if candidate.source == 'similar':
        score += SIMILAR_CONTENT_CREDIT * VECTOR_WEIGHTS['similar_content']
    score += _popularity_ratio(candidate) * 100 * VECTOR_WEIGHTS['trending']
    return score


def _affinity_score(regime: AffinityRegime, candidate: ScoredCandidate) -> float:
    affinity = normalized_affinity(candidate, regime.affinities)
    score = 0.0
    if candidate.source == 'similar':
        score += SIMILAR_CONTENT_CREDIT * AFFINITY_WEIGHTS['similar_content']
        score += affinity * AFFINITY_WEIGHTS['genre_affinity'] * SIMILAR_AFFINITY_DAMPING
    elif candidate.source == 'genre':
        score += affinity * AFFINITY_WEIGHTS['genre_affinity']
    score += _popularity_ratio(candidate) * DISCOVERY_BOOST
    return score


def score_candidate(candidate: ScoredCandidate, regime: Regime) -> float:
    """Score one candidate. Pure; the caller stores the result on the candidate."""
    if isinstance(regime, VectorRegime):
        score = _vector_score(regime, candidate)
    else:
        score = _affinity_score(regime, candidate)
    score += rating_bonus(candidate.vote_average or 0)
    return round(score, 2)


def score_candidates(candidates: list[ScoredCandidate], regime: Regime) -> list[ScoredCandidate]:
    """Assign scores and return a new list sorted by score, highest first (stable)."""
    for candidate in candidates:
        candidate.score = score_candidate(candidate, regime)
    return sorted(candidates, key=lambda c: -c.score)
