"""
Map catalog metadata onto the taste-vector space.

Genre dimensions are binary (1.0/0.0); meta dimensions are derived from
genre combinations plus popularity, vote count and release year. The
tables below are shared with the onboarding quiz that builds user vectors,
so any change must bump CONTENT_VECTOR_VERSION.
"""
import logging
from functools import lru_cache

from .config import CONTENT_VECTOR_CACHE_SIZE
from .taste import TasteVector, clamp_vector, create_empty_vector

logger = logging.getLogger(__name__)

CONTENT_VECTOR_VERSION = 2

# Catalog genre id -> taste dimension (movie and TV ids)
GENRE_TO_DIMENSION: dict[int, str] = {
    28: 'action',
    12: 'adventure',
    16: 'animation',
    35: 'comedy',
    80: 'crime',
    99: 'documentary',
    18: 'drama',
    10751: 'family',
    14: 'fantasy',
    36: 'history',
    27: 'horror',
    10402: 'musical',
    9648: 'mystery',
    10749: 'romance',
    878: 'scifi',
    53: 'thriller',
    10752: 'war',
    37: 'western',
    10759: 'action',   # Action & Adventure (TV)
    10764: 'reality',
    10768: 'war',      # War & Politics (TV)
}

# Per-genre contribution to each signal-averaged meta dimension
TONE_SIGNALS = {27: -0.8, 53: -0.5, 80: -0.4, 10752: -0.5, 18: -0.2,
                35: 0.6, 10751: 0.7, 16: 0.3, 10402: 0.4, 10749: 0.3}
TONE_COMBOS = (((28, 35), 0.3), ((27, 53), -0.3), ((18, 35), 0.2))

PACING_SIGNALS = {28: 0.7, 53: 0.5, 27: 0.3, 10759: 0.6,
                  18: -0.4, 99: -0.5, 36: -0.4, 10749: -0.2}

INTENSITY_SIGNALS = {27: 0.8, 53: 0.6, 28: 0.5, 10752: 0.6,
                     35: -0.4, 10749: -0.3, 10751: -0.5, 99: -0.2}
INTENSITY_COMBOS = (((27, 53), 0.3), ((10749, 35), -0.2))

# (exclusive upper bound on release year, era value)
ERA_BANDS = ((1980, -0.8), (1990, -0.5), (2000, -0.3), (2010, 0.0), (2015, 0.3), (2020, 0.6))
ERA_LATEST = 0.8
ERA_PERIOD_GENRES = {36: -0.3, 10752: -0.2}

# (exclusive lower bound on catalog popularity, popularity value)
POPULARITY_BANDS = ((100, 0.9), (50, 0.6), (20, 0.3), (10, 0.0), (5, -0.3))
POPULARITY_FLOOR = -0.6

ANIME_LANGUAGE = 'ja'
ANIMATION_GENRE_ID = 16


def _clip(value: float) -> float:
    return max(-1.0, min(1.0, value))


def _signal_average(genres: frozenset[int], signals: dict[int, float], combos=()) -> float:
    total = 0.0
    count = 0
    for genre_id, weight in signals.items():
        if genre_id in genres:
            total += weight
            count += 1
    for pair, bonus in combos:
        if all(g in genres for g in pair):
            total += bonus
    return _clip(total / count) if count else 0.0


def _derive_pacing(genres: frozenset[int], runtime: int | None) -> float:
    total = 0.0
    count = 0
    for genre_id, weight in PACING_SIGNALS.items():
        if genre_id in genres:
            total += weight
            count += 1
    if runtime:
        if runtime > 150:
            total -= 0.2
            count += 1
        elif runtime < 90:
            total += 0.2
            count += 1
    return _clip(total / count) if count else 0.0


def _derive_era(genres: frozenset[int], release_year: int | None) -> float:
    era = 0.0
    if release_year:
        era = ERA_LATEST
        for upper, value in ERA_BANDS:
            if release_year < upper:
                era = value
                break
    for genre_id, shift in ERA_PERIOD_GENRES.items():
        if genre_id in genres:
            era += shift
    return _clip(era)


def _derive_popularity(popularity: float | None, vote_count: int | None) -> float:
    pop = 0.0
    if popularity is not None:
        pop = POPULARITY_FLOOR
        for lower, value in POPULARITY_BANDS:
            if popularity > lower:
                pop = value
                break
    if vote_count is not None:
        if vote_count < 100:
            pop -= 0.3
        elif vote_count < 500:
            pop -= 0.1
        elif vote_count > 5000:
            pop += 0.2
    return _clip(pop)


@lru_cache(maxsize=CONTENT_VECTOR_CACHE_SIZE)
def _cached_vector(
    genre_ids: tuple[int, ...],
    popularity: float | None,
    vote_count: int | None,
    release_year: int | None,
    original_language: str | None,
    runtime: int | None,
) -> tuple[tuple[str, float], ...]:
    vector = create_empty_vector()
    genres = frozenset(genre_ids)

    for genre_id in genre_ids:
        dim = GENRE_TO_DIMENSION.get(genre_id)
        if dim:
            vector[dim] = 1.0

    # Japanese animation counts as animation even when tagged oddly
    if original_language == ANIME_LANGUAGE and ANIMATION_GENRE_ID in genres:
        vector['animation'] = 1.0

    vector['tone'] = _signal_average(genres, TONE_SIGNALS, TONE_COMBOS)
    vector['pacing'] = _derive_pacing(genres, runtime)
    vector['era'] = _derive_era(genres, release_year)
    vector['popularity'] = _derive_popularity(popularity, vote_count)
    vector['intensity'] = _signal_average(genres, INTENSITY_SIGNALS, INTENSITY_COMBOS)

    return tuple(clamp_vector(vector).items())


def content_to_vector(
    genre_ids: list[int],
    popularity: float | None = None,
    vote_count: int | None = None,
    release_year: int | None = None,
    original_language: str | None = None,
    runtime: int | None = None,
) -> TasteVector:
    """Vectorize one catalog item. Pure; results are memoized."""
    key_genres = tuple(sorted(set(genre_ids or [])))
    return dict(_cached_vector(key_genres, popularity, vote_count, release_year, original_language, runtime))


def clear_content_vector_cache() -> None:
    _cached_vector.cache_clear()
