"""
Implicit taste signal from watchlist history.

Affinities are recomputed from the watchlist on every pass and never
persisted on their own.
"""
import logging
from collections import defaultdict
from typing import Iterable

from .config import AFFINITY_SCORES, TOP_GENRE_COUNT, LIKED_SEED_COUNT
from .models import WatchlistItem

logger = logging.getLogger(__name__)

GenreAffinities = dict[int, float]


def _item_points(item: WatchlistItem) -> int:
    if item.status == 'watched':
        if item.rating == 1:
            return AFFINITY_SCORES['watched_liked']
        if item.rating == -1:
            return AFFINITY_SCORES['watched_disliked']
        return AFFINITY_SCORES['watched_neutral']
    return AFFINITY_SCORES['want_to_watch']


def calculate_genre_affinities(watchlist: Iterable[WatchlistItem]) -> GenreAffinities:
    """
    Accumulate per-genre points across the watchlist.

    Watched and liked +3, watched neutral or unrated +1, watched and disliked -1,
    want-to-watch +1. Genres appear in first-seen order.
    """
    affinities: GenreAffinities = defaultdict(float)
    for item in watchlist:
        points = _item_points(item)
        for genre_id in item.genre_ids:
            affinities[genre_id] += points

    logger.debug(f"Genre affinities: {dict(affinities)}")
    return dict(affinities)


def top_genres(affinities: GenreAffinities, count: int = TOP_GENRE_COUNT) -> list[tuple[int, float]]:
    """Positive-score genres, strongest first; ties keep insertion order."""
    positive = [(genre_id, score) for genre_id, score in affinities.items() if score > 0]
    # sorted() is stable so equal scores stay in insertion order
    return sorted(positive, key=lambda item: -item[1])[:count]


def top_liked_items(liked: Iterable[WatchlistItem], count: int = LIKED_SEED_COUNT) -> list[WatchlistItem]:
    """Most recently added liked items, newest first."""
    return sorted(liked, key=lambda item: item.added_at, reverse=True)[:count]
