import logging
import math
from collections import defaultdict

from .config import DEFAULT_MAX_PER_GENRE, DEFAULT_TARGET_COUNT, DIVERSITY_GENRE_WINDOW, MAX_TYPE_SHARE
from .models import ScoredCandidate

logger = logging.getLogger(__name__)


def validate_diversity(max_per_genre: int, target_count: int, max_type_share: float | None) -> None:
    if max_per_genre < 1:
        raise ValueError(f"max_per_genre must be >= 1, got {max_per_genre}")
    if target_count < 1:
        raise ValueError(f"target_count must be >= 1, got {target_count}")
    if max_type_share is not None and not 0 < max_type_share <= 1:
        raise ValueError(f"max_type_share must be in (0, 1], got {max_type_share}")


def diversify(
    candidates: list[ScoredCandidate],
    max_per_genre: int = DEFAULT_MAX_PER_GENRE,
    target_count: int = DEFAULT_TARGET_COUNT,
    genre_window: int | None = DIVERSITY_GENRE_WINDOW,
    max_type_share: float | None = MAX_TYPE_SHARE,
) -> list[ScoredCandidate]:
    """
    Greedy single pass over score-ordered candidates.

    Skips a candidate when its (type, id) was already taken, when its primary
    genre is at `max_per_genre` while fewer than `genre_window` slots are
    filled (None applies the quota to every slot), or when its media type
    already holds ceil(max_type_share * target_count) slots.
    """
    validate_diversity(max_per_genre, target_count, max_type_share)

    results: list[ScoredCandidate] = []
    seen: set[tuple[str, int]] = set()
    genre_counts = defaultdict(int)
    type_counts = defaultdict(int)
    max_per_type = math.ceil(target_count * max_type_share) if max_type_share is not None else None

    for candidate in candidates:
        if candidate.key in seen:
            continue

        primary = candidate.primary_genre
        genre_capped = genre_window is None or len(results) < genre_window
        if genre_capped and primary is not None and genre_counts[primary] >= max_per_genre:
            continue

        if max_per_type is not None and type_counts[candidate.media_type] >= max_per_type:
            continue

        results.append(candidate)
        seen.add(candidate.key)
        type_counts[candidate.media_type] += 1
        if primary is not None:
            genre_counts[primary] += 1

        if len(results) >= target_count:
            break

    if len(results) < target_count:
        logger.debug(
            f"Diversity filter returned {len(results)}/{target_count} items "
            f"(max {max_per_genre} per genre)"
        )

    return results
