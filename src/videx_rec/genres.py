"""
Catalog genre tables.

The catalog uses disjoint genre id spaces for movies and TV, so anything
that sends genre filters to the TV endpoint goes through
`movie_to_tv_genres` first.
"""
import logging

logger = logging.getLogger(__name__)

# Movie genre ids (and the TV ids the taste vector understands)
GENRES = {
    'action': 28,
    'adventure': 12,
    'animation': 16,
    'comedy': 35,
    'crime': 80,
    'documentary': 99,
    'drama': 18,
    'family': 10751,
    'fantasy': 14,
    'history': 36,
    'horror': 27,
    'musical': 10402,
    'mystery': 9648,
    'reality': 10764,
    'romance': 10749,
    'scifi': 878,
    'thriller': 53,
    'war': 10752,
    'western': 37,
    # TV-only
    'action_adventure': 10759,
    'news': 10763,
    'scifi_fantasy': 10765,
    'soap': 10766,
    'talk': 10767,
    'war_politics': 10768,
}

GENRE_NAMES: dict[int, str] = {
    28: 'Action',
    12: 'Adventure',
    16: 'Animation',
    35: 'Comedy',
    80: 'Crime',
    99: 'Documentary',
    18: 'Drama',
    10751: 'Family',
    14: 'Fantasy',
    36: 'History',
    27: 'Horror',
    10402: 'Musical',
    9648: 'Mystery',
    10764: 'Reality',
    10749: 'Romance',
    878: 'Sci-Fi',
    53: 'Thriller',
    10752: 'War',
    37: 'Western',
    10759: 'Action & Adventure',
    10763: 'News',
    10765: 'Sci-Fi & Fantasy',
    10766: 'Soap',
    10767: 'Talk',
    10768: 'War & Politics',
}

# "Music" is the catalog's old name for Musical
GENRE_NAME_TO_ID: dict[str, int] = {name.lower(): gid for gid, name in GENRE_NAMES.items()}
GENRE_NAME_TO_ID['music'] = 10402

# Taste-vector genre dimension -> movie genre id
DIMENSION_TO_GENRE_ID: dict[str, int] = {
    'action': 28,
    'adventure': 12,
    'animation': 16,
    'comedy': 35,
    'crime': 80,
    'documentary': 99,
    'drama': 18,
    'family': 10751,
    'fantasy': 14,
    'history': 36,
    'horror': 27,
    'musical': 10402,
    'mystery': 9648,
    'reality': 10764,
    'romance': 10749,
    'scifi': 878,
    'thriller': 53,
    'war': 10752,
    'western': 37,
}

# Ids accepted by the TV discover endpoint
VALID_TV_GENRE_IDS = frozenset({
    10759, 16, 35, 80, 99, 18, 10751, 36, 9648,
    10763, 10764, 10749, 10765, 10766, 10767, 10768, 37,
})

MOVIE_TO_TV_GENRE: dict[int, int] = {
    28: 10759,     # Action -> Action & Adventure
    12: 10759,     # Adventure -> Action & Adventure
    878: 10765,    # Sci-Fi -> Sci-Fi & Fantasy
    14: 10765,     # Fantasy -> Sci-Fi & Fantasy
    10752: 10768,  # War -> War & Politics
}


def genre_name(genre_id: int | None) -> str | None:
    """Display name for a genre id, or None when unknown."""
    if genre_id is None:
        return None
    return GENRE_NAMES.get(genre_id)


def parse_genre(value: str) -> int | None:
    """
    Resolve a CLI-style genre argument to a movie genre id.

    Accepts numeric ids ("28"), display names ("Action", "sci-fi") and
    slugs ("scifi", "action_adventure").
    """
    text = value.strip()
    if text.lstrip('-').isdigit():
        return int(text)
    key = text.lower()
    return GENRE_NAME_TO_ID.get(key, GENRES.get(key))


def movie_to_tv_genres(genre_ids: list[int]) -> list[int]:
    """
    Translate movie genre ids to TV equivalents.

    Ids with no valid TV counterpart (Thriller, Horror, Musical) are dropped,
    and duplicates produced by the translation (Action + Adventure) collapse
    while preserving first-seen order.
    """
    result: list[int] = []
    for genre_id in genre_ids:
        tv_id = MOVIE_TO_TV_GENRE.get(genre_id, genre_id)
        if tv_id in VALID_TV_GENRE_IDS and tv_id not in result:
            result.append(tv_id)
    return result
