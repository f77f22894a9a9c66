"""
Configuration constants for the Videx recommendation engine.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Storage Configuration
DB_PATH = Path(os.environ.get("VIDEX_DB", "data/videx.db"))

# Catalog (TMDb) Configuration
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
HTTP_TIMEOUT = _get_float_env("VIDEX_HTTP_TIMEOUT", 10.0, min_val=1.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("VIDEX_MAX_CONCURRENT", 8, min_val=1)
DEFAULT_REGION = os.environ.get("VIDEX_DEFAULT_REGION", "GB")
DEFAULT_RETRY_AFTER = 60  # Reported when a 429 arrives without Retry-After

# Cache lifetimes
RECOMMENDATION_CACHE_TTL = _get_float_env("VIDEX_RECOMMENDATION_TTL_HOURS", 6.0) * 3600
HIDDEN_GEMS_CACHE_TTL = _get_float_env("VIDEX_HIDDEN_GEMS_TTL_HOURS", 6.0) * 3600
DISMISSED_TTL = _get_float_env("VIDEX_DISMISSAL_TTL_DAYS", 30.0) * 24 * 3600
CATALOG_CACHE_TTL = _get_float_env("VIDEX_CATALOG_CACHE_TTL_HOURS", 24.0) * 3600

# Bump when the persisted cache payload changes shape
CACHE_SCHEMA_VERSION = 1

# Storage keys
STORAGE_KEYS = {
    'recommendations': '@app_recommendations',
    'hidden_gems': '@app_hidden_gems',
    'dismissed': '@app_dismissed_recommendations',
    'watchlist': '@app_watchlist',
    'taste_profile': '@taste_profile',
}

# Scoring weights when a taste vector is available (must sum to 1.0)
VECTOR_WEIGHTS = {
    'taste_vector': 0.60,
    'similar_content': 0.25,
    'trending': 0.15,
}

# Fallback weights when scoring by genre affinity
AFFINITY_WEIGHTS = {
    'genre_affinity': 0.70,
    'similar_content': 0.30,
}

SIMILAR_CONTENT_CREDIT = 50.0  # Flat credit for similar-lane candidates
SIMILAR_AFFINITY_DAMPING = 0.5  # Similar items are not pure affinity matches
AFFINITY_NORMALIZER = 10.0  # Summed affinity that maps to a full 100
POPULARITY_NORMALIZER = 100.0
DISCOVERY_BOOST = 10.0  # Max popularity boost in the affinity regime

# Rating bonus (both regimes)
RATING_BONUS_THRESHOLD = 7.0
RATING_BONUS_MULTIPLIER = 3.0

# Genre affinity points per watchlist state
AFFINITY_SCORES = {
    'watched_liked': 3,
    'watched_neutral': 1,
    'watched_disliked': -1,
    'want_to_watch': 1,
}

# Candidate sourcing
TOP_GENRE_COUNT = 3
LIKED_SEED_COUNT = 3
VECTOR_GENRE_MIN_SCORE = 0.3  # Genre dimension must reach this to seed a combination
VECTOR_GENRE_CANDIDATES = 5
MAX_GENRE_COMBINATIONS = 4
DEFAULT_VOTE_COUNT = 100  # Discover results without vote_count are treated as mid-sized

# Similarity
CONFIDENCE_FLOOR = 0.25  # Untested dimensions still carry some weight
CONTENT_VECTOR_CACHE_SIZE = 500

# Reason thresholds (similarity, 0-100)
REASON_GREAT_MATCH = 80
REASON_GOOD_MATCH = 60

# Diversity
DEFAULT_MAX_PER_GENRE = 3
DEFAULT_TARGET_COUNT = 20
DIVERSITY_GENRE_WINDOW = 10  # Genre quota only applies while filling the first N slots
MAX_TYPE_SHARE = 0.7

# Hidden gems discovery profile
HIDDEN_GEMS_PARAMS = {
    'sort_by': 'vote_average.desc',
    'vote_count.gte': 50,
    'vote_count.lte': 500,
    'vote_average.gte': 7.5,
    'popularity.lte': 15,
}
HIDDEN_GEMS_MAX_PER_GENRE = 2
HIDDEN_GEMS_TARGET_COUNT = 15
