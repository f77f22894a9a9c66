import logging
import time

from .affinity import calculate_genre_affinities, top_genres, top_liked_items
from .cache import ResultCache, build_signature
from .config import (
    STORAGE_KEYS,
    DEFAULT_REGION,
    DEFAULT_MAX_PER_GENRE,
    DEFAULT_TARGET_COUNT,
    RECOMMENDATION_CACHE_TTL,
    HIDDEN_GEMS_CACHE_TTL,
    HIDDEN_GEMS_MAX_PER_GENRE,
    HIDDEN_GEMS_TARGET_COUNT,
    TOP_GENRE_COUNT,
)
from .database import KeyValueStore
from .diversity import diversify, validate_diversity
from .models import FilterOptions, Recommendation, ScoredCandidate, content_key
from .reasons import generate_reason, hidden_gem_reason
from .scoring import VectorRegime, content_similarity, score_candidates, select_regime
from .sourcing import CandidateSourcer, vector_genre_ids
from .stores import WatchlistStore, TasteProfileStore, DismissalStore
from .tmdb import CatalogClient

logger = logging.getLogger(__name__)


def dedupe_candidates(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
    """Keep the first occurrence of each (type, id)."""
    seen: set[tuple[str, int]] = set()
    unique = []
    for candidate in candidates:
        if candidate.key not in seen:
            seen.add(candidate.key)
            unique.append(candidate)
    return unique


class RecommendationEngine:
    """
    Orchestrates recommendation and hidden-gem generation for one user.

    Both public operations are coroutines that never raise: on an internal
    error they log and return an empty list. The catalog client must already
    be open (entered as an async context manager) when they run.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        watchlist: WatchlistStore,
        profiles: TasteProfileStore,
        dismissals: DismissalStore,
        recommendation_cache: ResultCache,
        hidden_gems_cache: ResultCache,
        max_per_genre: int = DEFAULT_MAX_PER_GENRE,
        target_count: int = DEFAULT_TARGET_COUNT,
    ):
        validate_diversity(max_per_genre, target_count, None)
        self.catalog = catalog
        self.watchlist = watchlist
        self.profiles = profiles
        self.dismissals = dismissals
        self.recommendation_cache = recommendation_cache
        self.hidden_gems_cache = hidden_gems_cache
        self.max_per_genre = max_per_genre
        self.target_count = target_count

        self.watchlist.on_change(self.invalidate_caches)
        self.profiles.on_change(self.invalidate_caches)

    @classmethod
    def from_store(cls, store: KeyValueStore, catalog: CatalogClient, clock=time.time, **kwargs) -> 'RecommendationEngine':
        """Wire every store and cache onto one key-value store."""
        return cls(
            catalog=catalog,
            watchlist=WatchlistStore(store, clock=clock),
            profiles=TasteProfileStore(store),
            dismissals=DismissalStore(store, clock=clock),
            recommendation_cache=ResultCache(
                store, STORAGE_KEYS['recommendations'], RECOMMENDATION_CACHE_TTL, clock=clock
            ),
            hidden_gems_cache=ResultCache(store, STORAGE_KEYS['hidden_gems'], HIDDEN_GEMS_CACHE_TTL, clock=clock),
            **kwargs,
        )

    def invalidate_caches(self) -> None:
        """Watchlist or taste profile changed: expire recommendations and drop hidden gems."""
        self.recommendation_cache.invalidate()
        self.hidden_gems_cache.clear()

    def dismiss(self, item_id: int, media_type: str) -> None:
        self.dismissals.dismiss(item_id, media_type)
        self.recommendation_cache.invalidate()

    def _signals(self, platform_ids: list[int], region: str):
        watchlist = self.watchlist.get_watchlist()
        affinities = calculate_genre_affinities(watchlist)
        liked = top_liked_items(self.watchlist.get_watched_with_rating(1))
        signature = build_signature(affinities, [item.id for item in liked], platform_ids, region)
        return watchlist, affinities, liked, signature

    async def generate_recommendations(
        self,
        user_platform_ids: list[int] | None = None,
        region: str = DEFAULT_REGION,
        filter_options: FilterOptions | None = None,
    ) -> list[Recommendation]:
        try:
            return await self._generate_recommendations(list(user_platform_ids or []), region, filter_options)
        except Exception:
            logger.exception("Error generating recommendations")
            return []

    async def _generate_recommendations(
        self,
        platform_ids: list[int],
        region: str,
        filter_options: FilterOptions | None,
    ) -> list[Recommendation]:
        filters = filter_options or FilterOptions()
        self.dismissals.clean_expired_dismissals()

        watchlist, affinities, liked, signature = self._signals(platform_ids, region)

        if not filters.is_filtered:
            cached = self.recommendation_cache.read(signature)
            if cached:
                logger.debug("Using cached recommendations")
                return cached

        profile = self.profiles.get_taste_profile()
        regime = select_regime(profile, affinities)
        top = top_genres(affinities, TOP_GENRE_COUNT)
        logger.debug(
            f"Generating recommendations: regime={type(regime).__name__}, "
            f"top genres={top}, liked seeds={len(liked)}, filtered={filters.is_filtered}"
        )

        sourcer = CandidateSourcer(self.catalog, platform_ids, region, filters)
        candidates = dedupe_candidates(await sourcer.source(regime, top, liked))
        ranked = score_candidates(candidates, regime)

        watchlist_keys = {item.key for item in watchlist}
        dismissed = self.dismissals.get_dismissed_ids()
        ranked = [
            c for c in ranked
            if content_key(c.media_type, c.id) not in watchlist_keys
            and content_key(c.media_type, c.id) not in dismissed
        ]

        selected = diversify(ranked, self.max_per_genre, self.target_count)
        recommendations = [Recommendation.from_candidate(c, generate_reason(c, regime)) for c in selected]

        if not filters.is_filtered:
            self.recommendation_cache.write(recommendations, signature)

        logger.info(f"Generated {len(recommendations)} recommendations from {len(candidates)} candidates")
        return recommendations

    async def generate_hidden_gems(
        self,
        user_platform_ids: list[int] | None = None,
        region: str = DEFAULT_REGION,
        filter_options: FilterOptions | None = None,
    ) -> list[Recommendation]:
        try:
            return await self._generate_hidden_gems(list(user_platform_ids or []), region, filter_options)
        except Exception:
            logger.exception("Error generating hidden gems")
            return []

    async def _generate_hidden_gems(
        self,
        platform_ids: list[int],
        region: str,
        filter_options: FilterOptions | None,
    ) -> list[Recommendation]:
        filters = filter_options or FilterOptions()
        self.dismissals.clean_expired_dismissals()

        watchlist, affinities, _liked, signature = self._signals(platform_ids, region)

        if not filters.is_filtered:
            cached = self.hidden_gems_cache.read(signature)
            if cached:
                logger.debug("Using cached hidden gems")
                return cached

        regime = select_regime(self.profiles.get_taste_profile(), affinities)

        genre_ids = list(filters.filter_genre_ids)
        if not genre_ids:
            genre_ids = [genre_id for genre_id, _score in top_genres(affinities, TOP_GENRE_COUNT)]
        if not genre_ids and isinstance(regime, VectorRegime):
            genre_ids = vector_genre_ids(regime.vector)[:TOP_GENRE_COUNT]

        sourcer = CandidateSourcer(self.catalog, platform_ids, region, filters)
        candidates = dedupe_candidates(await sourcer.hidden_gems(genre_ids))
        for candidate in candidates:
            candidate.score = round(candidate.vote_average, 2)

        # Catalog order is kept unless a taste vector can rank the gems
        if isinstance(regime, VectorRegime):
            candidates.sort(key=lambda c: -content_similarity(regime, c))

        watchlist_keys = {item.key for item in watchlist}
        candidates = [c for c in candidates if content_key(c.media_type, c.id) not in watchlist_keys]

        selected = diversify(
            candidates,
            max_per_genre=HIDDEN_GEMS_MAX_PER_GENRE,
            target_count=HIDDEN_GEMS_TARGET_COUNT,
            genre_window=None,
            max_type_share=None,
        )
        gems = [Recommendation.from_candidate(c, hidden_gem_reason(c)) for c in selected]

        if not filters.is_filtered:
            self.hidden_gems_cache.write(gems, signature)

        logger.info(f"Generated {len(gems)} hidden gems from {len(candidates)} candidates")
        return gems
