"""
Candidate sourcing.

Two lanes run concurrently and their results are concatenated without
deduplication:

Genre lane, first matching strategy wins:
1. Taste vector with usable genres (or an active genre filter): up to four
   AND combinations, each queried against movies and, where the genres
   translate, TV.
2. No vector combinations, no liked genres, no filter: popularity discovery.
3. Otherwise: one OR query per media type over the filter genres, or the
   top affinity genres when no filter is set.

Similar lane: one similar-items query per recently liked seed.

A failing request only empties its own slot; a failing lane returns [].
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Awaitable, Hashable

from .config import (
    VECTOR_GENRE_MIN_SCORE,
    VECTOR_GENRE_CANDIDATES,
    MAX_GENRE_COMBINATIONS,
    HIDDEN_GEMS_PARAMS,
)
from .genres import DIMENSION_TO_GENRE_ID, MOVIE_TO_TV_GENRE, movie_to_tv_genres
from .models import FilterOptions, ScoredCandidate, WatchlistItem
from .scoring import Regime, VectorRegime
from .taste import TasteVector, top_vector_genres
from .tmdb import CatalogClient, provider_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenreCombination:
    """A conjunctive genre filter (comma-joined ids)."""
    genre_ids: tuple[int, ...]

    @property
    def signature(self) -> tuple[int, ...]:
        return tuple(sorted(self.genre_ids))

    def ids_for(self, media_type: str) -> list[int]:
        if media_type == 'tv':
            return movie_to_tv_genres(list(self.genre_ids))
        return list(self.genre_ids)

    def param_for(self, media_type: str) -> str | None:
        """`with_genres` value, or None when no genre survives TV translation."""
        ids = self.ids_for(media_type)
        return ','.join(str(g) for g in ids) if ids else None


def vector_genre_ids(vector: TasteVector) -> list[int]:
    """Catalog ids of the strongest vector genres, strongest first."""
    top = top_vector_genres(vector, min_score=VECTOR_GENRE_MIN_SCORE, count=VECTOR_GENRE_CANDIDATES)
    return [DIMENSION_TO_GENRE_ID[dim] for dim, _score in top if dim in DIMENSION_TO_GENRE_ID]


def build_genre_combinations(
    vector: TasteVector,
    filter_genre_ids: list[int] | None = None,
    limit: int = MAX_GENRE_COMBINATIONS,
) -> list[GenreCombination]:
    """
    AND combinations for the vector strategy, deduplicated by sorted genre set.

    Without a filter: pairs of the top vector genres in rank order (a single
    strong genre yields one single-genre combination). With a filter: each
    filter genre paired with each remaining top vector genre, plus one
    filter-only combination, which always survives the limit.
    """
    top_ids = vector_genre_ids(vector)
    combos: list[GenreCombination] = []
    seen: set[tuple[int, ...]] = set()

    def add(genre_ids: tuple[int, ...]) -> None:
        combo = GenreCombination(genre_ids)
        if combo.signature not in seen:
            seen.add(combo.signature)
            combos.append(combo)

    if filter_genre_ids:
        filter_ids = list(dict.fromkeys(filter_genre_ids))
        others = [g for g in top_ids if g not in filter_ids]
        for other, filter_id in itertools.product(others, filter_ids):
            if len(combos) >= limit - 1:
                break
            add((filter_id, other))
        add(tuple(filter_ids))
        return combos

    if len(top_ids) == 1:
        add((top_ids[0],))
    for pair in itertools.combinations(top_ids, 2):
        if len(combos) >= limit:
            break
        add(pair)
    return combos


async def gather_keyed(requests: dict[Hashable, Awaitable[list[dict]]]) -> dict[Hashable, list[dict]]:
    """
    Run requests concurrently and return results by key.

    A request that raises is logged and maps to [] so one failure never
    takes down its siblings.
    """
    tasks = {key: asyncio.ensure_future(request) for key, request in requests.items()}
    if tasks:
        await asyncio.gather(*tasks.values(), return_exceptions=True)

    results: dict[Hashable, list[dict]] = {}
    for key, task in tasks.items():
        exc = task.exception()
        if exc is not None:
            logger.error(f"Catalog request {key} failed: {type(exc).__name__}: {exc}")
            results[key] = []
        else:
            results[key] = task.result() or []
    return results


def _matching(genre_ids: list[int], item: dict) -> list[int]:
    item_genres = item.get('genre_ids') or []
    return [g for g in genre_ids if g in item_genres]


def _to_candidate(item: dict, media_type: str, source: str, **kwargs) -> ScoredCandidate | None:
    """Project one catalog row, or None when its fields cannot be read."""
    try:
        return ScoredCandidate.from_catalog(item, media_type, source, **kwargs)
    except (TypeError, ValueError) as e:
        logger.warning(f"Skipping unreadable {media_type} result {item.get('id')!r}: {e}")
        return None


def _filter_accepts(filter_genre_ids: list[int], item: dict) -> bool:
    """Genre membership against filter genres and their TV equivalents."""
    accepted = set(filter_genre_ids)
    accepted.update(MOVIE_TO_TV_GENRE[g] for g in filter_genre_ids if g in MOVIE_TO_TV_GENRE)
    return any(g in accepted for g in item.get('genre_ids') or [])


class CandidateSourcer:
    """Fans catalog queries out for one invocation and rejoins them."""

    def __init__(
        self,
        catalog: CatalogClient,
        platform_ids: list[int] | None = None,
        region: str = 'GB',
        filters: FilterOptions | None = None,
    ):
        self.catalog = catalog
        self.platform_ids = list(platform_ids or [])
        self.region = region
        self.filters = filters or FilterOptions()

    def _base_params(self) -> dict:
        return provider_params(self.platform_ids, self.region)

    # Genre lane ----------------------------------------------------------

    async def _vector_combinations(self, combos: list[GenreCombination]) -> list[ScoredCandidate]:
        requests = {}
        for combo in combos:
            for media_type in self.filters.media_types:
                param = combo.param_for(media_type)
                if param is None:
                    logger.debug(f"No {media_type} equivalent for combination {combo.genre_ids}, skipping")
                    continue
                params = {**self._base_params(), 'with_genres': param, 'sort_by': 'popularity.desc'}
                requests[(combo.signature, media_type)] = self.catalog.discover(media_type, params)

        results = await gather_keyed(requests)

        candidates: list[ScoredCandidate] = []
        seen: set[tuple[str, int]] = set()
        for combo in combos:
            for media_type in self.filters.media_types:
                for item in results.get((combo.signature, media_type), []):
                    candidate = _to_candidate(
                        item, media_type, 'genre', matched_genres=_matching(combo.ids_for(media_type), item)
                    )
                    if candidate is None or candidate.key in seen:
                        continue
                    seen.add(candidate.key)
                    candidates.append(candidate)
        return candidates

    async def _popular(self) -> list[ScoredCandidate]:
        requests = {
            media_type: self.catalog.discover(media_type, self._base_params())
            for media_type in self.filters.media_types
        }
        results = await gather_keyed(requests)
        candidates = [
            _to_candidate(item, media_type, 'popular')
            for media_type in self.filters.media_types
            for item in results.get(media_type, [])
        ]
        return [c for c in candidates if c is not None]

    async def _any_genre(self, genre_ids: list[int]) -> list[ScoredCandidate]:
        ids_by_type = {'movie': list(genre_ids), 'tv': movie_to_tv_genres(genre_ids)}
        requests = {}
        for media_type in self.filters.media_types:
            ids = ids_by_type[media_type]
            if not ids:
                logger.debug(f"No {media_type} equivalent for genres {genre_ids}, skipping")
                continue
            params = {
                **self._base_params(),
                'with_genres': '|'.join(str(g) for g in ids),
                'sort_by': 'popularity.desc',
            }
            requests[media_type] = self.catalog.discover(media_type, params)

        results = await gather_keyed(requests)
        candidates = [
            _to_candidate(item, media_type, 'genre', matched_genres=_matching(ids_by_type[media_type], item))
            for media_type in self.filters.media_types
            for item in results.get(media_type, [])
        ]
        return [c for c in candidates if c is not None]

    async def genre_lane(self, regime: Regime, top_genres: list[tuple[int, float]]) -> list[ScoredCandidate]:
        try:
            filter_ids = list(self.filters.filter_genre_ids)
            if isinstance(regime, VectorRegime):
                combos = build_genre_combinations(regime.vector, filter_ids)
                if combos:
                    logger.debug(f"Genre lane: {len(combos)} AND combinations {[c.genre_ids for c in combos]}")
                    return await self._vector_combinations(combos)

            if not top_genres and not filter_ids:
                logger.debug("Genre lane: no genre signal, using popular content")
                return await self._popular()

            # Filter genres replace affinity genres entirely
            genre_ids = filter_ids or [genre_id for genre_id, _score in top_genres]
            logger.debug(f"Genre lane: OR query over {genre_ids}")
            return await self._any_genre(genre_ids)
        except Exception as e:
            logger.warning(f"Genre lane failed: {type(e).__name__}: {e}")
            return []

    # Similar lane --------------------------------------------------------

    async def similar_lane(self, seeds: list[WatchlistItem]) -> list[ScoredCandidate]:
        try:
            seeds = [seed for seed in seeds if self.filters.allows(seed.type)]
            if not seeds:
                return []

            requests = {seed.key: self.catalog.similar(seed.type, seed.id) for seed in seeds}
            results = await gather_keyed(requests)

            filter_ids = self.filters.filter_genre_ids
            candidates = []
            for seed in seeds:
                for item in results.get(seed.key, []):
                    if filter_ids and not _filter_accepts(filter_ids, item):
                        continue
                    candidate = _to_candidate(
                        item,
                        seed.type,
                        'similar',
                        similar_to_id=seed.id,
                        similar_to_title=seed.title or None,
                    )
                    if candidate is not None:
                        candidates.append(candidate)
            return candidates
        except Exception as e:
            logger.warning(f"Similar lane failed: {type(e).__name__}: {e}")
            return []

    async def source(
        self,
        regime: Regime,
        top_genres: list[tuple[int, float]],
        seeds: list[WatchlistItem],
    ) -> list[ScoredCandidate]:
        """Run both lanes concurrently; genre results first, then similar."""
        genre_candidates, similar_candidates = await asyncio.gather(
            self.genre_lane(regime, top_genres),
            self.similar_lane(seeds),
        )
        logger.debug(f"Sourced {len(genre_candidates)} genre and {len(similar_candidates)} similar candidates")
        return genre_candidates + similar_candidates

    # Hidden gems ---------------------------------------------------------

    async def hidden_gems(self, genre_ids: list[int]) -> list[ScoredCandidate]:
        """High-rated, low-popularity discovery, optionally narrowed to any of `genre_ids`."""
        try:
            ids_by_type = {'movie': list(genre_ids), 'tv': movie_to_tv_genres(genre_ids)}
            requests = {}
            for media_type in self.filters.media_types:
                params = {**HIDDEN_GEMS_PARAMS, **self._base_params()}
                if genre_ids:
                    ids = ids_by_type[media_type]
                    if not ids:
                        continue
                    params['with_genres'] = '|'.join(str(g) for g in ids)
                requests[media_type] = self.catalog.discover(media_type, params)

            results = await gather_keyed(requests)
            candidates = [
                _to_candidate(item, media_type, 'hidden_gem')
                for media_type in self.filters.media_types
                for item in results.get(media_type, [])
            ]
            return [c for c in candidates if c is not None]
        except Exception as e:
            logger.warning(f"Hidden gems lane failed: {type(e).__name__}: {e}")
            return []
