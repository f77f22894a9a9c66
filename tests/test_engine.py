import json

import pytest

from videx_rec import engine as engine_module
from videx_rec.engine import RecommendationEngine, dedupe_candidates
from videx_rec.models import FilterOptions, ScoredCandidate

RECS_KEY = "@app_recommendations"
GEMS_KEY = "@app_hidden_gems"


def _liked(engine, item_id, genre_ids, title):
    engine.watchlist.add_item(item_id, "movie", genre_ids=genre_ids, title=title, status="watched")
    engine.watchlist.set_rating("movie", item_id, 1)


@pytest.mark.asyncio
async def test_empty_watchlist_falls_back_to_popular(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28], popularity=80, vote_average=7.5)]
    fake_catalog.routes["/discover/tv"] = [item_factory(2, [18])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        recs = await engine.generate_recommendations([8], "GB")

    assert [r.key for r in recs] == ["movie-1", "tv-2"]
    assert all(r.reason == "Popular in your region" for r in recs)
    assert all(r.source == "popular" for r in recs)
    assert all("with_genres" not in p for p in fake_catalog.params_for("/discover/movie"))
    assert recs[0].metadata["title"] == "Title 1"


@pytest.mark.asyncio
async def test_lanes_are_merged_and_watchlist_removed(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(10, [28]), item_factory(11, [28])]
    fake_catalog.routes["/movie/10/similar"] = [item_factory(12, [28]), item_factory(11, [28])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        _liked(engine, 10, [28], "Heat")
        recs = await engine.generate_recommendations()

    by_key = {r.key: r for r in recs}
    assert "movie-10" not in by_key
    # Duplicate across lanes keeps the genre-lane copy
    assert by_key["movie-11"].source == "genre"
    assert by_key["movie-11"].reason == "Because you like Action"
    assert by_key["movie-12"].reason == "Similar to Heat"
    assert fake_catalog.params_for("/discover/movie")[0]["with_genres"] == "28"


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        first = await engine.generate_recommendations()
        request_count = len(fake_catalog.requests)
        second = await engine.generate_recommendations()

    assert first == second
    assert len(fake_catalog.requests) == request_count


@pytest.mark.asyncio
async def test_changed_region_misses_cache(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        await engine.generate_recommendations(region="GB")
        request_count = len(fake_catalog.requests)
        await engine.generate_recommendations(region="US")

    assert len(fake_catalog.requests) > request_count


@pytest.mark.asyncio
async def test_filtered_calls_bypass_cache(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28])]
    fake_catalog.routes["/discover/tv"] = [item_factory(2, [18])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        await engine.generate_recommendations()
        stored = kv_store.get(RECS_KEY)
        request_count = len(fake_catalog.requests)

        filtered = await engine.generate_recommendations(filter_options=FilterOptions(fetch_tv=False))
        assert len(fake_catalog.requests) > request_count
        assert [r.type for r in filtered] == ["movie"]
        assert kv_store.get(RECS_KEY) == stored

        request_count = len(fake_catalog.requests)
        unfiltered = await engine.generate_recommendations()

    assert len(fake_catalog.requests) == request_count
    assert {r.type for r in unfiltered} == {"movie", "tv"}


@pytest.mark.asyncio
async def test_dismissed_titles_are_excluded(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28]), item_factory(2, [35])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        assert {r.id for r in await engine.generate_recommendations()} == {1, 2}

        engine.dismiss(1, "movie")
        assert {r.id for r in await engine.generate_recommendations()} == {2}

        # Dismissals lapse after thirty days
        clock.advance(31 * 24 * 3600)
        assert {r.id for r in await engine.generate_recommendations()} == {1, 2}


@pytest.mark.asyncio
async def test_watchlist_change_invalidates_caches(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28], vote_average=8.0)]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        await engine.generate_recommendations()
        await engine.generate_hidden_gems()
        assert kv_store.get(GEMS_KEY) is not None

        engine.watchlist.add_item(99, "tv")

    assert json.loads(kv_store.get(RECS_KEY))["expires_at"] == 0
    assert kv_store.get(GEMS_KEY) is None


@pytest.mark.asyncio
async def test_type_share_is_capped(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(i, [1000 + i]) for i in range(1, 21)]

    async with fake_catalog.client() as catalog:
        recs = await RecommendationEngine.from_store(kv_store, catalog, clock=clock).generate_recommendations()

    assert len(recs) == 14
    assert all(r.type == "movie" for r in recs)


@pytest.mark.asyncio
async def test_taste_vector_drives_combination_queries(fake_catalog, kv_store, clock):
    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        engine.profiles.save_taste_profile({"drama": 0.9, "action": 0.8})
        await engine.generate_recommendations()

    assert fake_catalog.params_for("/discover/movie")[0]["with_genres"] == "18,28"
    assert fake_catalog.params_for("/discover/tv")[0]["with_genres"] == "18,10759"


@pytest.mark.asyncio
async def test_internal_errors_yield_empty_list(monkeypatch, fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28])]

    def explode(*args, **kwargs):
        raise RuntimeError("scoring broke")

    monkeypatch.setattr(engine_module, "score_candidates", explode)
    monkeypatch.setattr(engine_module, "diversify", explode)

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        assert await engine.generate_recommendations() == []
        assert await engine.generate_hidden_gems() == []

    assert kv_store.get(RECS_KEY) is None


@pytest.mark.asyncio
async def test_hidden_gems(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [
        item_factory(1, [18], vote_average=8.1),
        item_factory(2, [18], vote_average=7.9),
        item_factory(3, [18], vote_average=7.6),
        item_factory(4, [35, 18], vote_average=7.7),
    ]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        _liked(engine, 900, [18], "Moonlight")
        gems = await engine.generate_hidden_gems(region="US")
        request_count = len(fake_catalog.requests)
        again = await engine.generate_hidden_gems(region="US")

    assert [(g.id, g.score) for g in gems] == [(1, 8.1), (2, 7.9), (4, 7.7)]
    assert [g.reason for g in gems] == ["Hidden gem in Drama", "Hidden gem in Drama", "Hidden gem in Comedy"]
    params = fake_catalog.params_for("/discover/movie")[0]
    assert params["with_genres"] == "18"
    assert params["sort_by"] == "vote_average.desc"
    assert again == gems
    assert len(fake_catalog.requests) == request_count


@pytest.mark.asyncio
async def test_hidden_gems_use_vector_genres_without_history(fake_catalog, kv_store, clock):
    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        engine.profiles.save_taste_profile({"horror": 0.9, "comedy": 0.5})
        await engine.generate_hidden_gems()

    assert fake_catalog.params_for("/discover/movie")[0]["with_genres"] == "27|35"


def test_invalid_settings_are_rejected(kv_store):
    with pytest.raises(ValueError):
        RecommendationEngine.from_store(kv_store, catalog=None, max_per_genre=0)


def test_dedupe_candidates_keeps_first():
    a = ScoredCandidate(id=1, media_type="movie", source="genre")
    b = ScoredCandidate(id=1, media_type="movie", source="similar")
    c = ScoredCandidate(id=1, media_type="tv", source="genre")
    assert dedupe_candidates([a, b, c]) == [a, c]


@pytest.mark.asyncio
async def test_genre_filter_never_touches_cache(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28]), item_factory(2, [35])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        await engine.generate_recommendations()
        stored = kv_store.get(RECS_KEY)
        request_count = len(fake_catalog.requests)

        await engine.generate_recommendations(filter_options=FilterOptions(filter_genre_ids=[28]))

    assert len(fake_catalog.requests) > request_count
    assert fake_catalog.params_for("/discover/movie")[-1]["with_genres"] == "28"
    assert kv_store.get(RECS_KEY) == stored


@pytest.mark.asyncio
async def test_corrupt_dismissal_does_not_sink_generation(fake_catalog, item_factory, kv_store, clock):
    kv_store.set("@app_dismissed_recommendations", json.dumps({"items": [
        {"id": 5, "type": "movie", "dismissed_at": "yesterday"},
    ]}))
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28]), item_factory(2, [35])]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        recs = await engine.generate_recommendations()
        gems = await engine.generate_hidden_gems()

    assert {r.key for r in recs} == {"movie-1", "movie-2"}
    assert {g.key for g in gems} == {"movie-1", "movie-2"}


@pytest.mark.asyncio
async def test_unreadable_catalog_row_is_skipped(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28]), item_factory(2, [35], popularity="n/a")]

    async with fake_catalog.client() as catalog:
        recs = await RecommendationEngine.from_store(kv_store, catalog, clock=clock).generate_recommendations()

    assert [r.key for r in recs] == ["movie-1"]


@pytest.mark.asyncio
async def test_profile_change_invalidates_caches(fake_catalog, item_factory, kv_store, clock):
    fake_catalog.routes["/discover/movie"] = [item_factory(1, [28], vote_average=8.0)]

    async with fake_catalog.client() as catalog:
        engine = RecommendationEngine.from_store(kv_store, catalog, clock=clock)
        await engine.generate_recommendations()
        await engine.generate_hidden_gems()
        request_count = len(fake_catalog.requests)

        engine.profiles.save_taste_profile({"action": 0.9})
        assert json.loads(kv_store.get(RECS_KEY))["expires_at"] == 0
        assert kv_store.get(GEMS_KEY) is None

        await engine.generate_recommendations()

    assert len(fake_catalog.requests) > request_count
