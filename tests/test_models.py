import pytest

from videx_rec.models import FilterOptions, Recommendation, ScoredCandidate, WatchlistItem


def test_watchlist_item_from_dict_accepts_media_type_alias():
    item = WatchlistItem.from_dict({"id": "7", "media_type": "tv", "rating": None, "genre_ids": ["18"]})
    assert item.key == "tv-7"
    assert item.rating == 0
    assert item.genre_ids == [18]
    assert item.status == "want_to_watch"


@pytest.mark.parametrize("row", [
    {"id": 1, "type": "book"},
    {"id": 1, "type": "movie", "status": "dropped"},
    {"id": 1, "type": "movie", "rating": 4},
])
def test_watchlist_item_rejects_bad_rows(row):
    with pytest.raises(ValueError):
        WatchlistItem.from_dict(row)


def test_filter_options():
    assert not FilterOptions().is_filtered
    assert FilterOptions().media_types == ["movie", "tv"]
    assert FilterOptions(filter_genre_ids=[18]).is_filtered
    tv_only = FilterOptions(fetch_movies=False)
    assert tv_only.is_filtered
    assert tv_only.media_types == ["tv"]
    assert not tv_only.allows("movie")


def test_candidate_from_tv_result_uses_name_and_air_date():
    item = {"id": 3, "name": "Fargo", "first_air_date": "2014-04-15", "genre_ids": [80, 18]}
    candidate = ScoredCandidate.from_catalog(item, "tv", "similar", similar_to_id=9)
    assert candidate.title == "Fargo"
    assert candidate.release_year == 2014
    assert candidate.primary_genre == 80
    assert candidate.vote_count is None


def test_recommendation_carries_display_metadata():
    candidate = ScoredCandidate(
        id=5, media_type="movie", source="genre", genre_ids=[18], title="Moonlight",
        release_date="2016-10-21", poster_path="/m.jpg", score=71.5,
    )
    rec = Recommendation.from_candidate(candidate, "Because you like Drama")
    assert rec.key == "movie-5"
    assert rec.metadata["title"] == "Moonlight"
    assert rec.metadata["genre_ids"] == [18]
    assert Recommendation.from_dict(rec.to_dict()) == rec


def test_recommendation_from_dict_rejects_unknown_source():
    with pytest.raises(ValueError):
        Recommendation.from_dict({"id": 1, "type": "movie", "score": 1, "source": "trending"})
