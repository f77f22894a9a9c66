import json
import logging
import sys
from types import SimpleNamespace

import pytest

from videx_rec import cli
from videx_rec.database import SqliteKeyValueStore
from videx_rec.models import Recommendation


def _run(monkeypatch, tmp_path, *argv):
    db = tmp_path / "cli.db"
    monkeypatch.setattr(sys, "argv", ["videx-rec", "--db", str(db), *argv])
    cli.main()
    return db


def _read(db, key):
    store = SqliteKeyValueStore(db)
    try:
        return store.get(key)
    finally:
        store.close()


def test_main_dispatches_to_subcommand(monkeypatch):
    called = {}

    def fake_recommend(args):
        called["command"] = args.command
        called["platform"] = args.platform

    monkeypatch.setattr(cli, "cmd_recommend", fake_recommend)
    monkeypatch.setattr(sys, "argv", ["prog", "recommend", "--platform", "8", "--platform", "337"])

    cli.main()

    assert called == {"command": "recommend", "platform": [8, 337]}


def test_filter_options_parses_names_and_ids():
    args = SimpleNamespace(genre=["sci-fi", "18"], movies_only=True, tv_only=False)
    filters = cli._filter_options(args)
    assert filters.filter_genre_ids == [878, 18]
    assert filters.fetch_movies is True
    assert filters.fetch_tv is False
    assert filters.is_filtered


def test_filter_options_rejects_unknown_genre():
    with pytest.raises(ValueError):
        cli._filter_options(SimpleNamespace(genre=["polka"]))


def test_recommend_outputs_text(monkeypatch, tmp_path, caplog):
    recs = [Recommendation(
        id=1, type="movie", score=72.345, reason="Because you like Drama", source="genre",
        metadata={"title": "Moonlight", "release_date": "2016-10-21", "genre_ids": [18]},
    )]

    async def fake_generation(args, hidden_gems):
        assert hidden_gems is False
        return recs

    monkeypatch.setattr(cli, "_run_generation", fake_generation)
    caplog.set_level(logging.INFO)

    _run(monkeypatch, tmp_path, "recommend")

    assert "1. Moonlight (2016) [movie] - Score: 72.3" in caplog.text
    assert "Why: Because you like Drama  |  Drama" in caplog.text


def test_gems_outputs_json(monkeypatch, tmp_path, caplog):
    recs = [Recommendation(id=5, type="tv", score=8.2, reason="Hidden gem in Drama", source="hidden_gem")]

    async def fake_generation(args, hidden_gems):
        assert hidden_gems is True
        return recs

    monkeypatch.setattr(cli, "_run_generation", fake_generation)
    caplog.set_level(logging.INFO)

    _run(monkeypatch, tmp_path, "gems", "--format", "json")

    assert '"reason": "Hidden gem in Drama"' in caplog.text


def test_conflicting_type_flags_are_rejected(monkeypatch, tmp_path, caplog):
    async def fail(args, hidden_gems):
        raise AssertionError("should not generate")

    monkeypatch.setattr(cli, "_run_generation", fail)
    _run(monkeypatch, tmp_path, "recommend", "--movies-only", "--tv-only")
    assert "mutually exclusive" in caplog.text


def test_import_watchlist_skips_invalid_rows(monkeypatch, tmp_path):
    source = tmp_path / "watchlist.json"
    source.write_text(json.dumps({"items": [
        {"id": 1, "type": "movie", "status": "watched", "rating": 1, "genre_ids": [18]},
        {"id": 2, "type": "podcast"},
    ]}))

    db = _run(monkeypatch, tmp_path, "import-watchlist", str(source))

    stored = json.loads(_read(db, "@app_watchlist"))
    assert [row["id"] for row in stored["items"]] == [1]


def test_import_profile(monkeypatch, tmp_path):
    source = tmp_path / "profile.json"
    source.write_text(json.dumps({"vector": {"drama": 0.7}, "confidence": {"drama": 0.4}}))

    db = _run(monkeypatch, tmp_path, "import-profile", str(source))

    stored = json.loads(_read(db, "@taste_profile"))
    assert 0.7 in stored["vector"]
    assert 0.4 in stored["confidence"]


def test_import_empty_profile_is_refused(monkeypatch, tmp_path, caplog):
    source = tmp_path / "profile.json"
    source.write_text(json.dumps({"vector": [0, 0, 0]}))

    db = _run(monkeypatch, tmp_path, "import-profile", str(source))

    assert _read(db, "@taste_profile") is None
    assert "Invalid taste profile" in caplog.text


def test_dismiss_persists(monkeypatch, tmp_path):
    db = _run(monkeypatch, tmp_path, "dismiss", "tv", "1399")

    stored = json.loads(_read(db, "@app_dismissed_recommendations"))
    assert [(row["type"], row["id"]) for row in stored["items"]] == [("tv", 1399)]


@pytest.mark.parametrize("keep_catalog,expected", [(False, []), (True, ["@tmdb_cache_abc"])])
def test_clear_cache(monkeypatch, tmp_path, keep_catalog, expected):
    db = tmp_path / "cli.db"
    store = SqliteKeyValueStore(db)
    store.set("@app_recommendations", "{}")
    store.set("@app_hidden_gems", "{}")
    store.set("@tmdb_cache_abc", "{}")
    store.set("@app_watchlist", '{"items": []}')
    store.close()

    argv = ["clear-cache", "--keep-catalog"] if keep_catalog else ["clear-cache"]
    _run(monkeypatch, tmp_path, *argv)

    store = SqliteKeyValueStore(db)
    try:
        assert store.keys("@tmdb_cache_") == expected
        assert store.get("@app_recommendations") is None
        assert store.get("@app_hidden_gems") is None
        assert store.get("@app_watchlist") == '{"items": []}'
    finally:
        store.close()
