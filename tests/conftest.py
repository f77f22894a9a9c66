import importlib
import sys
from pathlib import Path

import httpx
import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from videx_rec.database import MemoryKeyValueStore  # noqa: E402
from videx_rec.tmdb import CatalogClient  # noqa: E402


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("VIDEX_DB", str(db_path))
    import videx_rec.config as config

    importlib.reload(config)
    return config


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


class FakeCatalog:
    """
    Catalog stand-in served through httpx.MockTransport.

    `routes` maps a URL path to a result list, an HTTP status code, or a
    callable taking the request. Unknown paths return an empty result list.
    """

    BASE_URL = "https://catalog.test"

    def __init__(self):
        self.routes: dict = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(200, json={"results": []})
        if callable(route):
            return route(request)
        if isinstance(route, int):
            return httpx.Response(route)
        return httpx.Response(200, json={"results": route})

    def client(self, **kwargs) -> CatalogClient:
        kwargs.setdefault("api_key", "test-key")
        return CatalogClient(
            base_url=self.BASE_URL,
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )

    def params_for(self, path: str) -> list[dict]:
        return [dict(r.url.params) for r in self.requests if r.url.path == path]

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


def make_item(item_id: int, genre_ids=None, popularity: float = 10.0, vote_average: float = 6.0, **extra) -> dict:
    """Catalog result row as returned by discover/similar."""
    item = {
        "id": item_id,
        "title": f"Title {item_id}",
        "genre_ids": list(genre_ids or []),
        "popularity": popularity,
        "vote_average": vote_average,
        "release_date": "2015-06-01",
        "original_language": "en",
        "poster_path": f"/p{item_id}.jpg",
        "backdrop_path": None,
        "overview": "",
    }
    item.update(extra)
    return item


@pytest.fixture
def item_factory():
    return make_item
