import asyncio
import hashlib
import json
import logging
import time

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_REGION,
    DEFAULT_RETRY_AFTER,
    CATALOG_CACHE_TTL,
)
from .database import KeyValueStore, load_json
from .models import MEDIA_TYPES

logger = logging.getLogger(__name__)

CATALOG_CACHE_PREFIX = '@tmdb_cache_'

DEFAULT_DISCOVER_PARAMS = {
    'include_adult': False,
    'sort_by': 'popularity.desc',
}


def provider_params(platform_ids: list[int] | None, region: str) -> dict:
    """Watch-provider filter; the region is always sent."""
    params: dict = {'watch_region': region}
    if platform_ids:
        params['with_watch_providers'] = '|'.join(str(p) for p in platform_ids)
    return params


def _param_value(value):
    # Catalog expects lowercase booleans in the query string
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return value


def catalog_cache_key(name: str, params: dict) -> str:
    """Cache key from endpoint name plus a hash of the sorted params."""
    canonical = json.dumps({k: params[k] for k in sorted(params)}, sort_keys=True, default=str)
    digest = hashlib.sha1(canonical.encode('utf-8')).hexdigest()
    return f"{CATALOG_CACHE_PREFIX}{name}_{digest}"


class CatalogClient:
    """
    Async client for the catalog's discover and similar-items endpoints.

    Every request is a single attempt: failures and rate limits are logged
    and surface as an empty result list. Must be used as an async context
    manager so one connection pool serves a whole fan-out.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = TMDB_BASE_URL,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout: float = HTTP_TIMEOUT,
        cache_store: KeyValueStore | None = None,
        cache_ttl: float = CATALOG_CACHE_TTL,
        transport: httpx.AsyncBaseTransport | None = None,
        clock=time.time,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        self.base_url = base_url
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.cache_store = cache_store
        self.cache_ttl = cache_ttl
        self.transport = transport
        self.clock = clock
        self.client = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json", "User-Agent": "videx-rec/1.0"},
            params={"api_key": self.api_key} if self.api_key else None,
            timeout=self.timeout,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    def _read_cache(self, key: str) -> dict | None:
        if not self.cache_store or self.cache_ttl <= 0:
            return None
        entry = load_json(self.cache_store.get(key), default=None)
        if not isinstance(entry, dict) or 'data' not in entry:
            return None
        age = self.clock() - float(entry.get('timestamp', 0))
        if age >= self.cache_ttl:
            return None
        return entry['data']

    def _write_cache(self, key: str, data: dict) -> None:
        if not self.cache_store or self.cache_ttl <= 0:
            return
        self.cache_store.set(key, json.dumps({'data': data, 'timestamp': self.clock()}))

    async def _get_json(self, path: str, params: dict) -> dict | None:
        """Single GET; returns the decoded body or None on any failure."""
        if not self.client:
            raise RuntimeError("CatalogClient must be used as an async context manager")

        query = {k: _param_value(v) for k, v in params.items() if v is not None}

        async with self.semaphore:
            try:
                resp = await self.client.get(path, params=query)

                if resp.status_code == 404:
                    logger.debug(f"Not found: {path}")
                    return None

                if resp.status_code == 429:
                    retry_after = resp.headers.get("Retry-After", DEFAULT_RETRY_AFTER)
                    logger.warning(f"Rate limited on {path} (Retry-After {retry_after}s), not retrying")
                    return None

                resp.raise_for_status()
                return resp.json()

            except httpx.TimeoutException:
                logger.error(f"Timeout on {path}")
                return None

            except httpx.HTTPStatusError as exc:
                logger.error(f"HTTP {exc.response.status_code} on {path}: {exc}")
                return None

            except httpx.HTTPError as exc:
                logger.error(f"Request error on {path}: {type(exc).__name__}: {exc}")
                return None

            except ValueError as exc:
                logger.error(f"Invalid JSON from {path}: {exc}")
                return None

    async def _cached_results(self, name: str, path: str, params: dict) -> list[dict]:
        key = catalog_cache_key(name, params)
        data = self._read_cache(key)
        if data is None:
            data = await self._get_json(path, params)
            if data is None:
                return []
            self._write_cache(key, data)
        else:
            logger.debug(f"Catalog cache hit for {name}")

        results = data.get('results') if isinstance(data, dict) else None
        if not isinstance(results, list):
            logger.warning(f"Unexpected response shape from {path}")
            return []
        return [item for item in results if isinstance(item, dict) and 'id' in item]

    async def discover(self, media_type: str, params: dict | None = None) -> list[dict]:
        """
        Discover titles of one media type.

        `params` are passed through (e.g. `with_genres` where ',' is AND and
        '|' is OR, provider filters, range filters) on top of the defaults.
        """
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {media_type}")
        request_params = {'watch_region': DEFAULT_REGION, **DEFAULT_DISCOVER_PARAMS, 'page': 1, **(params or {})}
        return await self._cached_results(f"discover_{media_type}", f"/discover/{media_type}", request_params)

    async def similar(self, media_type: str, item_id: int, page: int = 1) -> list[dict]:
        """Titles the catalog considers similar to one item."""
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {media_type}")
        return await self._cached_results(
            f"{media_type}_{item_id}_similar",
            f"/{media_type}/{item_id}/similar",
            {'page': page},
        )
