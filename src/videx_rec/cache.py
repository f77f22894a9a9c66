import json
import logging
import time

from .config import CACHE_SCHEMA_VERSION
from .database import KeyValueStore, load_json
from .models import Recommendation

logger = logging.getLogger(__name__)


def build_signature(
    affinities: dict[int, float],
    liked_item_ids: list[int],
    platform_ids: list[int] | None = None,
    region: str | None = None,
) -> dict:
    """
    Inputs a cached list was generated from.

    JSON keys are strings, so genre ids are stringified here to make a
    freshly built signature compare equal to one read back from storage.
    """
    return {
        'genre_affinities': {str(k): float(v) for k, v in sorted(affinities.items())},
        'liked_item_ids': [int(i) for i in liked_item_ids],
        'platform_ids': sorted(int(p) for p in (platform_ids or [])),
        'region': region,
    }


class ResultCache:
    """
    One persisted recommendation list with expiry and a generation signature.

    Expiry is checked at read time; nothing sweeps the store. Concurrent
    writers simply overwrite each other.
    """

    def __init__(self, store: KeyValueStore, key: str, ttl_seconds: float, clock=time.time):
        self.store = store
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _load(self) -> dict | None:
        entry = load_json(self.store.get(self.key), default=None)
        if not isinstance(entry, dict):
            return None
        return entry

    def read(self, signature: dict | None = None) -> list[Recommendation] | None:
        """
        Cached list, or None on miss.

        A miss is anything absent, unparseable, from another schema version,
        expired, empty, or generated from a different signature.
        """
        entry = self._load()
        if entry is None:
            logger.debug(f"Cache miss for {self.key}: empty")
            return None
        if entry.get('schema_version') != CACHE_SCHEMA_VERSION:
            logger.debug(f"Cache miss for {self.key}: schema version mismatch")
            return None
        try:
            expires_at = float(entry.get('expires_at', 0))
        except (TypeError, ValueError):
            return None
        if self.clock() >= expires_at:
            logger.debug(f"Cache miss for {self.key}: expired")
            return None
        if signature is not None and entry.get('based_on') != signature:
            logger.debug(f"Cache miss for {self.key}: inputs changed")
            return None

        rows = entry.get('recommendations')
        if not isinstance(rows, list) or not rows:
            return None
        try:
            recommendations = [Recommendation.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache entry {self.key}: {e}")
            return None

        logger.debug(f"Cache hit for {self.key} ({len(recommendations)} items)")
        return recommendations

    def write(self, recommendations: list[Recommendation], signature: dict | None = None) -> None:
        now = self.clock()
        entry = {
            'recommendations': [rec.to_dict() for rec in recommendations],
            'generated_at': now,
            'expires_at': now + self.ttl_seconds,
            'based_on': signature or {},
            'schema_version': CACHE_SCHEMA_VERSION,
        }
        self.store.set(self.key, json.dumps(entry))

    def invalidate(self) -> None:
        """Expire in place, keeping the last list for inspection."""
        entry = self._load()
        if entry is None:
            return
        entry['expires_at'] = 0
        self.store.set(self.key, json.dumps(entry))

    def clear(self) -> None:
        self.store.delete(self.key)
