"""
Watchlist, taste profile and dismissal stores.

Each store keeps one JSON document under a fixed key in a KeyValueStore.
Unreadable documents are treated as empty rather than raised.
"""
import json
import logging
import math
import time
from typing import Callable

from .config import STORAGE_KEYS, DISMISSED_TTL
from .database import KeyValueStore, load_json
from .models import WatchlistItem, TasteProfile, MEDIA_TYPES, WATCH_STATUSES, content_key
from .taste import parse_taste_profile, vector_to_array

logger = logging.getLogger(__name__)


def _is_timestamp(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class WatchlistStore:
    """
    The user's watchlist and watch history.

    Callbacks registered with `on_change` run after every mutation; the
    engine uses them to expire its result caches.
    """

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEYS['watchlist'], clock=time.time):
        self.store = store
        self.key = key
        self.clock = clock
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()

    def _load(self) -> list[WatchlistItem]:
        data = load_json(self.store.get(self.key), default={})
        rows = data.get('items', []) if isinstance(data, dict) else []
        items = []
        for row in rows:
            try:
                items.append(WatchlistItem.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed watchlist row {row!r}: {e}")
        return items

    def _save(self, items: list[WatchlistItem]) -> None:
        self.store.set(self.key, json.dumps({'items': [item.to_dict() for item in items]}))
        self._notify()

    def get_watchlist(self) -> list[WatchlistItem]:
        return self._load()

    def get_watched_with_rating(self, rating: int) -> list[WatchlistItem]:
        return [item for item in self._load() if item.status == 'watched' and item.rating == rating]

    def contains(self, media_type: str, item_id: int) -> bool:
        key = content_key(media_type, item_id)
        return any(item.key == key for item in self._load())

    def add_item(
        self,
        item_id: int,
        media_type: str,
        genre_ids: list[int] | None = None,
        title: str = '',
        status: str = 'want_to_watch',
    ) -> WatchlistItem:
        """Add a title, or update the status of one already present."""
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown media type: {media_type}")
        if status not in WATCH_STATUSES:
            raise ValueError(f"Unknown watchlist status: {status}")

        items = self._load()
        key = content_key(media_type, item_id)
        for existing in items:
            if existing.key == key:
                existing.status = status
                self._save(items)
                return existing

        item = WatchlistItem(
            id=item_id,
            type=media_type,
            status=status,
            genre_ids=list(genre_ids or []),
            added_at=self.clock(),
            title=title,
        )
        items.append(item)
        self._save(items)
        return item

    def _update(self, media_type: str, item_id: int, **changes) -> WatchlistItem | None:
        items = self._load()
        key = content_key(media_type, item_id)
        for item in items:
            if item.key == key:
                for name, value in changes.items():
                    setattr(item, name, value)
                self._save(items)
                return item
        logger.debug(f"No watchlist entry for {key}")
        return None

    def set_rating(self, media_type: str, item_id: int, rating: int) -> WatchlistItem | None:
        if rating not in (-1, 0, 1):
            raise ValueError(f"Rating must be -1, 0 or 1, got {rating}")
        return self._update(media_type, item_id, rating=rating)

    def set_status(self, media_type: str, item_id: int, status: str) -> WatchlistItem | None:
        if status not in WATCH_STATUSES:
            raise ValueError(f"Unknown watchlist status: {status}")
        return self._update(media_type, item_id, status=status)

    def remove_item(self, media_type: str, item_id: int) -> bool:
        items = self._load()
        key = content_key(media_type, item_id)
        kept = [item for item in items if item.key != key]
        if len(kept) == len(items):
            return False
        self._save(kept)
        return True

    def replace_all(self, items: list[WatchlistItem]) -> None:
        """Overwrite the whole watchlist (imports)."""
        self._save(list(items))


class TasteProfileStore:
    """Taste vector plus optional confidence, as produced by onboarding."""

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEYS['taste_profile']):
        self.store = store
        self.key = key
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()

    def get_taste_profile(self) -> TasteProfile | None:
        """Stored profile, or None when missing or malformed."""
        return parse_taste_profile(load_json(self.store.get(self.key), default=None))

    def save_taste_profile(self, vector, confidence=None) -> TasteProfile:
        """
        Persist a profile given as a named mapping or positional array.

        Raises ValueError if the vector is unusable, so bad imports fail loudly.
        """
        profile = parse_taste_profile({'vector': vector, 'confidence': confidence})
        if profile is None:
            raise ValueError("Taste vector is malformed or all zero")
        payload = {'vector': vector_to_array(profile.vector)}
        if profile.confidence is not None:
            payload['confidence'] = vector_to_array(profile.confidence)
        self.store.set(self.key, json.dumps(payload))
        self._notify()
        return profile

    def clear(self) -> None:
        self.store.delete(self.key)
        self._notify()


class DismissalStore:
    """Titles the user has hidden; each dismissal lapses after `ttl` seconds."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = STORAGE_KEYS['dismissed'],
        ttl: float = DISMISSED_TTL,
        clock=time.time,
    ):
        self.store = store
        self.key = key
        self.ttl = ttl
        self.clock = clock

    def _raw_rows(self) -> list:
        data = load_json(self.store.get(self.key), default={})
        rows = data.get('items', []) if isinstance(data, dict) else []
        return rows if isinstance(rows, list) else []

    def _load(self) -> list[dict]:
        rows = []
        for row in self._raw_rows():
            if not isinstance(row, dict) or not {'id', 'type', 'dismissed_at'} <= row.keys():
                logger.warning(f"Skipping malformed dismissal {row!r}")
                continue
            if not _is_timestamp(row['dismissed_at']):
                logger.warning(f"Skipping dismissal with unreadable timestamp {row!r}")
                continue
            rows.append(row)
        return rows

    def _save(self, rows: list[dict]) -> None:
        self.store.set(self.key, json.dumps({'items': rows}))

    def _is_live(self, row: dict, now: float) -> bool:
        return now - float(row['dismissed_at']) < self.ttl

    def dismiss(self, item_id: int, media_type: str) -> None:
        """Hide a title. Dismissing twice keeps the first timestamp."""
        rows = self._load()
        if any(row['id'] == item_id and row['type'] == media_type for row in rows):
            return
        rows.append({'id': item_id, 'type': media_type, 'dismissed_at': self.clock()})
        self._save(rows)

    def is_dismissed(self, item_id: int, media_type: str) -> bool:
        now = self.clock()
        return any(
            row['id'] == item_id and row['type'] == media_type and self._is_live(row, now)
            for row in self._load()
        )

    def get_dismissed_ids(self) -> set[str]:
        """Live dismissals as "type-id" keys."""
        now = self.clock()
        return {content_key(row['type'], row['id']) for row in self._load() if self._is_live(row, now)}

    def clean_expired_dismissals(self) -> int:
        """Drop lapsed and unreadable dismissals; returns how many were removed."""
        stored = len(self._raw_rows())
        now = self.clock()
        live = [row for row in self._load() if self._is_live(row, now)]
        removed = stored - len(live)
        if removed:
            self._save(live)
            logger.debug(f"Removed {removed} expired dismissals")
        return removed
