import sqlite3
import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from .config import DB_PATH

logger = logging.getLogger(__name__)


def load_json(val, default=None):
    """Safely load JSON from a stored value; unreadable data counts as absent."""
    if val is None or val == '':
        return default
    if isinstance(val, (list, dict)):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return default


class KeyValueStore(Protocol):
    """String-keyed persistence used by the stores and result caches."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class MemoryKeyValueStore:
    """Dict-backed store for tests and one-shot sessions."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]


class SqliteKeyValueStore:
    """
    Key-value rows in a single SQLite table.

    One connection per store, shared across threads behind a lock; every
    operation runs in its own transaction via `get_db()`.
    """

    def __init__(self, db_path: Path | str = DB_PATH):
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self.init_db()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    @contextmanager
    def get_db(self, read_only: bool = False):
        """
        Connection with transaction handling.

        Commits on clean exit (unless read_only), rolls back and re-raises
        on error.
        """
        with self._lock:
            if self._conn is None:
                self._conn = self._create_connection()
                logger.debug(f"Opened key-value store at {self._db_path}")
            conn = self._conn
            try:
                yield conn
                if not read_only:
                    conn.commit()
            except Exception:
                conn.rollback()
                raise

    def init_db(self) -> None:
        self._db_path.parent.mkdir(exist_ok=True, parents=True)
        with self.get_db() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL
                );
            """)

    def get(self, key: str) -> str | None:
        with self.get_db(read_only=True) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row['value'] if row else None

    def set(self, key: str, value: str) -> None:
        with self.get_db() as conn:
            conn.execute("""
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """, (key, value, time.time()))

    def delete(self, key: str) -> None:
        with self.get_db() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        # Escape LIKE wildcards so prefixes like "@app_" match literally
        pattern = prefix.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_') + '%'
        with self.get_db(read_only=True) as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key", (pattern,)
            ).fetchall()
            return [row['key'] for row in rows]

    def close(self) -> None:
        """Close the underlying connection. Call on application shutdown."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
