"""Per-message keyed cache store.

The matching engine persists two small fields per message (header digest,
resolved POP3 UIDL) so a later session can skip hashing and match straight
from the cache. Any object with the CacheStore shape works; SqliteCacheStore
keeps them in .pop3-migration/cache.db.
"""

import sqlite3
from pathlib import Path
from typing import Protocol, runtime_checkable


CACHE_DB = "cache.db"


@runtime_checkable
class CacheStore(Protocol):
    """Keyed store of small binary fields, scoped by (mailbox, uidvalidity)."""

    def lookup(self, mailbox: str, uidvalidity: int, key: str, field: str) -> bytes | None:
        ...

    def add(self, mailbox: str, uidvalidity: int, key: str, field: str, value: bytes) -> None:
        ...

    def can_add(self, mailbox: str, uidvalidity: int, key: str, field: str) -> bool:
        """True if the field holds no value yet for this message."""
        ...

    def count(self, mailbox: str | None = None) -> dict[tuple[str, str], int]:
        """Number of cached values per (mailbox, field)."""
        ...

    def clear(self, mailbox: str | None = None, field: str | None = None) -> int:
        """Delete cached values, all or of one mailbox/field. Returns how many."""
        ...


class SqliteCacheStore:
    """SQLite-backed CacheStore.

    Tables:
    - cache_fields: (mailbox, uidvalidity, key, field) -> value
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and create schema if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, timeout=30.0)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()

    def disconnect(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Not connected")
        return self._conn

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.disconnect()

    def _create_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS cache_fields (
                mailbox TEXT NOT NULL,
                uidvalidity INTEGER NOT NULL,
                key TEXT NOT NULL,
                field TEXT NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (mailbox, uidvalidity, key, field)
            );

            CREATE INDEX IF NOT EXISTS idx_cache_fields_field
                ON cache_fields(mailbox, field);
        """)
        self.conn.commit()

    def lookup(self, mailbox: str, uidvalidity: int, key: str, field: str) -> bytes | None:
        cur = self.conn.execute("""
            SELECT value FROM cache_fields
            WHERE mailbox = ? AND uidvalidity = ? AND key = ? AND field = ?
        """, (mailbox, uidvalidity, key, field))
        row = cur.fetchone()
        return bytes(row["value"]) if row else None

    def add(self, mailbox: str, uidvalidity: int, key: str, field: str, value: bytes) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO cache_fields (mailbox, uidvalidity, key, field, value)
            VALUES (?, ?, ?, ?, ?)
        """, (mailbox, uidvalidity, key, field, value))
        self.conn.commit()

    def can_add(self, mailbox: str, uidvalidity: int, key: str, field: str) -> bool:
        return self.lookup(mailbox, uidvalidity, key, field) is None

    def count(self, mailbox: str | None = None) -> dict[tuple[str, str], int]:
        """Count cached values per (mailbox, field)."""
        if mailbox:
            cur = self.conn.execute("""
                SELECT mailbox, field, COUNT(*) AS cnt FROM cache_fields
                WHERE mailbox = ?
                GROUP BY mailbox, field
                ORDER BY mailbox, field
            """, (mailbox,))
        else:
            cur = self.conn.execute("""
                SELECT mailbox, field, COUNT(*) AS cnt FROM cache_fields
                GROUP BY mailbox, field
                ORDER BY mailbox, field
            """)
        return {(row["mailbox"], row["field"]): row["cnt"] for row in cur}

    def clear(self, mailbox: str | None = None, field: str | None = None) -> int:
        """Delete cached values. Returns number of rows deleted."""
        query = "DELETE FROM cache_fields WHERE 1=1"
        params: list = []
        if mailbox:
            query += " AND mailbox = ?"
            params.append(mailbox)
        if field:
            query += " AND field = ?"
            params.append(field)
        cur = self.conn.execute(query, params)
        self.conn.commit()
        return cur.rowcount
