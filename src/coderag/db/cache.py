"""Key-value cache on the ``kv_cache`` table, and the daily quota counter.

The cache holds short-lived values with an expiry timestamp; expired keys
read as missing. QuotaCounter keeps one integer per capability per UTC day
and reserves units with a single conditional UPSERT, so concurrent writers
cannot push the day's count past the limit.
"""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

DAY_SECONDS = 86_400


class KeyValueCache:
    """String values with optional TTL, stored in the shared SQLite database."""

    def __init__(
        self, conn: sqlite3.Connection, clock: Callable[[], float] = time.time
    ) -> None:
        self._conn = conn
        self._clock = clock

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def now(self) -> int:
        return int(self._clock())

    def get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value, expires_at FROM kv_cache WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        if row["expires_at"] is not None and row["expires_at"] <= self.now():
            return None
        return row["value"]

    def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store *value* under *key*, replacing any previous value.

        Args:
            ttl: Seconds until the key expires; ``None`` never expires.
        """
        expires_at = self.now() + ttl if ttl is not None else None
        self._conn.execute(
            """
            INSERT INTO kv_cache (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, value, expires_at),
        )
        self._conn.commit()

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        return json.loads(raw) if raw is not None else None

    def put_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.put(key, json.dumps(value), ttl=ttl)

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
        self._conn.commit()

    def purge_expired(self) -> int:
        """Delete expired keys. Returns the number of rows removed."""
        cur = self._conn.execute(
            "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self.now(),),
        )
        self._conn.commit()
        return cur.rowcount


class QuotaCounter:
    """Daily usage cap for one capability (``embedding``, ``query``, ...).

    Args:
        cache: Cache whose table and clock the counter shares.
        capability: Counter name; part of the key ``rate:<capability>:<date>``.
        limit: Maximum units per UTC calendar day.
    """

    def __init__(self, cache: KeyValueCache, capability: str, limit: int) -> None:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self._cache = cache
        self.capability = capability
        self.limit = limit

    def key(self) -> str:
        today = datetime.fromtimestamp(self._cache.now(), tz=timezone.utc).date()
        return f"rate:{self.capability}:{today.isoformat()}"

    def used(self) -> int:
        raw = self._cache.get(self.key())
        return int(raw) if raw is not None else 0

    def usage(self) -> dict[str, int]:
        used = self.used()
        return {
            "used": used,
            "limit": self.limit,
            "remaining": max(0, self.limit - used),
        }

    def try_consume(self, units: int) -> bool:
        """Reserve *units* for today if that stays within the limit.

        Returns:
            True if reserved; False (and nothing written) if the reservation
            would exceed the limit.
        """
        if units < 0:
            raise ValueError(f"units must be >= 0, got {units}")
        now = self._cache.now()
        conn = self._cache.conn
        cur = conn.execute(
            """
            INSERT INTO kv_cache (key, value, expires_at)
            SELECT :key, :units, :expires WHERE :units <= :limit
            ON CONFLICT(key) DO UPDATE SET
                value = CASE
                    WHEN kv_cache.expires_at IS NOT NULL AND kv_cache.expires_at <= :now
                        THEN :units
                    ELSE CAST(kv_cache.value AS INTEGER) + :units
                END,
                expires_at = CASE
                    WHEN kv_cache.expires_at IS NOT NULL AND kv_cache.expires_at <= :now
                        THEN :expires
                    ELSE kv_cache.expires_at
                END
            WHERE (
                CASE
                    WHEN kv_cache.expires_at IS NOT NULL AND kv_cache.expires_at <= :now
                        THEN 0
                    ELSE CAST(kv_cache.value AS INTEGER)
                END
            ) + :units <= :limit
            """,
            {
                "key": self.key(),
                "units": units,
                "limit": self.limit,
                "now": now,
                "expires": now + DAY_SECONDS,
            },
        )
        conn.commit()
        return cur.rowcount == 1

    def refund(self, units: int) -> None:
        """Give back units reserved for a call that did not happen."""
        if units <= 0:
            return
        conn = self._cache.conn
        conn.execute(
            """
            UPDATE kv_cache
            SET value = MAX(0, CAST(value AS INTEGER) - ?)
            WHERE key = ?
            """,
            (units, self.key()),
        )
        conn.commit()
