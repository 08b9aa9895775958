# DRY Scan - Index code elements and find near-duplicate code
# Copyright (C) 2025  Jonathan Louis
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Vector record store for dry-scan.

Two independent namespaces in one SQLite database:

- records + element_ids: every indexed element (id -> element data + vector)
  and the set of live ids. Wiping the index only touches these.
- embedding_cache: (file hash, element name, line) -> vector, with a fixed
  retention window refreshed on write and never on read.

Batch writes share one transaction. There is no cross-request transaction,
so concurrent writers get last-writer-wins per key.
"""

import contextlib
import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np

from .errors import StoreError
from .models import CacheKey, ElementData, EmbeddingIndex


logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    id TEXT PRIMARY KEY,
    element_data TEXT NOT NULL,
    embedding BLOB NOT NULL,
    created_at REAL
);

CREATE TABLE IF NOT EXISTS element_ids (
    id TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS embedding_cache (
    file_hash TEXT NOT NULL,
    element_name TEXT NOT NULL,
    line_number INTEGER NOT NULL,
    embedding BLOB NOT NULL,
    expires_at REAL NOT NULL,
    PRIMARY KEY (file_hash, element_name, line_number)
);

CREATE INDEX IF NOT EXISTS idx_cache_expires ON embedding_cache(expires_at);
"""


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Vector -> little-endian float64 bytes."""
    return np.asarray(embedding, dtype="<f8").tobytes()


def deserialize_embedding(blob: bytes) -> List[float]:
    return np.frombuffer(blob, dtype="<f8").tolist()


class VectorStore:
    """SQLite-backed record store and embedding cache."""

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            db_path: SQLite file, or ":memory:"
            cache_ttl: Embedding cache retention in seconds
            clock: Time source, injectable for tests
        """
        self.db_path = str(db_path)
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._lock = threading.Lock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open store at {self.db_path}: {e}") from e

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error(f"Store operation failed: {e}")
                raise StoreError(f"Store operation failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @staticmethod
    def _record_row(index: EmbeddingIndex, now: float) -> Tuple[str, str, bytes, float]:
        return (
            index.id,
            json.dumps(index.element_data.to_dict()),
            serialize_embedding(index.embedding),
            now,
        )

    def store(self, index: EmbeddingIndex) -> None:
        """Persist one record and add its id to the id-set."""
        self.store_batch([index])

    def store_batch(self, indices: Sequence[EmbeddingIndex]) -> None:
        """Persist many records in a single transaction."""
        if not indices:
            return
        now = self._clock()
        rows = [self._record_row(index, now) for index in indices]
        with self._transaction() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO records (id, element_data, embedding, created_at) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
            conn.executemany(
                "INSERT OR IGNORE INTO element_ids (id) VALUES (?)",
                [(index.id,) for index in indices],
            )

    @staticmethod
    def _to_index(row) -> EmbeddingIndex:
        record_id, element_data, embedding = row
        return EmbeddingIndex(
            id=record_id,
            element_data=ElementData.from_dict(json.loads(element_data)),
            embedding=deserialize_embedding(embedding),
        )

    def get(self, record_id: str) -> Optional[EmbeddingIndex]:
        """Fetch a record by id, or None."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, element_data, embedding FROM records WHERE id = ?",
                (record_id,),
            ).fetchone()
        if row is None:
            return None
        return self._to_index(row)

    def get_all(self) -> List[EmbeddingIndex]:
        """
        Every record whose id is in the id-set, in insertion order.

        Ids whose record has gone missing are skipped.
        """
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT r.id, r.element_data, r.embedding "
                "FROM element_ids e JOIN records r ON r.id = e.id "
                "ORDER BY e.rowid"
            ).fetchall()
        return [self._to_index(row) for row in rows]

    def delete_all(self) -> int:
        """
        Remove every tracked record and clear the id-set.

        The embedding cache is left alone.

        Returns:
            Number of ids removed (0 if already empty)
        """
        with self._transaction() as conn:
            count = conn.execute("SELECT COUNT(*) FROM element_ids").fetchone()[0]
            if count == 0:
                return 0
            conn.execute("DELETE FROM records WHERE id IN (SELECT id FROM element_ids)")
            conn.execute("DELETE FROM element_ids")
        logger.info(f"Deleted {count} indexed elements")
        return count

    # ------------------------------------------------------------------
    # Embedding cache
    # ------------------------------------------------------------------

    def get_cached(
        self,
        file_hash: str,
        element_name: str,
        line_number: int,
    ) -> Optional[List[float]]:
        """Cached vector for a key, or None if missing or expired."""
        return self.get_cached_batch([(file_hash, element_name, line_number)])[0]

    def set_cached(
        self,
        file_hash: str,
        element_name: str,
        line_number: int,
        embedding: Sequence[float],
    ) -> None:
        """Cache a vector. Each write restarts the retention window."""
        self.set_cached_batch([((file_hash, element_name, line_number), embedding)])

    def get_cached_batch(
        self,
        keys: Sequence[Optional[CacheKey]],
    ) -> List[Optional[List[float]]]:
        """
        Look up many keys at once.

        The result is position-aligned with `keys`: a None key, a miss or an
        expired entry all give None at that position.
        """
        results: List[Optional[List[float]]] = [None] * len(keys)
        if not any(keys):
            return results

        now = self._clock()
        with self._transaction() as conn:
            for i, key in enumerate(keys):
                if key is None:
                    continue
                row = conn.execute(
                    "SELECT embedding FROM embedding_cache "
                    "WHERE file_hash = ? AND element_name = ? AND line_number = ? "
                    "AND expires_at > ?",
                    (key[0], key[1], int(key[2]), now),
                ).fetchone()
                if row is not None:
                    results[i] = deserialize_embedding(row[0])
        return results

    def set_cached_batch(
        self,
        entries: Sequence[Tuple[CacheKey, Sequence[float]]],
    ) -> None:
        """Cache many vectors in one transaction."""
        if not entries:
            return
        expires_at = self._clock() + self.cache_ttl
        rows = [
            (key[0], key[1], int(key[2]), serialize_embedding(embedding), expires_at)
            for key, embedding in entries
        ]
        with self._transaction() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO embedding_cache "
                "(file_hash, element_name, line_number, embedding, expires_at) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )

    def purge_expired(self) -> int:
        """Drop expired cache entries. Returns how many were removed."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM embedding_cache WHERE expires_at <= ?",
                (self._clock(),),
            )
            return cursor.rowcount

    def cache_stats(self) -> dict:
        """
        Return statistics about the store.

        Returns:
            Dictionary with keys:
            - records: Number of indexed elements
            - cache_entries: Live (unexpired) cache entries
            - expired_entries: Expired entries not yet purged
        """
        now = self._clock()
        with self._transaction() as conn:
            records = conn.execute("SELECT COUNT(*) FROM element_ids").fetchone()[0]
            live = conn.execute(
                "SELECT COUNT(*) FROM embedding_cache WHERE expires_at > ?", (now,)
            ).fetchone()[0]
            expired = conn.execute(
                "SELECT COUNT(*) FROM embedding_cache WHERE expires_at <= ?", (now,)
            ).fetchone()[0]
        return {
            "records": records,
            "cache_entries": live,
            "expired_entries": expired,
        }
