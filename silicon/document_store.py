"""
Document record store using SQLite.

Persists one record per indexed document: the version stamp the embedding
was computed from, the embedding itself, and the neighbors found by the
most recent query. Records are read on demand; nothing is preloaded.

Every write is a single statement, so no partial record is ever visible.
An upsert that changes the embedding clears the cached neighbors in that
same statement.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageError
from .types import DocumentRecord, Neighbor, utc_now

logger = logging.getLogger(__name__)


def _encode_vector(vector: Optional[list[float]]) -> Optional[str]:
    if vector is None:
        return None
    return json.dumps(vector, separators=(",", ":"))


def _encode_neighbors(neighbors: Optional[list[Neighbor]]) -> Optional[str]:
    if neighbors is None:
        return None
    return json.dumps([[n.identity, n.similarity] for n in neighbors], ensure_ascii=False)


def _decode_neighbors(data: Optional[str]) -> Optional[list[Neighbor]]:
    if data is None:
        return None
    return [Neighbor.from_pair(pair) for pair in json.loads(data)]


class DocumentStore:
    """
    SQLite-backed store for document records.

    Safe to share between threads of one process and between processes:
    WAL journaling lets readers proceed while a writer commits.
    """

    def __init__(self, store_path: Path, timeout: float = 30.0):
        """
        Args:
            store_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self._db_path = Path(store_path)
        self._timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    @contextmanager
    def _guard(self, operation: str):
        """Translate SQLite failures into StorageError."""
        try:
            yield
        except sqlite3.Error as e:
            raise StorageError(f"Record store {operation} failed: {e}") from e

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        with self._guard("open"):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._timeout,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    identity TEXT PRIMARY KEY,
                    modified_at TEXT NOT NULL,
                    embedding_json TEXT,
                    dim INTEGER,
                    neighbors_json TEXT,
                    updated_at TEXT NOT NULL
                )
            """)
            self._conn.commit()

    def _row_to_record(self, row) -> DocumentRecord:
        embedding = row["embedding_json"]
        return DocumentRecord(
            identity=row["identity"],
            modified_at=json.loads(row["modified_at"]),
            embedding=json.loads(embedding) if embedding is not None else None,
            cached_neighbors=_decode_neighbors(row["neighbors_json"]),
            updated_at=row["updated_at"],
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, identity: str, record: DocumentRecord) -> DocumentRecord:
        """
        Insert or replace the record for a document.

        If the stored embedding differs from the new one, the cached
        neighbors are cleared regardless of what the record carries.

        Raises:
            ValueError: If the embedding length differs from the store's
            StorageError: If the write fails
        """
        if record.identity != identity:
            raise ValueError(f"Record identity {record.identity!r} does not match key {identity!r}")

        dim = len(record.embedding) if record.embedding is not None else None
        if dim is not None:
            existing_dim = self.dimension(exclude=identity)
            if existing_dim is not None and existing_dim != dim:
                raise ValueError(
                    f"Embedding dimension {dim} for {identity} does not match store dimension {existing_dim}"
                )

        now = utc_now()
        with self._guard("put"):
            self._conn.execute("""
                INSERT INTO documents
                (identity, modified_at, embedding_json, dim, neighbors_json, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(identity) DO UPDATE SET
                    neighbors_json = CASE
                        WHEN documents.embedding_json IS excluded.embedding_json
                        THEN excluded.neighbors_json
                        ELSE NULL
                    END,
                    modified_at = excluded.modified_at,
                    embedding_json = excluded.embedding_json,
                    dim = excluded.dim,
                    updated_at = excluded.updated_at
            """, (
                identity,
                json.dumps(record.modified_at),
                _encode_vector(record.embedding),
                dim,
                _encode_neighbors(record.cached_neighbors),
                now,
            ))
            self._conn.commit()

        return self.get(identity)

    def set_neighbors(
        self,
        identity: str,
        neighbors: Optional[list[Neighbor]],
        computed_from: Optional[list[float]] = None,
    ) -> bool:
        """
        Replace only the cached neighbors of an existing record.

        Args:
            identity: Document identity
            neighbors: Neighbor list, or None to clear the cache
            computed_from: Embedding the neighbors were computed from; when
                given, the write is skipped if the stored embedding has
                changed in the meantime

        Returns:
            True if the record exists and was updated
        """
        with self._guard("set_neighbors"):
            if computed_from is None:
                cursor = self._conn.execute("""
                    UPDATE documents SET neighbors_json = ?
                    WHERE identity = ?
                """, (_encode_neighbors(neighbors), identity))
            else:
                cursor = self._conn.execute("""
                    UPDATE documents SET neighbors_json = ?
                    WHERE identity = ? AND embedding_json = ?
                """, (_encode_neighbors(neighbors), identity, _encode_vector(computed_from)))
            self._conn.commit()
        return cursor.rowcount > 0

    def clear_neighbors(self) -> int:
        """
        Drop every cached neighbor list.

        Returns:
            Number of records whose cache was cleared
        """
        with self._guard("clear_neighbors"):
            cursor = self._conn.execute(
                "UPDATE documents SET neighbors_json = NULL WHERE neighbors_json IS NOT NULL"
            )
            self._conn.commit()
        return cursor.rowcount

    def delete(self, identity: str) -> bool:
        """
        Delete a document record.

        Returns:
            True if the record existed and was deleted
        """
        with self._guard("delete"):
            cursor = self._conn.execute(
                "DELETE FROM documents WHERE identity = ?", (identity,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def clear(self) -> int:
        """
        Delete every record.

        Returns:
            Number of records deleted
        """
        with self._guard("clear"):
            cursor = self._conn.execute("DELETE FROM documents")
            self._conn.commit()
        logger.info("Cleared %d records", cursor.rowcount)
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, identity: str) -> Optional[DocumentRecord]:
        """
        Get a document record by identity.

        Returns:
            DocumentRecord if found, None otherwise
        """
        with self._guard("get"):
            row = self._conn.execute("""
                SELECT identity, modified_at, embedding_json, neighbors_json, updated_at
                FROM documents
                WHERE identity = ?
            """, (identity,)).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def all_identities(self) -> set[str]:
        """Identities of all stored records."""
        with self._guard("list"):
            cursor = self._conn.execute("SELECT identity FROM documents")
            return {row["identity"] for row in cursor}

    def iter_embeddings(self) -> Iterator[tuple[str, list[float]]]:
        """
        Yield (identity, embedding) for every record with an embedding.

        Order is by identity, so scans are deterministic.
        """
        with self._guard("scan"):
            rows = self._conn.execute("""
                SELECT identity, embedding_json FROM documents
                WHERE embedding_json IS NOT NULL
                ORDER BY identity
            """).fetchall()
        for row in rows:
            yield row["identity"], json.loads(row["embedding_json"])

    def dimension(self, exclude: Optional[str] = None) -> Optional[int]:
        """Embedding length shared by the stored records, or None if empty."""
        with self._guard("dimension"):
            row = self._conn.execute("""
                SELECT dim FROM documents
                WHERE dim IS NOT NULL AND identity IS NOT ?
                LIMIT 1
            """, (exclude,)).fetchone()
        return row["dim"] if row else None

    def count(self) -> int:
        """Count stored records."""
        with self._guard("count"):
            return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
