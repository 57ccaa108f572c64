"""Transactional byte-keyed table engine the history store is layered on."""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, TypeVar

from chat_digest.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY = ":memory:"


class Transaction(ABC):
    """Operations available inside one engine transaction."""

    @abstractmethod
    def get(self, table: str, key: bytes) -> bytes | None:
        ...

    @abstractmethod
    def set(self, table: str, key: bytes, value: bytes) -> None:
        ...

    @abstractmethod
    def remove(self, table: str, key: bytes) -> None:
        ...

    @abstractmethod
    def range(self, table: str, start: bytes, end: bytes) -> list[tuple[bytes, bytes]]:
        """Return ``(key, value)`` pairs with ``start <= key < end``, ascending."""
        ...


class KeyValueEngine(ABC):
    """A store that runs closures as serialized transactions."""

    @abstractmethod
    def transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` to completion inside a transaction and return its result.

        The transaction commits when ``fn`` returns and rolls back when it
        raises; the exception is re-raised unchanged.
        """
        ...

    def close(self) -> None:
        pass


class _SQLiteTransaction(Transaction):
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, table: str, key: bytes) -> bytes | None:
        row = self._conn.execute(
            "SELECT value FROM kv WHERE tbl = ? AND key = ?",
            (table, key),
        ).fetchone()
        return bytes(row[0]) if row else None

    def set(self, table: str, key: bytes, value: bytes) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (tbl, key, value) VALUES (?, ?, ?)",
            (table, key, value),
        )

    def remove(self, table: str, key: bytes) -> None:
        self._conn.execute(
            "DELETE FROM kv WHERE tbl = ? AND key = ?",
            (table, key),
        )

    def range(self, table: str, start: bytes, end: bytes) -> list[tuple[bytes, bytes]]:
        # SQLite compares BLOBs with memcmp, so this is byte-lexicographic order
        rows = self._conn.execute(
            """
            SELECT key, value
            FROM kv
            WHERE tbl = ? AND key >= ? AND key < ?
            ORDER BY key ASC
            """,
            (table, start, end),
        ).fetchall()
        return [(bytes(k), bytes(v)) for k, v in rows]


class SQLiteKeyValueEngine(KeyValueEngine):
    """SQLite-backed engine; one ``kv`` table holds every named table.

    Args:
        db_path: Database file, or ``":memory:"`` for a private in-memory store.
    """

    def __init__(self, db_path: Path | str = MEMORY):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        try:
            if str(self.db_path) != MEMORY:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    tbl   TEXT NOT NULL,
                    key   BLOB NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (tbl, key)
                )
                """
            )
            return conn
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to open history database at {self.db_path}: {e}") from e

    def transaction(self, fn: Callable[[Transaction], T]) -> T:
        with self._lock:
            txn = _SQLiteTransaction(self._conn)
            if self._depth:
                # Nested call from inside a running transaction on this thread
                return fn(txn)
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Failed to begin transaction: {e}") from e
            self._depth += 1
            try:
                result = fn(txn)
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Transaction failed: {e}") from e
            except BaseException:
                self._rollback()
                raise
            finally:
                self._depth -= 1
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Failed to commit transaction: {e}") from e
            return result

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()
