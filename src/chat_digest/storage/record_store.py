"""Ordered on-disk table of history entries keyed by (timestamp, sequence id)."""

from __future__ import annotations

import json
import logging
import struct
from dataclasses import dataclass

from chat_digest.exceptions import StorageError
from chat_digest.storage.engine import Transaction

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "summary_history"

_KEY_FORMAT = ">QI"  # timestamp_ms (8 bytes), sequence_id (4 bytes)
_ID_FORMAT = ">I"
_KEY_SIZE = struct.calcsize(_KEY_FORMAT)

# 9999-12-31T23:59:59.999Z, the last instant a datetime can hold
MAX_TIMESTAMP_MS = 253_402_300_799_999

MIN_KEY = b""
MAX_KEY = b"\xff" * (_KEY_SIZE + 1)


@dataclass
class StoredEntry:
    """One stored payload: ``(id, role, content, timestamp)``."""

    id: int
    role: str
    content: str
    timestamp: int  # milliseconds since epoch
    message_count: int | None = None

    def to_payload(self) -> bytes:
        data = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.message_count is not None:
            data["messageCount"] = self.message_count
        return json.dumps(data, ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "StoredEntry":
        """Decode a payload; raises ValueError when it is malformed.

        Pathologically nested JSON raises RecursionError instead.
        """
        data = json.loads(payload.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("payload is not a JSON object")
        entry_id = data.get("id")
        timestamp = data.get("timestamp")
        role = data.get("role")
        content = data.get("content")
        message_count = data.get("messageCount")
        if not _is_int(entry_id) or not _is_int(timestamp):
            raise ValueError("payload id/timestamp must be integers")
        if not 0 <= timestamp <= MAX_TIMESTAMP_MS:
            raise ValueError(f"payload timestamp {timestamp} is out of range")
        if not isinstance(role, str) or not isinstance(content, str):
            raise ValueError("payload role/content must be strings")
        if message_count is not None and (not _is_int(message_count) or message_count < 0):
            raise ValueError("payload messageCount must be a non-negative integer")
        return cls(
            id=entry_id,
            role=role,
            content=content,
            timestamp=timestamp,
            message_count=message_count,
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def entry_key(timestamp_ms: int, sequence_id: int) -> bytes:
    """Composite sort key; big-endian so byte order equals numeric order."""
    try:
        return struct.pack(_KEY_FORMAT, timestamp_ms, sequence_id)
    except struct.error as e:
        raise StorageError(
            f"Cannot build key for timestamp={timestamp_ms}, id={sequence_id}: {e}"
        ) from e


def _id_key(sequence_id: int) -> bytes:
    try:
        return struct.pack(_ID_FORMAT, sequence_id)
    except struct.error as e:
        raise StorageError(f"Invalid sequence id {sequence_id}: {e}") from e


class OrderedRecordStore:
    """Timestamp-ordered entries plus an id -> key index.

    Every method runs against a transaction handed out by the engine; the
    caller owns the transaction boundary.
    """

    def __init__(self, table: str = DEFAULT_TABLE):
        self.table = table
        self.index_table = f"{table}_index"
        self.skipped_count = 0  # undecodable payloads seen by the last scan

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, txn: Transaction, entry: StoredEntry) -> None:
        key = entry_key(entry.timestamp, entry.id)
        previous = txn.get(self.index_table, _id_key(entry.id))
        if previous is not None and previous != key:
            # Same id re-inserted with a new timestamp; keep ids unique
            txn.remove(self.table, previous)
        txn.set(self.table, key, entry.to_payload())
        txn.set(self.index_table, _id_key(entry.id), key)

    update = insert

    def delete(self, txn: Transaction, sequence_id: int) -> bool:
        """Remove the entry with ``sequence_id``; False when it does not exist."""
        entry = self.get(txn, sequence_id)
        if entry is None:
            return False
        txn.remove(self.table, entry_key(entry.timestamp, entry.id))
        txn.remove(self.index_table, _id_key(entry.id))
        return True

    def clear(self, txn: Transaction) -> int:
        """Remove every stored key, decodable or not. Returns keys removed."""
        removed = 0
        for table in (self.table, self.index_table):
            for key, _ in txn.range(table, MIN_KEY, MAX_KEY):
                txn.remove(table, key)
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, txn: Transaction, sequence_id: int) -> StoredEntry | None:
        key = txn.get(self.index_table, _id_key(sequence_id))
        if key is not None:
            payload = txn.get(self.table, key)
            if payload is not None:
                try:
                    entry = StoredEntry.from_payload(payload)
                except (ValueError, RecursionError) as e:
                    logger.warning(f"Indexed entry {sequence_id} is undecodable: {e}")
                else:
                    if entry.id == sequence_id:
                        return entry
        # Entries written without an index row are only reachable by scan
        for entry in self._scan(txn):
            if entry.id == sequence_id:
                return entry
        return None

    def scan_all(self, txn: Transaction) -> list[StoredEntry]:
        """All decodable entries, most recent first."""
        entries = list(self._scan(txn))
        entries.sort(key=lambda e: (e.timestamp, e.id), reverse=True)
        return entries

    def paginate(self, txn: Transaction, page_index: int, page_size: int) -> list[StoredEntry]:
        if page_index < 0 or page_size <= 0:
            return []
        entries = self.scan_all(txn)
        start = page_index * page_size
        if start >= len(entries):
            logger.debug(
                f"Page {page_index} (size {page_size}) starts past {len(entries)} entries"
            )
            return []
        end = min(start + page_size, len(entries))
        return entries[start:end]

    def count(self, txn: Transaction) -> int:
        return len(list(self._scan(txn)))

    def max_sequence_id(self, txn: Transaction) -> int:
        return max((e.id for e in self._scan(txn)), default=0)

    def _scan(self, txn: Transaction):
        skipped = 0
        for key, payload in txn.range(self.table, MIN_KEY, MAX_KEY):
            try:
                yield StoredEntry.from_payload(payload)
            except (ValueError, RecursionError) as e:
                skipped += 1
                logger.warning(f"Skipping undecodable entry at key {key.hex()}: {e}")
        self.skipped_count = skipped
