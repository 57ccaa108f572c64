"""Summary history: domain operations over the ordered record store."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

from chat_digest.exceptions import NotConfiguredError, RecordNotFoundError
from chat_digest.models import SummaryRecord
from chat_digest.storage.engine import KeyValueEngine, Transaction
from chat_digest.storage.record_store import OrderedRecordStore, StoredEntry

logger = logging.getLogger(__name__)

SUMMARY_ROLE = "assistant"
MAX_SEQUENCE_ID = 0xFFFFFFFF
USER_PREFIX = "User message: "
RESPONSE_SEPARATOR = "\n\nAI response: "


def encode_content(user_message: str, ai_response: str) -> str:
    return f"{USER_PREFIX}{user_message}{RESPONSE_SEPARATOR}{ai_response}"


def decode_content(content: str) -> tuple[str, str]:
    """Split stored content into ``(user_message, ai_response)``.

    Content without the request/response framing is returned entirely as the
    response.
    """
    if content.startswith(USER_PREFIX) and RESPONSE_SEPARATOR in content:
        user_part, _, response = content[len(USER_PREFIX):].partition(RESPONSE_SEPARATOR)
        return user_part, response
    return "", content


def to_record(entry: StoredEntry) -> SummaryRecord:
    user_message, ai_response = decode_content(entry.content)
    return SummaryRecord(
        id=str(entry.id),
        user_message=user_message,
        ai_response=ai_response,
        timestamp=datetime.fromtimestamp(entry.timestamp / 1000.0, tz=timezone.utc),
        message_count=entry.message_count or 0,
    )


class SummaryHistoryManager:
    """Adds, lists, counts and deletes summary records.

    Create it unbound and call ``bind()``, or pass the engine directly.
    The logical record id is the decimal rendering of the entry's
    sequence id.
    """

    def __init__(
        self,
        engine: KeyValueEngine | None = None,
        store: OrderedRecordStore | None = None,
    ):
        self._engine: KeyValueEngine | None = None
        self._store = store or OrderedRecordStore()
        self._lock = threading.Lock()
        self.next_id = 1
        if engine is not None:
            self.bind(engine)

    @property
    def is_configured(self) -> bool:
        return self._engine is not None

    @property
    def store(self) -> OrderedRecordStore:
        return self._store

    def bind(self, engine: KeyValueEngine) -> "SummaryHistoryManager":
        """Attach a storage engine and load the id counter from it."""
        self._engine = engine
        max_id, existing = engine.transaction(
            lambda txn: (self._store.max_sequence_id(txn), self._store.count(txn))
        )
        with self._lock:
            self.next_id = max_id + 1
        logger.info(f"History bound: next id {self.next_id}, {existing} existing records")
        return self

    def _require_engine(self) -> KeyValueEngine:
        if self._engine is None:
            raise NotConfiguredError(
                "SummaryHistoryManager is not bound to a storage engine. Call bind() first."
            )
        return self._engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_summary(self, user_message: str, ai_response: str, message_count: int) -> SummaryRecord:
        """Persist one summarization result and return the stored record."""
        if message_count < 0:
            raise ValueError("message_count must be >= 0")
        entry = self._add(SUMMARY_ROLE, encode_content(user_message, ai_response), message_count)
        logger.info(f"Stored summary {entry.id} covering {message_count} messages")
        return to_record(entry)

    def add_entry(self, role: str, content: str) -> SummaryRecord:
        """Persist a raw history entry without request framing."""
        return to_record(self._add(role, content, None))

    def _add(self, role: str, content: str, message_count: int | None) -> StoredEntry:
        engine = self._require_engine()

        def write(txn: Transaction) -> StoredEntry:
            with self._lock:
                entry = StoredEntry(
                    id=self.next_id,
                    role=role,
                    content=content,
                    timestamp=int(time.time() * 1000),
                    message_count=message_count,
                )
                self._store.insert(txn, entry)
                self.next_id += 1
                return entry

        return engine.transaction(write)

    def delete_by_id(self, record_id: str) -> None:
        """Delete the record whose id is exactly ``record_id``."""
        engine = self._require_engine()
        sequence_id = _parse_record_id(record_id)

        def remove(txn: Transaction) -> bool:
            if sequence_id is None:
                return False
            return self._store.delete(txn, sequence_id)

        if not engine.transaction(remove):
            raise RecordNotFoundError(f"Summary record not found: {record_id!r}")
        logger.info(f"Deleted summary {record_id}")

    def clear_all(self) -> None:
        engine = self._require_engine()

        def wipe(txn: Transaction) -> int:
            with self._lock:
                removed = self._store.clear(txn)
                self.next_id = 1
                return removed

        removed = engine.transaction(wipe)
        logger.info(f"Cleared summary history ({removed} keys)")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> SummaryRecord | None:
        engine = self._require_engine()
        sequence_id = _parse_record_id(record_id)
        if sequence_id is None:
            return None
        entry = engine.transaction(lambda txn: self._store.get(txn, sequence_id))
        return to_record(entry) if entry else None

    def list_all(self) -> list[SummaryRecord]:
        engine = self._require_engine()
        entries = engine.transaction(self._store.scan_all)
        return [to_record(e) for e in entries]

    def list_paginated(self, page: int, page_size: int) -> list[SummaryRecord]:
        engine = self._require_engine()
        entries = engine.transaction(lambda txn: self._store.paginate(txn, page, page_size))
        logger.debug(f"Page {page} (size {page_size}) returned {len(entries)} records")
        return [to_record(e) for e in entries]

    def count(self) -> int:
        engine = self._require_engine()
        return engine.transaction(self._store.count)


def _parse_record_id(record_id: str) -> int | None:
    """Sequence id for ``record_id`` when it is its exact decimal rendering."""
    if not isinstance(record_id, str) or not (record_id.isascii() and record_id.isdigit()):
        return None
    sequence_id = int(record_id)
    if str(sequence_id) != record_id or sequence_id > MAX_SEQUENCE_ID:
        return None
    return sequence_id
