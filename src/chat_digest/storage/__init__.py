"""Durable summary history on a transactional key-value engine."""

from chat_digest.storage.engine import KeyValueEngine, SQLiteKeyValueEngine, Transaction
from chat_digest.storage.history import SummaryHistoryManager
from chat_digest.storage.record_store import OrderedRecordStore, StoredEntry, entry_key

__all__ = [
    "KeyValueEngine",
    "SQLiteKeyValueEngine",
    "Transaction",
    "SummaryHistoryManager",
    "OrderedRecordStore",
    "StoredEntry",
    "entry_key",
]
