"""Messaging host backed by a read-only macOS Messages chat.db."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path

from chat_digest.exceptions import HostReadError
from chat_digest.host.base import MessagingHost
from chat_digest.models import (
    HostConversation,
    HostMessage,
    Media,
    MediaKind,
    PeerKind,
    ReadState,
)

logger = logging.getLogger(__name__)

CHAT_DB_PATH = Path.home() / "Library" / "Messages" / "chat.db"

# Apple's Core Data epoch offset (2001-01-01 vs 1970-01-01)
APPLE_EPOCH_OFFSET = 978307200

_VCARD_TYPES = {"text/vcard", "text/x-vcard"}


def media_kind_for(mime_type: str | None, transfer_name: str | None = None) -> MediaKind:
    """Classify an attachment by MIME type."""
    mime = (mime_type or "").lower()
    name = (transfer_name or "").lower()
    if mime.startswith("image/"):
        return MediaKind.IMAGE
    if mime.startswith("video/"):
        return MediaKind.VIDEO
    if mime.startswith("audio/"):
        # Voice memos recorded in Messages are CAF files
        return MediaKind.VOICE if name.endswith(".caf") else MediaKind.AUDIO
    if name.endswith(".loc.vcf"):
        return MediaKind.LOCATION
    if mime in _VCARD_TYPES or name.endswith(".vcf"):
        return MediaKind.CONTACT
    return MediaKind.FILE


class IMessageHost(MessagingHost):
    """Conversations and messages from the macOS Messages database.

    iMessage has no supergroups or channels, so every group reports its
    member count directly. Queries run in a worker thread.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or CHAT_DB_PATH
        self._nanoseconds: bool | None = None

    # ------------------------------------------------------------------
    # MessagingHost
    # ------------------------------------------------------------------

    async def list_conversations(self) -> list[HostConversation]:
        return await asyncio.to_thread(self.list_conversations_sync)

    async def fetch_member_count(self, peer_id: str) -> int | None:
        return None

    async def fetch_history(self, peer_id: str, limit: int) -> list[HostMessage]:
        return await asyncio.to_thread(self.fetch_history_sync, peer_id, limit)

    async def fetch_read_state(self, peer_id: str) -> ReadState | None:
        return await asyncio.to_thread(self.fetch_read_state_sync, peer_id)

    # ------------------------------------------------------------------
    # Synchronous readers
    # ------------------------------------------------------------------

    def list_conversations_sync(self) -> list[HostConversation]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT
                    c.ROWID as chat_id,
                    c.guid as chat_guid,
                    c.chat_identifier,
                    c.display_name
                FROM chat c
                ORDER BY c.ROWID ASC
                """
            ).fetchall()

            conversations = []
            for row in rows:
                participants = self._get_participants(conn, row["chat_id"])
                display_name = row["display_name"] or ""
                is_group = len(participants) > 1 or bool(display_name)
                conversations.append(HostConversation(
                    peer_id=row["chat_guid"],
                    title=display_name or row["chat_identifier"] or "",
                    kind=PeerKind.GROUP if is_group else PeerKind.USER,
                    # participants exclude the account owner
                    member_count=len(participants) + 1,
                ))
            return conversations
        except sqlite3.Error as e:
            raise HostReadError(f"Failed to list chats: {e}") from e
        finally:
            conn.close()

    def fetch_history_sync(self, peer_id: str, limit: int) -> list[HostMessage]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT
                    m.ROWID,
                    m.text,
                    m.date,
                    m.is_from_me,
                    m.cache_has_attachments,
                    h.id as handle_id
                FROM message m
                JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
                JOIN chat c ON c.ROWID = cmj.chat_id
                LEFT JOIN handle h ON h.ROWID = m.handle_id
                WHERE c.guid = ?
                  AND COALESCE(m.associated_message_type, 0) = 0
                ORDER BY m.date DESC, m.ROWID DESC
                LIMIT ?
                """,
                (peer_id, limit),
            ).fetchall()

            messages = []
            for row in rows:
                is_from_me = bool(row["is_from_me"])
                sender = "me" if is_from_me else (row["handle_id"] or "")
                media = []
                if row["cache_has_attachments"]:
                    media = self._get_attachments(conn, row["ROWID"])
                messages.append(HostMessage(
                    message_id=row["ROWID"],
                    peer_id=peer_id,
                    timestamp=self._to_unix(row["date"], conn),
                    author_id=sender,
                    author_name="Me" if is_from_me else sender,
                    # U+FFFC marks where an attachment sat in the text
                    text=(row["text"] or "").replace("\ufffc", "").strip(),
                    media=media,
                    incoming=not is_from_me,
                ))
            return messages
        except sqlite3.Error as e:
            raise HostReadError(f"Failed to read messages for {peer_id}: {e}") from e
        finally:
            conn.close()

    def fetch_read_state_sync(self, peer_id: str) -> ReadState | None:
        conn = self._connect()
        try:
            row = conn.execute(
                """
                SELECT MAX(m.ROWID)
                FROM message m
                JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
                JOIN chat c ON c.ROWID = cmj.chat_id
                WHERE c.guid = ? AND m.is_from_me = 0 AND m.is_read = 1
                """,
                (peer_id,),
            ).fetchone()
            return ReadState(max_incoming_read_id=row[0] or 0)
        except sqlite3.Error as e:
            raise HostReadError(f"Failed to read state for {peer_id}: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        """Open a read-only connection to chat.db."""
        if not self.db_path.exists():
            raise HostReadError(
                f"Messages database not found at {self.db_path}. "
                "Make sure you're running on macOS with Messages configured."
            )
        try:
            uri = f"file:{self.db_path}?mode=ro"
            conn = sqlite3.connect(uri, uri=True)
            conn.row_factory = sqlite3.Row
            return conn
        except (sqlite3.OperationalError, sqlite3.DatabaseError) as e:
            err = str(e).lower()
            if "unable to open" in err or "authorization denied" in err:
                raise HostReadError(
                    "Cannot open chat.db: Full Disk Access is required. "
                    "Go to System Settings > Privacy & Security > Full Disk Access "
                    "and enable it for your terminal application."
                ) from e
            raise HostReadError(f"Failed to open chat.db: {e}") from e

    def _get_participants(self, conn: sqlite3.Connection, chat_id: int) -> list[str]:
        rows = conn.execute(
            """
            SELECT h.id
            FROM handle h
            JOIN chat_handle_join chj ON chj.handle_id = h.ROWID
            WHERE chj.chat_id = ?
            """,
            (chat_id,),
        ).fetchall()
        return [row["id"] for row in rows]

    def _get_attachments(self, conn: sqlite3.Connection, message_id: int) -> list[Media]:
        try:
            rows = conn.execute(
                """
                SELECT a.mime_type, a.transfer_name
                FROM attachment a
                JOIN message_attachment_join maj ON maj.attachment_id = a.ROWID
                WHERE maj.message_id = ?
                """,
                (message_id,),
            ).fetchall()
        except sqlite3.OperationalError:
            return [Media(MediaKind.FILE)]
        if not rows:
            return [Media(MediaKind.FILE)]
        return [
            Media(media_kind_for(row["mime_type"], row["transfer_name"]))
            for row in rows
        ]

    def _detect_timestamp_format(self, conn: sqlite3.Connection) -> bool:
        """Detect if timestamps are in nanoseconds (newer macOS) or seconds."""
        if self._nanoseconds is not None:
            return self._nanoseconds
        row = conn.execute("SELECT MAX(ABS(date)) FROM message").fetchone()
        max_date = row[0] if row and row[0] else 0
        self._nanoseconds = max_date > 1e12
        return self._nanoseconds

    def _to_unix(self, apple_ts: int | None, conn: sqlite3.Connection) -> int:
        if not apple_ts:
            return 0
        ts = apple_ts
        if self._detect_timestamp_format(conn):
            ts = ts / 1e9
        return int(ts + APPLE_EPOCH_OFFSET)
