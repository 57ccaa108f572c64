"""Gather recent unread messages and flatten them for the summary request."""

from __future__ import annotations

import asyncio
import logging
import time

from chat_digest.host.base import MessagingHost
from chat_digest.models import (
    ChatType,
    HostConversation,
    HostMessage,
    Media,
    MediaKind,
    NormalizedMessageItem,
    ReadState,
)
from chat_digest.pipeline.selector import run_branch

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 50
DEFAULT_LOOKBACK_DAYS = 7

EMPTY_PLACEHOLDER = "[empty message]"
UNKNOWN_SENDER = "Unknown User"

_PLACEHOLDERS = {
    MediaKind.IMAGE: "[image]",
    MediaKind.VIDEO: "[video]",
    MediaKind.VOICE: "[voice]",
    MediaKind.AUDIO: "[audio]",
    MediaKind.FILE: "[file]",
    MediaKind.CONTACT: "[contact]",
    MediaKind.LOCATION: "[location]",
    MediaKind.STICKER: "[sticker]",
    MediaKind.POLL: "[poll]",
}


def media_placeholder(media: Media) -> str:
    if media.kind == MediaKind.LINK:
        return f"[link: {media.title}]" if media.title else "[link]"
    return _PLACEHOLDERS.get(media.kind, "[media]")


def render_content(message: HostMessage) -> str:
    """Message text with media placeholders and a forward marker."""
    parts = []
    text = message.text.strip()
    if text:
        parts.append(text)
    parts.extend(media_placeholder(m) for m in message.media)
    content = " ".join(parts)

    if message.forwarded_from is not None:
        marker = (
            f"[forwarded from {message.forwarded_from}]"
            if message.forwarded_from
            else "[forwarded]"
        )
        content = f"{marker} {content}" if content else marker

    return content or EMPTY_PLACEHOLDER


def is_of_interest(message: HostMessage, read_state: ReadState | None, since: int) -> bool:
    """Recent, and past the read marker when the conversation has one."""
    if message.timestamp < since:
        return False
    if read_state is None:
        return True
    return message.message_id > read_state.max_incoming_read_id


class MessageCollector:
    """Fetches a window of recent messages per conversation and keeps the unread ones.

    Args:
        host: The messaging host to read from.
        history_window: Most recent messages fetched per conversation.
        lookback_days: Only messages newer than this are of interest.
        branch_timeout: Timeout per conversation; None waits indefinitely.
    """

    def __init__(
        self,
        host: MessagingHost,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        branch_timeout: float | None = 10.0,
    ):
        self.host = host
        self.history_window = history_window
        self.lookback_days = lookback_days
        self.branch_timeout = branch_timeout

    async def collect(
        self,
        conversations: list[HostConversation],
        now: float | None = None,
    ) -> list[NormalizedMessageItem]:
        since = int((now if now is not None else time.time()) - self.lookback_days * 86400)

        results = await asyncio.gather(*(
            run_branch(
                self._collect_one(c, since),
                self.branch_timeout,
                f"Message fetch for {c.peer_id}",
            )
            for c in conversations
        ))

        pairs: list[tuple[HostConversation, HostMessage]] = []
        for conversation, messages in zip(conversations, results):
            if messages:
                pairs.extend((conversation, m) for m in messages)

        pairs.sort(key=lambda p: p[1].timestamp, reverse=True)
        items = [normalize(c, m) for c, m in pairs]
        logger.info(f"Collected {len(items)} messages of interest from {len(conversations)} conversations")
        return items

    async def _collect_one(self, conversation: HostConversation, since: int) -> list[HostMessage]:
        history, read_state = await asyncio.gather(
            self.host.fetch_history(conversation.peer_id, self.history_window),
            self.host.fetch_read_state(conversation.peer_id),
        )
        return [m for m in history if is_of_interest(m, read_state, since)]


def normalize(conversation: HostConversation, message: HostMessage) -> NormalizedMessageItem:
    return NormalizedMessageItem(
        chat_id=conversation.peer_id,
        chat_title=conversation.title,
        chat_type=ChatType.from_peer_kind(conversation.kind),
        sender_id=message.author_id,
        sender_name=message.author_name or UNKNOWN_SENDER,
        date=message.timestamp,
        message_id=message.message_id,
        content=render_content(message),
    )
