"""Data models shared across the pipeline and the history store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PeerKind(str, Enum):
    """Conversation kinds exposed by a messaging host."""

    USER = "user"
    GROUP = "group"  # basic group, member count known up front
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"


class ChatType(str, Enum):
    """Chat type as sent to the summarization service."""

    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"
    UNKNOWN = "unknown"

    @classmethod
    def from_peer_kind(cls, kind: PeerKind | None) -> "ChatType":
        return {
            PeerKind.USER: cls.PRIVATE,
            PeerKind.GROUP: cls.GROUP,
            PeerKind.SUPERGROUP: cls.SUPERGROUP,
            PeerKind.CHANNEL: cls.CHANNEL,
        }.get(kind, cls.UNKNOWN)


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    AUDIO = "audio"
    FILE = "file"
    LINK = "link"
    CONTACT = "contact"
    LOCATION = "location"
    STICKER = "sticker"
    POLL = "poll"
    OTHER = "other"


@dataclass
class Media:
    """A media attachment on a host message."""

    kind: MediaKind
    title: str | None = None  # link preview title


@dataclass
class HostConversation:
    """A conversation as listed by the messaging host."""

    peer_id: str
    title: str
    kind: PeerKind
    member_count: int | None = None  # None for supergroups/channels until looked up


@dataclass
class HostMessage:
    """A single message as returned by the messaging host."""

    message_id: int  # ordinal within the conversation
    peer_id: str
    timestamp: int  # unix seconds
    author_id: str = ""
    author_name: str = ""
    text: str = ""
    media: list[Media] = field(default_factory=list)
    forwarded_from: str | None = None  # "" for forwards with a hidden origin
    incoming: bool = True


@dataclass
class ReadState:
    """Highest incoming message ordinal the user has seen in a conversation."""

    max_incoming_read_id: int


@dataclass
class NormalizedMessageItem:
    """A message flattened for the summarization request."""

    chat_id: str
    chat_title: str
    chat_type: ChatType
    sender_id: str
    sender_name: str
    date: int  # unix seconds
    message_id: int
    content: str

    def to_dict(self) -> dict:
        return {
            "chatId": self.chat_id,
            "chatTitle": self.chat_title,
            "chatType": self.chat_type.value,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "date": self.date,
            "messageId": self.message_id,
            "content": self.content,
        }


@dataclass(frozen=True)
class SummaryRecord:
    """A persisted summarization result."""

    id: str
    user_message: str
    ai_response: str
    timestamp: datetime
    message_count: int = 0
