"""In-memory messaging host for demos, fixtures and offline runs."""

from __future__ import annotations

from chat_digest.exceptions import HostReadError
from chat_digest.host.base import MessagingHost
from chat_digest.models import HostConversation, HostMessage, ReadState


class InMemoryHost(MessagingHost):
    """Serves conversations and messages registered with ``add_*``."""

    def __init__(self):
        self._conversations: dict[str, HostConversation] = {}
        self._messages: dict[str, list[HostMessage]] = {}
        self._read_states: dict[str, ReadState] = {}
        self._member_counts: dict[str, int] = {}

    def add_conversation(
        self,
        conversation: HostConversation,
        messages: list[HostMessage] | None = None,
        read_state: ReadState | None = None,
        cached_member_count: int | None = None,
    ) -> None:
        self._conversations[conversation.peer_id] = conversation
        self._messages[conversation.peer_id] = list(messages or [])
        if read_state is not None:
            self._read_states[conversation.peer_id] = read_state
        if cached_member_count is not None:
            self._member_counts[conversation.peer_id] = cached_member_count

    def add_message(self, message: HostMessage) -> None:
        if message.peer_id not in self._conversations:
            raise HostReadError(f"Unknown conversation: {message.peer_id}")
        self._messages[message.peer_id].append(message)

    def mark_read(self, peer_id: str, max_incoming_read_id: int) -> None:
        self._read_states[peer_id] = ReadState(max_incoming_read_id)

    async def list_conversations(self) -> list[HostConversation]:
        return list(self._conversations.values())

    async def fetch_member_count(self, peer_id: str) -> int | None:
        return self._member_counts.get(peer_id)

    async def fetch_history(self, peer_id: str, limit: int) -> list[HostMessage]:
        if peer_id not in self._conversations:
            raise HostReadError(f"Unknown conversation: {peer_id}")
        ordered = sorted(
            self._messages[peer_id],
            key=lambda m: (m.timestamp, m.message_id),
            reverse=True,
        )
        return ordered[:limit]

    async def fetch_read_state(self, peer_id: str) -> ReadState | None:
        return self._read_states.get(peer_id)
