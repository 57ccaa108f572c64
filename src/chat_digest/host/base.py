"""Abstract boundary to the host messaging engine."""

from __future__ import annotations

from abc import ABC, abstractmethod

from chat_digest.models import HostConversation, HostMessage, ReadState


class MessagingHost(ABC):
    """Async access to the conversations and messages of one account."""

    @abstractmethod
    async def list_conversations(self) -> list[HostConversation]:
        """Every conversation in the account's chat list."""
        ...

    @abstractmethod
    async def fetch_member_count(self, peer_id: str) -> int | None:
        """Cached member count for a supergroup or channel, if known."""
        ...

    @abstractmethod
    async def fetch_history(self, peer_id: str, limit: int) -> list[HostMessage]:
        """Up to ``limit`` most recent messages, newest first."""
        ...

    @abstractmethod
    async def fetch_read_state(self, peer_id: str) -> ReadState | None:
        """Combined read state, or None when the host has none."""
        ...
