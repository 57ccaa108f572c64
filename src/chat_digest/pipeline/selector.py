"""Pick the conversations worth summarizing: direct chats and small groups."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from chat_digest.exceptions import SelectionError
from chat_digest.host.base import MessagingHost
from chat_digest.models import HostConversation, PeerKind

logger = logging.getLogger(__name__)

DEFAULT_MEMBER_THRESHOLD = 50


async def run_branch(coro, timeout: float | None, label: str):
    """Await one fan-out branch; returns None when it times out or fails."""
    try:
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} timed out after {timeout}s, excluding it")
    except Exception as e:
        logger.warning(f"{label} failed, excluding it: {e}")
    return None


class ConversationSelector:
    """Filters the host's chat list by type and member count.

    Args:
        host: The messaging host to enumerate.
        member_threshold: Groups are kept only when strictly smaller.
        branch_timeout: Timeout for each supergroup/channel member-count
            lookup; None waits indefinitely.
    """

    def __init__(
        self,
        host: MessagingHost,
        member_threshold: int = DEFAULT_MEMBER_THRESHOLD,
        branch_timeout: float | None = 10.0,
    ):
        self.host = host
        self.member_threshold = member_threshold
        self.branch_timeout = branch_timeout

    async def select(self) -> list[HostConversation]:
        try:
            conversations = await self.host.list_conversations()
        except Exception as e:
            raise SelectionError(f"Failed to list conversations: {e}") from e

        selected: list[HostConversation] = []
        pending: list[HostConversation] = []
        seen: set[str] = set()

        for conversation in conversations:
            if conversation.peer_id in seen:
                continue
            seen.add(conversation.peer_id)

            if conversation.kind == PeerKind.USER:
                selected.append(conversation)
            elif conversation.kind == PeerKind.GROUP:
                if self._is_small(conversation.member_count):
                    selected.append(conversation)
            elif conversation.kind in (PeerKind.SUPERGROUP, PeerKind.CHANNEL):
                pending.append(conversation)

        if pending:
            counts = await asyncio.gather(*(
                run_branch(
                    self.host.fetch_member_count(c.peer_id),
                    self.branch_timeout,
                    f"Member count lookup for {c.peer_id}",
                )
                for c in pending
            ))
            for conversation, count in zip(pending, counts):
                if self._is_small(count):
                    selected.append(replace(conversation, member_count=count))

        logger.info(
            f"Selected {len(selected)} of {len(seen)} conversations "
            f"({len(pending)} needed a member-count lookup)"
        )
        return selected

    async def select_ids(self) -> set[str]:
        return {c.peer_id for c in await self.select()}

    def _is_small(self, member_count: int | None) -> bool:
        return member_count is not None and member_count < self.member_threshold
