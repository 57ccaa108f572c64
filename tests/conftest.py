"""Shared fixtures for chat-digest tests."""

import asyncio
import time

import pytest

from chat_digest.client.base import BaseSummaryClient
from chat_digest.host.memory import InMemoryHost
from chat_digest.models import HostConversation, HostMessage, PeerKind
from chat_digest.storage.engine import SQLiteKeyValueEngine
from chat_digest.storage.history import SummaryHistoryManager


class ScriptedClient(BaseSummaryClient):
    """Returns or raises the scripted outcomes in order; repeats the last one."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or ["OK"]
        self.payloads = []
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None

    async def send(self, payload):
        self.payloads.append(payload)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes[min(len(self.payloads), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def scripted_client():
    return ScriptedClient


@pytest.fixture
def engine():
    eng = SQLiteKeyValueEngine()
    yield eng
    eng.close()


@pytest.fixture
def history(engine):
    return SummaryHistoryManager(engine)


@pytest.fixture
def direct_chat_host():
    """One direct chat with two unread messages from the last few minutes."""
    now = int(time.time())
    host = InMemoryHost()
    host.add_conversation(
        HostConversation(peer_id="user:42", title="Alice", kind=PeerKind.USER),
        messages=[
            HostMessage(
                message_id=1, peer_id="user:42", timestamp=now - 120,
                author_id="42", author_name="Alice", text="Lunch tomorrow?",
            ),
            HostMessage(
                message_id=2, peer_id="user:42", timestamp=now - 60,
                author_id="42", author_name="Alice", text="Also, send the report",
            ),
        ],
    )
    return host
