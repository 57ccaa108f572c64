"""Tests for the summarization coordinator."""

import asyncio
import time

import pytest

from chat_digest.config import ReleasePolicy
from chat_digest.coordinator import RunState, SingleFlightGuard, SummarizationCoordinator
from chat_digest.exceptions import (
    AlreadyRunningError,
    NoDataError,
    SelectionError,
    ServerStatusError,
    StorageError,
    TransportFailureError,
    TransportReason,
)
from chat_digest.host.memory import InMemoryHost
from chat_digest.models import HostConversation, HostMessage, PeerKind
from chat_digest.pipeline.collector import MessageCollector
from chat_digest.pipeline.request import RequestBuilder
from chat_digest.pipeline.selector import ConversationSelector
from chat_digest.storage.history import SummaryHistoryManager


def _timeout():
    return TransportFailureError("timed out", reason=TransportReason.TIMED_OUT)


def _coordinator(host, client, history=None, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return SummarizationCoordinator(
        selector=ConversationSelector(host),
        collector=MessageCollector(host),
        builder=RequestBuilder(prompt="Summarize."),
        client=client,
        history=history,
        **kwargs,
    )


class BrokenHistory(SummaryHistoryManager):
    def add_summary(self, user_message, ai_response, message_count):
        raise StorageError("disk full")


class FailingListHost(InMemoryHost):
    async def list_conversations(self):
        raise ConnectionError("host offline")


def test_successful_run_persists_result(direct_chat_host, scripted_client, history):
    client = scripted_client("the summary")
    coordinator = _coordinator(direct_chat_host, client, history)

    assert asyncio.run(coordinator.run()) == "the summary"
    assert coordinator.state == RunState.SUCCEEDED
    assert coordinator.is_running is False

    [record] = history.list_all()
    assert record.ai_response == "the summary"
    assert record.user_message == client.payloads[0]
    assert record.message_count == 2


def test_payload_carries_collected_messages(direct_chat_host, scripted_client):
    client = scripted_client()
    asyncio.run(_coordinator(direct_chat_host, client).run())
    [payload] = client.payloads
    assert payload.startswith("Summarize.\n\n")
    assert "Also, send the report" in payload
    assert payload.index("Also, send the report") < payload.index("Lunch tomorrow?")


def test_concurrent_run_is_rejected(direct_chat_host, scripted_client):
    client = scripted_client("done")
    coordinator = _coordinator(direct_chat_host, client)

    async def scenario():
        client.gate = asyncio.Event()
        first = asyncio.create_task(coordinator.run())
        await client.started.wait()
        assert coordinator.is_running
        with pytest.raises(AlreadyRunningError):
            await coordinator.run()
        client.gate.set()
        return await first

    assert asyncio.run(scenario()) == "done"
    assert len(client.payloads) == 1
    assert coordinator.is_running is False


def test_retryable_failures_are_retried(direct_chat_host, scripted_client):
    client = scripted_client(_timeout(), _timeout(), _timeout(), "finally")
    coordinator = _coordinator(direct_chat_host, client)

    assert asyncio.run(coordinator.run()) == "finally"
    assert coordinator.last_retry_count == 3
    assert len(client.payloads) == 4
    assert len(set(client.payloads)) == 1


def test_retry_budget_exhausted(direct_chat_host, scripted_client):
    client = scripted_client(ServerStatusError(502))
    coordinator = _coordinator(direct_chat_host, client, retry_budget=2)

    with pytest.raises(ServerStatusError):
        asyncio.run(coordinator.run())
    assert len(client.payloads) == 3
    assert coordinator.last_retry_count == 2
    assert coordinator.state == RunState.FAILED


def test_terminal_failure_is_not_retried(direct_chat_host, scripted_client, history):
    client = scripted_client(ServerStatusError(400), "never")
    coordinator = _coordinator(direct_chat_host, client, history)

    with pytest.raises(ServerStatusError):
        asyncio.run(coordinator.run())
    assert len(client.payloads) == 1
    assert coordinator.last_retry_count == 0
    assert history.count() == 0


def test_no_data_skips_network(scripted_client, history):
    host = InMemoryHost()
    host.add_conversation(HostConversation(peer_id="user:1", title="Quiet", kind=PeerKind.USER))
    client = scripted_client()
    coordinator = _coordinator(host, client, history)

    with pytest.raises(NoDataError):
        asyncio.run(coordinator.run())
    assert client.payloads == []
    assert history.count() == 0


def test_selection_failure_propagates(scripted_client):
    coordinator = _coordinator(FailingListHost(), scripted_client())
    with pytest.raises(SelectionError):
        asyncio.run(coordinator.run())
    assert coordinator.state == RunState.FAILED


def test_persistence_failure_still_returns_response(direct_chat_host, scripted_client, engine):
    coordinator = _coordinator(direct_chat_host, scripted_client("ok"), BrokenHistory(engine))
    assert asyncio.run(coordinator.run()) == "ok"


def test_guard_released_after_failure_by_default(direct_chat_host, scripted_client):
    client = scripted_client(ServerStatusError(400), "second try")
    coordinator = _coordinator(direct_chat_host, client)

    with pytest.raises(ServerStatusError):
        asyncio.run(coordinator.run())
    assert coordinator.is_running is False
    assert asyncio.run(coordinator.run()) == "second try"


def test_on_success_policy_holds_guard_until_reset(direct_chat_host, scripted_client):
    client = scripted_client(ServerStatusError(400), "after reset")
    coordinator = _coordinator(
        direct_chat_host, client, release_policy=ReleasePolicy.ON_SUCCESS
    )

    with pytest.raises(ServerStatusError):
        asyncio.run(coordinator.run())
    assert coordinator.is_running
    with pytest.raises(AlreadyRunningError):
        asyncio.run(coordinator.run())

    coordinator.reset()
    assert coordinator.state == RunState.IDLE
    assert asyncio.run(coordinator.run()) == "after reset"


def test_cancelled_run_releases_guard(direct_chat_host, scripted_client):
    client = scripted_client()
    coordinator = _coordinator(direct_chat_host, client)

    async def scenario():
        client.gate = asyncio.Event()
        task = asyncio.create_task(coordinator.run())
        await client.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert coordinator.is_running is False
    assert coordinator.state == RunState.FAILED


def test_single_flight_guard():
    guard = SingleFlightGuard()
    assert guard.try_acquire()
    assert not guard.try_acquire()
    guard.release()
    guard.release()
    assert guard.try_acquire()


def test_empty_host_raises_no_data_and_leaves_history_empty(scripted_client, history):
    client = scripted_client()
    coordinator = _coordinator(InMemoryHost(), client, history)

    with pytest.raises(NoDataError):
        asyncio.run(coordinator.run())
    assert client.payloads == []
    assert history.list_paginated(0, 50) == []


def test_large_group_messages_never_reach_payload(scripted_client, history):
    now = int(time.time())
    host = InMemoryHost()
    host.add_conversation(
        HostConversation(
            peer_id="group:big", title="Town Hall", kind=PeerKind.GROUP, member_count=60
        ),
        messages=[
            HostMessage(message_id=1, peer_id="group:big", timestamp=now - 30, text="big group chatter")
        ],
    )
    host.add_conversation(
        HostConversation(
            peer_id="group:small", title="Team", kind=PeerKind.GROUP, member_count=10
        ),
        messages=[
            HostMessage(message_id=1, peer_id="group:small", timestamp=now - 20, text="small group news")
        ],
    )
    client = scripted_client("summary")

    assert asyncio.run(_coordinator(host, client, history).run()) == "summary"
    [payload] = client.payloads
    assert "small group news" in payload
    assert "big group chatter" not in payload
    assert "group:big" not in payload
    assert history.list_all()[0].message_count == 1
