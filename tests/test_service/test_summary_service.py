"""End-to-end tests for the caller-facing summary service."""

import asyncio

import pytest

from chat_digest.config import SummarizerSettings
from chat_digest.exceptions import (
    AlreadyRunningError,
    InvalidEndpointError,
    NoDataError,
    RecordNotFoundError,
    ServerStatusError,
    TransportFailureError,
    TransportReason,
)
from chat_digest.service import SummaryService, describe_failure


@pytest.fixture
def service_factory(direct_chat_host, engine):
    def build(client, **settings):
        settings.setdefault("retry_delay", 0)
        return SummaryService.from_settings(
            direct_chat_host,
            settings=SummarizerSettings(**settings),
            client=client,
            engine=engine,
        )

    return build


def test_run_then_read_history(service_factory, scripted_client):
    client = scripted_client("summary: lunch and report")
    service = service_factory(client)

    assert service.run_summarization_sync() == "summary: lunch and report"

    records = asyncio.run(service.get_history())
    assert len(records) == 1
    assert records[0].ai_response == "summary: lunch and report"
    assert records[0].message_count == 2
    assert asyncio.run(service.get_count()) == 1


def test_run_recovers_from_transient_failures(service_factory, scripted_client):
    failure = TransportFailureError("dropped", reason=TransportReason.CONNECTION_LOST)
    client = scripted_client(failure, failure, "recovered")
    service = service_factory(client)

    assert service.run_summarization_sync() == "recovered"
    assert service.coordinator.last_retry_count == 2
    assert asyncio.run(service.get_count()) == 1


def test_delete_and_clear(service_factory, scripted_client):
    service = service_factory(scripted_client("a"))
    service.run_summarization_sync()
    service.run_summarization_sync()
    [newest, oldest] = asyncio.run(service.get_history())

    asyncio.run(service.delete_record(oldest.id))
    assert [r.id for r in asyncio.run(service.get_history())] == [newest.id]

    with pytest.raises(RecordNotFoundError):
        asyncio.run(service.delete_record(oldest.id))

    asyncio.run(service.clear_all())
    assert asyncio.run(service.get_count()) == 0


def test_submit_reports_result_once(service_factory, scripted_client):
    service = service_factory(scripted_client("async summary"))
    results = []

    async def scenario():
        handle = service.submit_summarization(lambda r, e: results.append((r, e)))
        await handle.wait()
        await asyncio.sleep(0)
        return handle

    handle = asyncio.run(scenario())
    assert handle.done()
    assert results == [("async summary", None)]


def test_submit_reports_error(service_factory, scripted_client):
    service = service_factory(scripted_client(ServerStatusError(400)))
    results = []

    async def scenario():
        handle = service.submit_summarization(lambda r, e: results.append((r, e)))
        await handle.wait()
        await asyncio.sleep(0)

    asyncio.run(scenario())
    [(result, error)] = results
    assert result is None
    assert isinstance(error, ServerStatusError)


def test_cancelled_run_never_calls_back(service_factory, scripted_client):
    client = scripted_client("too late")
    service = service_factory(client)
    results = []

    async def scenario():
        client.gate = asyncio.Event()
        handle = service.submit_summarization(lambda r, e: results.append((r, e)))
        await client.started.wait()
        handle.cancel()
        handle.cancel()
        await handle.wait()
        await asyncio.sleep(0)
        return handle

    handle = asyncio.run(scenario())
    assert handle.cancelled
    assert results == []
    assert service.coordinator.is_running is False
    assert asyncio.run(service.get_count()) == 0


def test_watch_history_polls_until_cancelled(service_factory, scripted_client):
    service = service_factory(scripted_client("watched"))
    snapshots = []

    async def scenario():
        await service.run_summarization()
        poller = service.watch_history(snapshots.append, interval=0.01)
        await asyncio.sleep(0.1)
        poller.cancel()
        poller.cancel()
        await asyncio.sleep(0.02)
        seen = len(snapshots)
        await asyncio.sleep(0.05)
        return poller, seen

    poller, seen = asyncio.run(scenario())
    assert poller.cancelled
    assert seen >= 1
    assert len(snapshots) == seen
    assert [r.ai_response for r in snapshots[0]] == ["watched"]


def test_from_settings_builds_default_http_client(direct_chat_host, engine):
    settings = SummarizerSettings(endpoint_url="http://summarizer.test/generate")
    service = SummaryService.from_settings(direct_chat_host, settings=settings, engine=engine)
    assert service.coordinator.client.endpoint_url == "http://summarizer.test/generate"
    assert service.coordinator.retry_budget == 3
    asyncio.run(service.aclose())


@pytest.mark.parametrize(
    "error, fragment",
    [
        (TransportFailureError("x", reason=TransportReason.TIMED_OUT), "timed out"),
        (TransportFailureError("x", reason=TransportReason.NOT_CONNECTED), "No network"),
        (TransportFailureError("reset", reason=TransportReason.CONNECTION_LOST), "reset"),
        (ServerStatusError(503), "503"),
        (InvalidEndpointError("bad"), "invalid"),
        (NoDataError("none"), "no unread messages"),
        (AlreadyRunningError("busy"), "already"),
        (RuntimeError("odd"), "odd"),
    ],
)
def test_describe_failure(error, fragment):
    assert fragment in describe_failure(error)


def test_watch_history_survives_callback_errors(service_factory, scripted_client):
    service = service_factory(scripted_client("watched"))
    calls = []

    def flaky(records):
        calls.append(records)
        raise RuntimeError("consumer broke")

    async def scenario():
        poller = service.watch_history(flaky, interval=0.01)
        await asyncio.sleep(0.1)
        poller.cancel()

    asyncio.run(scenario())
    assert len(calls) > 1
