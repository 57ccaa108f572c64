"""Caller-facing API: trigger runs, read back and manage the summary history."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_digest.client.base import BaseSummaryClient
from chat_digest.client.http import HttpSummaryClient
from chat_digest.config import SummarizerSettings
from chat_digest.coordinator import SummarizationCoordinator
from chat_digest.exceptions import (
    AlreadyRunningError,
    ChatDigestError,
    DecodeFailureError,
    InvalidEndpointError,
    NoDataError,
    NoResponseBodyError,
    ServerStatusError,
    TransportFailureError,
    TransportReason,
)
from chat_digest.host.base import MessagingHost
from chat_digest.models import SummaryRecord
from chat_digest.pipeline.collector import MessageCollector
from chat_digest.pipeline.prompts import CustomizationTemplate
from chat_digest.pipeline.request import RequestBuilder
from chat_digest.pipeline.selector import ConversationSelector
from chat_digest.storage.engine import KeyValueEngine, SQLiteKeyValueEngine
from chat_digest.storage.history import SummaryHistoryManager

logger = logging.getLogger(__name__)

RunCallback = Callable[[str | None, BaseException | None], None]
HistoryCallback = Callable[[list[SummaryRecord]], None]


def describe_failure(exc: BaseException) -> str:
    """A human-readable message for a failed run, by failure category."""
    if isinstance(exc, TransportFailureError):
        if exc.reason == TransportReason.TIMED_OUT:
            return "The request timed out. Check your network connection and try again."
        if exc.reason == TransportReason.NOT_CONNECTED:
            return "No network connection is available. Check your network settings."
        return f"Network connection problem: {exc}"
    if isinstance(exc, ServerStatusError):
        return f"Server error ({exc.status_code}), please try again later."
    if isinstance(exc, InvalidEndpointError):
        return "The request address is invalid."
    if isinstance(exc, NoResponseBodyError):
        return "The server returned no data."
    if isinstance(exc, DecodeFailureError):
        return "The server response could not be read."
    if isinstance(exc, NoDataError):
        return "There are no unread messages to summarize."
    if isinstance(exc, AlreadyRunningError):
        return "A summary is already being generated."
    return f"Failed to get chat summary: {exc}"


class RunHandle:
    """A scheduled summarization run that reports once through ``on_done``.

    ``cancel()`` may be called any number of times; after the first call
    ``on_done`` is never invoked.
    """

    def __init__(self, task: asyncio.Task, on_done: RunCallback):
        self._task = task
        self._on_done = on_done
        self._cancelled = False
        task.add_done_callback(self._finish)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()

    async def wait(self) -> None:
        """Wait until the run has finished or been cancelled."""
        await asyncio.wait({self._task})

    def _finish(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if self._cancelled:
            return
        if error is None:
            self._on_done(task.result(), None)
        else:
            self._on_done(None, error)


class HistoryPoller:
    """Re-reads the first history page on a fixed interval."""

    def __init__(
        self,
        service: "SummaryService",
        callback: HistoryCallback,
        interval: float = 2.0,
        page_size: int = 50,
    ):
        self._service = service
        self._callback = callback
        self.interval = interval
        self.page_size = page_size
        self._task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> "HistoryPoller":
        if self._task is None and not self._cancelled:
            self._task = asyncio.get_running_loop().create_task(self._poll())
        return self

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _poll(self) -> None:
        while True:
            try:
                records = await self._service.get_history(0, self.page_size)
            except ChatDigestError as e:
                logger.warning(f"History poll failed: {e}")
            else:
                try:
                    self._callback(records)
                except Exception:
                    logger.exception("History callback failed")
            await asyncio.sleep(self.interval)


class SummaryService:
    """Wires the pipeline to the history store and exposes both to callers."""

    def __init__(
        self,
        coordinator: SummarizationCoordinator,
        history: SummaryHistoryManager,
    ):
        self.coordinator = coordinator
        self.history = history

    @classmethod
    def from_settings(
        cls,
        host: MessagingHost,
        settings: SummarizerSettings | None = None,
        client: BaseSummaryClient | None = None,
        engine: KeyValueEngine | None = None,
        template: CustomizationTemplate | None = None,
    ) -> "SummaryService":
        settings = settings or SummarizerSettings.from_env()
        engine = engine or SQLiteKeyValueEngine(settings.db_path)
        history = SummaryHistoryManager().bind(engine)
        client = client or HttpSummaryClient(
            endpoint_url=settings.endpoint_url,
            request_timeout=settings.request_timeout,
            resource_timeout=settings.resource_timeout,
        )
        coordinator = SummarizationCoordinator(
            selector=ConversationSelector(
                host,
                member_threshold=settings.group_member_threshold,
                branch_timeout=settings.branch_timeout,
            ),
            collector=MessageCollector(
                host,
                history_window=settings.history_window,
                lookback_days=settings.lookback_days,
                branch_timeout=settings.branch_timeout,
            ),
            builder=RequestBuilder(language=settings.prompt_language, template=template),
            client=client,
            history=history,
            retry_budget=settings.retry_budget,
            retry_delay=settings.retry_delay,
            release_policy=settings.release_policy,
        )
        return cls(coordinator, history)

    # ------------------------------------------------------------------
    # Summarization
    # ------------------------------------------------------------------

    async def run_summarization(self) -> str:
        return await self.coordinator.run()

    def run_summarization_sync(self) -> str:
        return asyncio.run(self.run_summarization())

    def submit_summarization(self, on_done: RunCallback) -> RunHandle:
        """Schedule a run on the current loop; ``on_done(result, error)`` fires once."""
        task = asyncio.get_running_loop().create_task(self.run_summarization())
        return RunHandle(task, on_done)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_history(self, page: int = 0, page_size: int = 20) -> list[SummaryRecord]:
        records = await asyncio.to_thread(self.history.list_paginated, page, page_size)
        logger.debug(f"History page {page}: {len(records)} records")
        return records

    async def get_count(self) -> int:
        return await asyncio.to_thread(self.history.count)

    async def delete_record(self, record_id: str) -> None:
        await asyncio.to_thread(self.history.delete_by_id, record_id)

    async def clear_all(self) -> None:
        await asyncio.to_thread(self.history.clear_all)

    def watch_history(
        self,
        callback: HistoryCallback,
        interval: float = 2.0,
        page_size: int = 50,
    ) -> HistoryPoller:
        """Start polling the first history page; cancel the returned poller to stop."""
        return HistoryPoller(self, callback, interval=interval, page_size=page_size).start()

    async def aclose(self) -> None:
        await self.coordinator.client.aclose()
