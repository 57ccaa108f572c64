"""Runs the summarization pipeline end to end, one run at a time."""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum

from chat_digest.client.base import BaseSummaryClient
from chat_digest.config import ReleasePolicy
from chat_digest.exceptions import (
    AlreadyRunningError,
    ChatDigestError,
    NetworkFailure,
    NoDataError,
)
from chat_digest.pipeline.collector import MessageCollector
from chat_digest.pipeline.request import RequestBuilder
from chat_digest.pipeline.selector import ConversationSelector
from chat_digest.storage.history import SummaryHistoryManager

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SingleFlightGuard:
    """Admits one holder at a time; losers are rejected, not queued."""

    def __init__(self):
        self._mutex = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        with self._mutex:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        with self._mutex:
            self._held = False

    @property
    def held(self) -> bool:
        return self._held


class SummarizationCoordinator:
    """Selection -> collection -> request -> send (with retry) -> persist.

    Args:
        selector: Picks the conversations to read.
        collector: Gathers and normalizes their messages of interest.
        builder: Turns the messages into the request payload.
        client: Performs the remote exchange.
        history: Where successful results are stored; None skips persistence.
        retry_budget: Re-sends allowed after retryable failures.
        retry_delay: Seconds between a failure and the next send.
        release_policy: When the single-flight guard is released.
    """

    def __init__(
        self,
        selector: ConversationSelector,
        collector: MessageCollector,
        builder: RequestBuilder,
        client: BaseSummaryClient,
        history: SummaryHistoryManager | None = None,
        retry_budget: int = 3,
        retry_delay: float = 2.0,
        release_policy: ReleasePolicy = ReleasePolicy.ALWAYS,
        guard: SingleFlightGuard | None = None,
    ):
        self.selector = selector
        self.collector = collector
        self.builder = builder
        self.client = client
        self.history = history
        self.retry_budget = retry_budget
        self.retry_delay = retry_delay
        self.release_policy = release_policy
        self._guard = guard or SingleFlightGuard()
        self._state = RunState.IDLE
        self.last_retry_count = 0

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._guard.held

    async def run(self) -> str:
        """Run the pipeline once and return the service's raw response.

        Raises:
            AlreadyRunningError: Another run holds the guard.
            SelectionError: The host's conversation list was unavailable.
            NoDataError: Nothing to summarize; no request was sent.
            NetworkFailure: Terminal failure or retry budget exhausted.
        """
        if not self._guard.try_acquire():
            raise AlreadyRunningError("A summarization run is already in progress")

        self._state = RunState.RUNNING
        succeeded = False
        try:
            response = await self._run_pipeline()
            succeeded = True
            self._state = RunState.SUCCEEDED
            return response
        except BaseException as e:
            self._state = RunState.FAILED
            logger.warning(f"Summarization run failed: {type(e).__name__}: {e}")
            raise
        finally:
            if succeeded or self.release_policy == ReleasePolicy.ALWAYS:
                self._guard.release()

    def reset(self) -> None:
        """Return to idle and release the guard, whatever the last outcome."""
        self._state = RunState.IDLE
        self._guard.release()

    async def _run_pipeline(self) -> str:
        conversations = await self.selector.select()
        items = await self.collector.collect(conversations)
        if not items:
            raise NoDataError("No unread messages found in the selected conversations")

        payload = self.builder.build(items)
        response = await self._send_with_retry(payload)
        await self._persist(payload, response, len(items))
        return response

    async def _send_with_retry(self, payload: str) -> str:
        retries = 0
        self.last_retry_count = 0
        while True:
            try:
                return await self.client.send(payload)
            except NetworkFailure as e:
                if not e.retryable:
                    raise
                if retries >= self.retry_budget:
                    logger.error(f"Giving up after {retries} retries: {e}")
                    raise
                retries += 1
                self.last_retry_count = retries
                logger.warning(
                    f"Summary request failed ({e}), retry {retries}/{self.retry_budget} "
                    f"in {self.retry_delay}s"
                )
                await asyncio.sleep(self.retry_delay)

    async def _persist(self, payload: str, response: str, message_count: int) -> None:
        if self.history is None:
            return
        try:
            await asyncio.to_thread(self.history.add_summary, payload, response, message_count)
        except ChatDigestError:
            logger.exception("Failed to store summary; returning the response anyway")
