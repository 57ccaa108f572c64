"""Abstract base class for summarization backends."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseSummaryClient(ABC):
    """One request/response exchange with a summarization service."""

    @abstractmethod
    async def send(self, payload: str) -> str:
        """Send ``payload`` and return the raw response text.

        Raises:
            NetworkFailure: A subclass describing why the exchange failed;
                its ``retryable`` property tells the caller whether to retry.
        """
        ...

    async def aclose(self) -> None:
        pass
