"""Unified exception hierarchy for chat-digest."""

from __future__ import annotations

from enum import Enum


class ChatDigestError(Exception):
    """Base exception for all chat-digest errors."""


# Configuration
class ConfigurationError(ChatDigestError):
    """Invalid or missing configuration."""


class NotConfiguredError(ConfigurationError):
    """Operation attempted before the component was bound to its storage engine."""


# Host messaging engine
class HostError(ChatDigestError):
    """Base exception for host messaging engine operations."""


class HostReadError(HostError):
    """Failed to read conversations or messages from the host."""


# Pipeline
class SelectionError(ChatDigestError):
    """Conversation selection could not complete."""


class NoDataError(ChatDigestError):
    """No messages of interest were found; nothing to summarize."""


class AlreadyRunningError(ChatDigestError):
    """A summarization run is already in progress."""


# Storage
class StorageError(ChatDigestError):
    """Base exception for persistence operations."""


class RecordNotFoundError(StorageError):
    """No stored record matches the requested id."""


# Network
class TransportReason(str, Enum):
    """Underlying cause of a transport-level failure."""

    TIMED_OUT = "timed_out"
    CANNOT_CONNECT = "cannot_connect"
    CONNECTION_LOST = "connection_lost"
    NOT_CONNECTED = "not_connected"
    OTHER = "other"


RETRYABLE_TRANSPORT_REASONS = frozenset({
    TransportReason.TIMED_OUT,
    TransportReason.CANNOT_CONNECT,
    TransportReason.CONNECTION_LOST,
    TransportReason.NOT_CONNECTED,
})


class NetworkFailure(ChatDigestError):
    """Base exception for the exchange with the remote summarization service."""

    kind = "network"

    @property
    def retryable(self) -> bool:
        return False


class InvalidEndpointError(NetworkFailure):
    """The configured endpoint is not a usable http(s) URL."""

    kind = "invalid_endpoint"


class NoResponseBodyError(NetworkFailure):
    """The service answered without a body."""

    kind = "no_response_body"


class DecodeFailureError(NetworkFailure):
    """The response body could not be decoded as UTF-8."""

    kind = "decode_failure"


class TransportFailureError(NetworkFailure):
    """The request failed below HTTP (timeouts, refused or dropped connections)."""

    kind = "transport_failure"

    def __init__(
        self,
        message: str,
        reason: TransportReason = TransportReason.OTHER,
        underlying: BaseException | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.underlying = underlying

    @property
    def retryable(self) -> bool:
        return self.reason in RETRYABLE_TRANSPORT_REASONS


class ServerStatusError(NetworkFailure):
    """The service answered with a non-2xx status."""

    kind = "server_status"

    def __init__(self, status_code: int, message: str | None = None):
        super().__init__(message or f"Server error with code: {status_code}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500
