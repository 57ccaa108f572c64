"""HTTP client for the remote summarization endpoint."""

from __future__ import annotations

import asyncio
import errno
import logging
import uuid
from urllib.parse import urlparse

import httpx

from chat_digest.client.base import BaseSummaryClient
from chat_digest.config import DEFAULT_ENDPOINT
from chat_digest.exceptions import (
    DecodeFailureError,
    InvalidEndpointError,
    NetworkFailure,
    NoResponseBodyError,
    ServerStatusError,
    TransportFailureError,
    TransportReason,
)

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = {"http", "https"}

_OFFLINE_ERRNOS = {errno.ENETUNREACH, errno.ENETDOWN}

REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
}


def _validate_endpoint(url: str) -> str | None:
    """Return an error message when ``url`` is not a usable endpoint."""
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return "Invalid URL format"
    if parsed.scheme not in _ALLOWED_SCHEMES:
        return f"Unsupported URL scheme: {parsed.scheme!r}. Only http/https allowed."
    if not parsed.hostname:
        return "URL has no hostname"
    return None


def _is_offline(exc: BaseException) -> bool:
    cause = exc.__cause__ or exc.__context__
    seen = 0
    while cause is not None and seen < 5:
        if isinstance(cause, OSError) and cause.errno in _OFFLINE_ERRNOS:
            return True
        cause = cause.__cause__ or cause.__context__
        seen += 1
    return False


def classify_transport_error(exc: Exception) -> NetworkFailure:
    """Map an httpx exception onto the failure taxonomy."""
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return InvalidEndpointError(f"Invalid endpoint: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        reason = TransportReason.TIMED_OUT
    elif isinstance(exc, httpx.ConnectError):
        reason = TransportReason.NOT_CONNECTED if _is_offline(exc) else TransportReason.CANNOT_CONNECT
    elif isinstance(exc, (httpx.ReadError, httpx.WriteError, httpx.CloseError, httpx.RemoteProtocolError)):
        reason = TransportReason.CONNECTION_LOST
    else:
        reason = TransportReason.OTHER
    return TransportFailureError(f"Network error: {exc}", reason=reason, underlying=exc)


class HttpSummaryClient(BaseSummaryClient):
    """POSTs the payload as a single user message and returns the body as text.

    Args:
        endpoint_url: Full URL of the ``/generate`` endpoint.
        request_timeout: httpx timeout applied to connect/read/write.
        resource_timeout: Deadline for the whole exchange.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        endpoint_url: str = DEFAULT_ENDPOINT,
        request_timeout: float = 120.0,
        resource_timeout: float = 300.0,
        transport=None,
    ):
        self.endpoint_url = endpoint_url
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout
        self._transport = transport

    @staticmethod
    def build_body(payload: str) -> dict:
        return {
            "messages": [
                {"id": str(uuid.uuid4()), "role": "user", "content": payload},
            ]
        }

    async def send(self, payload: str) -> str:
        error = _validate_endpoint(self.endpoint_url)
        if error:
            raise InvalidEndpointError(error)

        try:
            response = await asyncio.wait_for(
                self._post(self.build_body(payload)),
                self.resource_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportFailureError(
                f"Request exceeded {self.resource_timeout}s",
                reason=TransportReason.TIMED_OUT,
                underlying=e,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise classify_transport_error(e) from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"Summary endpoint returned {response.status_code}")
            raise ServerStatusError(response.status_code)

        if not response.content:
            raise NoResponseBodyError("No data received")

        try:
            text = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeFailureError("Failed to decode response") from e

        logger.debug(f"Summary endpoint returned {len(text)} characters")
        return text

    async def _post(self, body: dict) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.request_timeout,
            transport=self._transport,
        ) as client:
            return await client.post(
                self.endpoint_url,
                json=body,
                headers=REQUEST_HEADERS,
            )
