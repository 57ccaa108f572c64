"""Clients for the remote summarization service."""

from chat_digest.client.base import BaseSummaryClient
from chat_digest.client.claude import AnthropicSummaryClient
from chat_digest.client.http import HttpSummaryClient, classify_transport_error

__all__ = [
    "BaseSummaryClient",
    "AnthropicSummaryClient",
    "HttpSummaryClient",
    "classify_transport_error",
]
