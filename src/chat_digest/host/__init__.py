"""Messaging host boundary and bundled host implementations."""

from chat_digest.host.base import MessagingHost
from chat_digest.host.imessage import IMessageHost
from chat_digest.host.memory import InMemoryHost

__all__ = ["MessagingHost", "IMessageHost", "InMemoryHost"]
