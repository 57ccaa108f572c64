"""Tests for message collection and normalization."""

import asyncio

from chat_digest.host.memory import InMemoryHost
from chat_digest.models import (
    ChatType,
    HostConversation,
    HostMessage,
    Media,
    MediaKind,
    PeerKind,
    ReadState,
)
from chat_digest.pipeline.collector import (
    EMPTY_PLACEHOLDER,
    UNKNOWN_SENDER,
    MessageCollector,
    is_of_interest,
    render_content,
)

NOW = 1_700_000_000
DAY = 86400


def _msg(message_id, timestamp, text="hi", peer_id="user:1", **kwargs):
    return HostMessage(
        message_id=message_id, peer_id=peer_id, timestamp=timestamp,
        author_id="1", author_name="Bob", text=text, **kwargs,
    )


def _host_with(messages, read_state=None, peer_id="user:1", kind=PeerKind.USER):
    host = InMemoryHost()
    host.add_conversation(
        HostConversation(peer_id=peer_id, title="Bob", kind=kind),
        messages=messages,
        read_state=read_state,
    )
    return host


def _collect(host, **kwargs):
    collector = MessageCollector(host, **kwargs)
    conversations = asyncio.run(host.list_conversations())
    return asyncio.run(collector.collect(conversations, now=NOW))


def test_read_state_filters_seen_messages():
    host = _host_with(
        [_msg(i, NOW - 100 + i) for i in range(1, 6)],
        read_state=ReadState(max_incoming_read_id=3),
    )
    items = _collect(host)
    assert [i.message_id for i in items] == [5, 4]


def test_no_read_state_keeps_all_recent():
    host = _host_with([_msg(1, NOW - 10), _msg(2, NOW - 5)])
    assert [i.message_id for i in _collect(host)] == [2, 1]


def test_lookback_window_excludes_old_messages():
    host = _host_with([_msg(1, NOW - 8 * DAY), _msg(2, NOW - 6 * DAY)])
    assert [i.message_id for i in _collect(host)] == [2]
    assert [i.message_id for i in _collect(host, lookback_days=9)] == [2, 1]


def test_history_window_limits_fetch():
    host = _host_with([_msg(i, NOW - 100 + i) for i in range(1, 11)])
    assert [i.message_id for i in _collect(host, history_window=3)] == [10, 9, 8]


def test_items_are_sorted_across_conversations():
    host = InMemoryHost()
    host.add_conversation(
        HostConversation(peer_id="user:1", title="Bob", kind=PeerKind.USER),
        messages=[_msg(1, NOW - 30), _msg(2, NOW - 10)],
    )
    host.add_conversation(
        HostConversation(peer_id="group:1", title="Team", kind=PeerKind.GROUP, member_count=4),
        messages=[_msg(7, NOW - 20, peer_id="group:1")],
    )
    items = _collect(host)
    assert [(i.chat_id, i.message_id) for i in items] == [
        ("user:1", 2), ("group:1", 7), ("user:1", 1),
    ]
    assert items[1].chat_type == ChatType.GROUP
    assert items[0].chat_type == ChatType.PRIVATE


def test_slow_conversation_is_excluded():
    class SlowHost(InMemoryHost):
        async def fetch_history(self, peer_id, limit):
            if peer_id == "user:slow":
                await asyncio.sleep(10)
            return await super().fetch_history(peer_id, limit)

    host = SlowHost()
    host.add_conversation(
        HostConversation(peer_id="user:slow", title="Slow", kind=PeerKind.USER),
        messages=[_msg(1, NOW - 5, peer_id="user:slow")],
    )
    host.add_conversation(
        HostConversation(peer_id="user:fast", title="Fast", kind=PeerKind.USER),
        messages=[_msg(1, NOW - 5, peer_id="user:fast")],
    )
    items = _collect(host, branch_timeout=0.05)
    assert [i.chat_id for i in items] == ["user:fast"]


def test_failing_conversation_is_excluded():
    host = _host_with([_msg(1, NOW - 5)])
    conversations = asyncio.run(host.list_conversations())
    conversations.append(HostConversation(peer_id="gone", title="Gone", kind=PeerKind.USER))
    items = asyncio.run(MessageCollector(host).collect(conversations, now=NOW))
    assert [i.chat_id for i in items] == ["user:1"]


def test_normalized_item_fields():
    host = _host_with([_msg(9, NOW - 5, text="  hello  ")])
    [item] = _collect(host)
    assert item.to_dict() == {
        "chatId": "user:1",
        "chatTitle": "Bob",
        "chatType": "private",
        "senderId": "1",
        "senderName": "Bob",
        "date": NOW - 5,
        "messageId": 9,
        "content": "hello",
    }


def test_missing_sender_name_uses_fallback():
    message = HostMessage(message_id=1, peer_id="user:1", timestamp=NOW - 5, text="x")
    [item] = _collect(_host_with([message]))
    assert item.sender_name == UNKNOWN_SENDER


def test_render_content_placeholders():
    photo = _msg(1, 0, text="look", media=[Media(MediaKind.IMAGE)])
    assert render_content(photo) == "look [image]"

    link = _msg(1, 0, text="", media=[Media(MediaKind.LINK, title="Docs")])
    assert render_content(link) == "[link: Docs]"

    bare_link = _msg(1, 0, text="", media=[Media(MediaKind.LINK)])
    assert render_content(bare_link) == "[link]"

    other = _msg(1, 0, text="", media=[Media(MediaKind.OTHER)])
    assert render_content(other) == "[media]"


def test_render_content_forwarded():
    named = _msg(1, 0, text="news", forwarded_from="Carol")
    assert render_content(named) == "[forwarded from Carol] news"

    hidden = _msg(1, 0, text="", forwarded_from="")
    assert render_content(hidden) == "[forwarded]"


def test_render_content_empty_message():
    assert render_content(_msg(1, 0, text="   ")) == EMPTY_PLACEHOLDER


def test_is_of_interest():
    message = _msg(5, 100)
    assert is_of_interest(message, None, since=50)
    assert not is_of_interest(message, None, since=101)
    assert is_of_interest(message, ReadState(4), since=0)
    assert not is_of_interest(message, ReadState(5), since=0)
