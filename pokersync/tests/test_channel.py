"""
Tests for the WebSocket transport channel.

Tests:
- Ordered delivery and close
- Slow and failed peers are dropped without blocking others
"""

import asyncio

from ..engine_core.reducer import Reducer
from ..protocol.events import IdentifyPayload
from ..session.authority import SessionAuthority
from ..session.channel import CLOSE_NORMAL, CLOSE_SESSION_ENDED, WebSocketChannel
from .conftest import make_id_factory


class FakeWebSocket:
    """Stands in for a Starlette WebSocket."""

    def __init__(self, fail: bool = False, stall: bool = False):
        self.fail = fail
        self.stall = stall
        self.accepted = False
        self.sent: list[dict] = []
        self.close_calls: list[tuple[int, str]] = []

    @property
    def closed(self):
        return self.close_calls[0] if self.close_calls else None

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("peer went away")
        if self.stall:
            await asyncio.Event().wait()
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_calls.append((code, reason))


def message(n):
    return {"type": "votes_reset", "payload": {"itemId": f"item-{n}"}}


class TestWebSocketChannel:
    """Tests for WebSocketChannel."""

    def test_delivers_in_order_then_closes(self):
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws)

        async def scenario():
            await channel.open()
            for n in range(3):
                assert channel.send(message(n))
            await channel.close(CLOSE_SESSION_ENDED, "bye")

        asyncio.run(scenario())

        assert ws.accepted
        assert ws.sent == [message(0), message(1), message(2)]
        assert ws.closed == (CLOSE_SESSION_ENDED, "bye")
        assert not channel.is_open

    def test_close_is_idempotent(self):
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws)

        async def scenario():
            await channel.open()
            await channel.close()
            await channel.close(CLOSE_SESSION_ENDED)

        asyncio.run(scenario())

        assert ws.close_calls == [(CLOSE_NORMAL, "")]
        assert not channel.send(message(0))

    def test_failed_write_closes_socket(self):
        ws = FakeWebSocket(fail=True)
        channel = WebSocketChannel(ws)

        async def scenario():
            await channel.open()
            channel.send(message(0))
            await channel.close(CLOSE_SESSION_ENDED, "bye")

        asyncio.run(scenario())

        assert not channel.is_open
        assert ws.sent == []
        assert ws.closed == (CLOSE_SESSION_ENDED, "bye")

    def test_failed_write_closes_socket_without_close_call(self):
        ws = FakeWebSocket(fail=True)
        channel = WebSocketChannel(ws)

        async def scenario():
            await channel.open()
            channel.send(message(0))
            await channel._writer

        asyncio.run(scenario())

        assert not channel.is_open
        assert ws.closed == (CLOSE_NORMAL, "")
        assert not channel.send(message(1))

    def test_full_queue_before_writer_runs(self):
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws, max_queue=1)

        async def scenario():
            await channel.open()
            assert channel.send(message(0))
            assert not channel.send(message(1))
            await channel._writer

        asyncio.run(scenario())

        assert not channel.is_open
        assert ws.sent == []
        assert ws.closed == (CLOSE_NORMAL, "too slow")

    def test_stalled_peer_does_not_block_session(self, empty_session):
        fast_ws = FakeWebSocket()
        slow_ws = FakeWebSocket(stall=True)
        fast = WebSocketChannel(fast_ws)
        slow = WebSocketChannel(slow_ws, max_queue=4)
        authority = SessionAuthority(empty_session, reducer=Reducer(id_factory=make_id_factory()))

        async def scenario():
            await fast.open()
            await slow.open()
            await authority.identify(fast, IdentifyPayload(display_name="Alice"))
            await authority.identify(slow, IdentifyPayload(display_name="Bob"))
            for n in range(10):
                await authority.handle_message(fast, {"type": "add_item", "payload": {"title": f"Item {n}"}})
            await fast.close()

        asyncio.run(scenario())

        assert not slow.is_open
        assert slow_ws.closed == (CLOSE_NORMAL, "too slow")
        types = [m["type"] for m in fast_ws.sent]
        assert types[:3] == ["welcome", "user_joined", "user_joined"]
        assert types.count("item_added") == 10
        assert len(authority.session.items) == 10
