"""
Transport Channel - One real-time connection per participant.

A channel is bound to exactly one (session id, user id) pair once its
identify message is accepted. Sending is fire-and-forget: send() only
enqueues, so a slow or dead peer never holds up the authority or the
other participants. Messages on one channel leave in the order they
were enqueued. Closing is the only disconnect signal.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any
import asyncio
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


# Close codes (4000-4999 are reserved for applications)
CLOSE_NORMAL = 1000
CLOSE_SUPERSEDED = 4001
CLOSE_SESSION_ENDED = 4002
CLOSE_PROTOCOL_VIOLATION = 4400
CLOSE_SESSION_NOT_FOUND = 4404


class Channel(ABC):
    """
    Abstract connection handle.

    Subclasses deliver messages over a concrete transport.
    """

    def __init__(self):
        self.channel_id = str(uuid.uuid4())
        self.session_id: str | None = None
        self.user_id: str | None = None

    @property
    def is_identified(self) -> bool:
        return self.user_id is not None

    def bind(self, session_id: str, user_id: str):
        """Bind the channel to its identity after a successful identify."""
        self.session_id = session_id
        self.user_id = user_id

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel still accepts messages."""

    @abstractmethod
    def send(self, message: dict[str, Any]) -> bool:
        """
        Queue a message for delivery without waiting.

        Returns False if the message was not accepted.
        """

    @abstractmethod
    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        """Close the channel. Safe to call more than once."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.channel_id[:8]} user={self.user_id}>"


_CLOSE = object()


class WebSocketChannel(Channel):
    """
    Channel over a FastAPI/Starlette WebSocket.

    A writer task drains a bounded queue onto the socket. If the peer
    cannot keep up and the queue fills, or a write fails, the channel is
    closed; the rest of the session is unaffected.
    """

    def __init__(self, websocket: WebSocket, max_queue: int = 256):
        super().__init__()
        self.websocket = websocket
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._writer: asyncio.Task | None = None
        self._open = False
        self._socket_closed = False
        self._close_code = CLOSE_NORMAL
        self._close_reason = ""

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self):
        """Accept the socket and start the writer."""
        await self.websocket.accept()
        self._open = True
        self._writer = asyncio.create_task(self._drain())

    def send(self, message: dict[str, Any]) -> bool:
        if not self._open:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full on %r, dropping connection", self)
            self._begin_close(CLOSE_NORMAL, "too slow")
            return False
        return True

    def _begin_close(self, code: int, reason: str):
        """Stop accepting messages and let the writer finish what is queued."""
        if not self._open:
            return
        self._open = False
        self._close_code = code
        self._close_reason = reason
        if self._queue.full():
            # Writer is behind; drop the backlog so the close goes out next
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)

    async def _drain(self):
        try:
            while True:
                message = await self._queue.get()
                if message is _CLOSE:
                    break
                try:
                    await self.websocket.send_json(message)
                except Exception as e:
                    logger.info("Send failed on %r: %s", self, e)
                    self._open = False
                    break
        except asyncio.CancelledError:
            pass
        await self._close_socket()

    async def _close_socket(self):
        if self._socket_closed:
            return
        self._socket_closed = True
        try:
            await self.websocket.close(code=self._close_code, reason=self._close_reason)
        except (RuntimeError, OSError, WebSocketDisconnect):
            # Socket already closed by the peer
            pass

    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        self._begin_close(code, reason)
        writer = self._writer
        if writer is not None and writer is not asyncio.current_task():
            await asyncio.gather(writer, return_exceptions=True)
