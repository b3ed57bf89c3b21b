"""
Pytest fixtures for pokersync tests.
"""

import itertools

import pytest

from ..engine_core.reducer import Reducer
from ..engine_core.state import PlanningItem, Session, User
from ..session.channel import CLOSE_NORMAL, Channel


class RecordingChannel(Channel):
    """In-memory channel that records everything sent to it."""

    def __init__(self, accept: bool = True):
        super().__init__()
        self.sent: list[dict] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._open = True
        self._accept = accept

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, message: dict) -> bool:
        if not self._open or not self._accept:
            return False
        self.sent.append(message)
        return True

    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        if not self._open:
            return
        self._open = False
        self.close_code = code
        self.close_reason = reason

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent]

    def of_type(self, tag: str) -> list[dict]:
        return [message for message in self.sent if message["type"] == tag]

    def last(self, tag: str) -> dict:
        return self.of_type(tag)[-1]

    def clear(self):
        self.sent.clear()


def make_id_factory(prefix: str = "id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def reducer() -> Reducer:
    """Reducer with predictable ids."""
    return Reducer(id_factory=make_id_factory())


@pytest.fixture
def empty_session() -> Session:
    """A session nobody has joined yet."""
    return Session(session_id="s1", name="Sprint 12")


@pytest.fixture
def planning_session() -> Session:
    """
    Three connected users and two items.

    alice hosts; item-1 is in focus and collecting votes.
    """
    return Session(
        session_id="s1",
        name="Sprint 12",
        host_id="alice",
        users={
            "alice": User("alice", "Alice", is_host=True, connected=True, connected_seq=1),
            "bob": User("bob", "Bob", connected=True, connected_seq=2),
            "carol": User("carol", "Carol", connected=True, connected_seq=3),
        },
        items=[
            PlanningItem("item-1", "Login page"),
            PlanningItem("item-2", "Signup flow"),
        ],
        current_item_id="item-1",
        connection_counter=3,
    )
