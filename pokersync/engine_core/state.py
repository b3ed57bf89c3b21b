"""
Session State - Canonical representation of one planning session.

Design principles:
- Immutable-friendly: all mutations return new state
- Insertion order is meaningful (users = join order, items = creation order)
- Invariants are checkable at any time via Session.check_invariants()

Only the authority reducer produces new Session values. Every other
component works on snapshots derived from them.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


# Available card values for planning poker
CARD_VALUES: tuple[str, ...] = (
    "0", "1", "2", "3", "5", "8", "13", "21", "34", "55", "89", "?",
)

# Sentinel token for a participant who deliberately sits out an item
ABSTAIN_TOKEN = "abstain"


@dataclass
class User:
    """
    A participant in a session.

    connected_seq orders connections: the lower the value, the longer the
    user has been continuously connected.
    """
    user_id: str
    name: str
    is_host: bool = False
    connected: bool = False
    connected_seq: int = 0

    def with_connection(self, connected: bool, seq: int | None = None) -> User:
        """Return new user with updated connection status."""
        return replace(
            self,
            connected=connected,
            connected_seq=self.connected_seq if seq is None else seq,
        )

    def with_host(self, is_host: bool) -> User:
        return replace(self, is_host=is_host)


@dataclass
class PlanningItem:
    """A single unit of work being estimated."""
    item_id: str
    title: str
    description: str = ""
    votes: dict[str, str] = field(default_factory=dict)  # user_id -> token
    revealed: bool = False
    final_estimate: str | None = None

    def has_voted(self, user_id: str) -> bool:
        return user_id in self.votes

    def with_vote(self, user_id: str, token: str) -> PlanningItem:
        """Return new item with the user's vote set (overwrites)."""
        new_votes = self.votes.copy()
        new_votes[user_id] = token
        return replace(self, votes=new_votes)

    def without_vote(self, user_id: str) -> PlanningItem:
        if user_id not in self.votes:
            return self
        new_votes = {uid: token for uid, token in self.votes.items() if uid != user_id}
        return replace(self, votes=new_votes)

    def revealed_copy(self) -> PlanningItem:
        return replace(self, votes=self.votes.copy(), revealed=True)

    def reset_copy(self) -> PlanningItem:
        """Return new item with votes cleared. Final estimate is kept."""
        return replace(self, votes={}, revealed=False)

    def with_final_estimate(self, estimate: str) -> PlanningItem:
        return replace(self, votes=self.votes.copy(), final_estimate=estimate)


@dataclass
class Session:
    """
    Complete session state at a point in time.

    This is the canonical state that the authority operates on.
    All state changes go through the reducer.
    """
    session_id: str
    name: str
    host_id: str | None = None

    users: dict[str, User] = field(default_factory=dict)
    items: list[PlanningItem] = field(default_factory=list)
    current_item_id: str | None = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Incremented on every accepted connection
    connection_counter: int = 0

    @property
    def host(self) -> User | None:
        if self.host_id is None:
            return None
        return self.users.get(self.host_id)

    @property
    def current_item(self) -> PlanningItem | None:
        """Get the item currently in focus."""
        if self.current_item_id is None:
            return None
        return self.get_item(self.current_item_id)

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def get_item(self, item_id: str) -> PlanningItem | None:
        """Get item by ID."""
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def is_host(self, user_id: str | None) -> bool:
        return user_id is not None and user_id == self.host_id

    def connected_users(self) -> list[User]:
        """Connected users, longest connected first."""
        users = [u for u in self.users.values() if u.connected]
        return sorted(users, key=lambda u: u.connected_seq)

    def find_user_by_name(self, name: str, exclude_user_id: str | None = None) -> User | None:
        """Case-insensitive display name lookup."""
        wanted = name.strip().casefold()
        for user in self.users.values():
            if user.user_id == exclude_user_id:
                continue
            if user.name.strip().casefold() == wanted:
                return user
        return None

    def with_user(self, user: User) -> Session:
        """Return new state with the user added or replaced (order kept)."""
        new_users = self.users.copy()
        new_users[user.user_id] = user
        return self._copy_with(users=new_users)

    def without_user(self, user_id: str) -> Session:
        """Return new state with the user and all of their votes removed."""
        new_users = {uid: u for uid, u in self.users.items() if uid != user_id}
        new_items = [item.without_vote(user_id) for item in self.items]
        return self._copy_with(users=new_users, items=new_items)

    def with_item(self, item: PlanningItem) -> Session:
        """Return new state with the item replaced, or appended if new."""
        new_items = []
        replaced = False
        for existing in self.items:
            if existing.item_id == item.item_id:
                new_items.append(item)
                replaced = True
            else:
                new_items.append(existing)
        if not replaced:
            new_items.append(item)
        return self._copy_with(items=new_items)

    def with_host(self, user_id: str | None) -> Session:
        """Return new state with host privileges moved to user_id."""
        new_users = {
            uid: u.with_host(uid == user_id) if u.is_host != (uid == user_id) else u
            for uid, u in self.users.items()
        }
        return self._copy_with(users=new_users, host_id=user_id)

    def next_connection_seq(self) -> tuple[int, Session]:
        """Allocate a connection sequence number."""
        seq = self.connection_counter + 1
        return seq, self._copy_with(connection_counter=seq)

    def check_invariants(self) -> list[str]:
        """
        Check referential integrity of the state.

        Returns a list of human-readable violations (empty if valid).
        """
        violations = []

        if self.users:
            if self.host_id not in self.users:
                violations.append(f"host_id {self.host_id} is not a session user")
            hosts = [u.user_id for u in self.users.values() if u.is_host]
            if len(hosts) != 1:
                violations.append(f"expected exactly one host, found {len(hosts)}")
            elif hosts[0] != self.host_id:
                violations.append(f"is_host flag on {hosts[0]} but host_id is {self.host_id}")
        elif self.host_id is not None:
            violations.append(f"host_id {self.host_id} set on an empty session")

        if self.current_item_id is not None and self.get_item(self.current_item_id) is None:
            violations.append(f"current_item_id {self.current_item_id} is not a session item")

        seen_items = set()
        for item in self.items:
            if item.item_id in seen_items:
                violations.append(f"duplicate item id {item.item_id}")
            seen_items.add(item.item_id)
            for user_id in item.votes:
                if user_id not in self.users:
                    violations.append(f"vote on {item.item_id} from unknown user {user_id}")

        return violations

    def _copy_with(self, **kwargs) -> Session:
        """Create a copy with some fields replaced."""
        return Session(
            session_id=kwargs.get("session_id", self.session_id),
            name=kwargs.get("name", self.name),
            host_id=kwargs.get("host_id", self.host_id),
            users=kwargs.get("users", self.users),
            items=kwargs.get("items", self.items),
            current_item_id=kwargs.get("current_item_id", self.current_item_id),
            created_at=kwargs.get("created_at", self.created_at),
            connection_counter=kwargs.get("connection_counter", self.connection_counter),
        )
