"""
Session Module - Live planning sessions.

A session represents one planning meeting:
- Created when a host starts it
- Owned by a single authority that serializes every intent
- Joined by participants over one channel each
- Destroyed when ended or idle

Sessions are EPHEMERAL:
- No persistence to database
- All state lives in process memory
"""

from .channel import Channel, WebSocketChannel
from .authority import SessionAuthority
from .manager import SessionManager

__all__ = [
    "Channel",
    "WebSocketChannel",
    "SessionAuthority",
    "SessionManager",
]
