"""
Client Module - Participant-side view of a session.

The projection reducer is pure and runs without any connection; the
connection handle wires it to a transport.
"""

from .projection import Projection, reduce_event, fold
from .connection import ClientConnection, Transport

__all__ = [
    "Projection",
    "reduce_event",
    "fold",
    "ClientConnection",
    "Transport",
]
