"""
pokersync - Real-time planning poker session engine.

A host creates a session, participants join over a WebSocket, the host
drives focus one item at a time, participants cast hidden estimates,
and the host reveals and finalizes them. The engine provides:
- Canonical session state with checked invariants
- A pure authority reducer validating every participant intent
- A closed wire protocol of typed events
- A pure client reducer folding events into a local projection
"""

__version__ = "0.1.0"
