"""
duet - Anonymous one-to-one video chat matchmaking

Pairs strangers first come, first served, and passes their WebRTC
negotiation messages back and forth. Media flows peer to peer.
"""

__version__ = "0.1.0"

from .config import ServerSettings, load_config
from .coordinator import (
    Connected,
    Disconnected,
    HeartbeatTick,
    Inbound,
    SessionCoordinator,
)
from .heartbeat import HeartbeatMonitor
from .matching import MatchingQueue
from .protocol import ProtocolError, parse_inbound
from .registry import Connection, ConnectionRegistry, ConnectionState, Link
from .stats import InMemoryStats, NullStats, StatsSink

__all__ = [
    # Version
    "__version__",
    # Config
    "ServerSettings",
    "load_config",
    # Coordinator + events
    "SessionCoordinator",
    "Connected",
    "Disconnected",
    "Inbound",
    "HeartbeatTick",
    # Building blocks
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "Link",
    "MatchingQueue",
    "HeartbeatMonitor",
    # Protocol
    "ProtocolError",
    "parse_inbound",
    # Stats
    "StatsSink",
    "InMemoryStats",
    "NullStats",
]
