"""
duet/registry.py - Live connections and their per-connection state

The registry is an id-keyed map owned by the coordinator. Nothing else
holds Connection objects across events; everything refers to peers by id
and re-resolves through get(), so a vanished peer shows up as None rather
than as a stale object.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Protocol


# ============================================================================
# Data Types
# ============================================================================


class Link(Protocol):
    """Outbound half of a transport connection.

    Both methods must return immediately. Delivery failures are the link's
    problem: it should mark itself closed, never raise into the caller.
    """

    @property
    def is_open(self) -> bool: ...

    def send(self, message: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


class ConnectionState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    PAIRED = "paired"


@dataclass
class Connection:
    """One registered transport link and its matchmaking state."""

    id: str
    link: Link
    state: ConnectionState = ConnectionState.IDLE
    partner_id: str | None = None  # set iff state is PAIRED
    is_alive: bool = True
    connected_at: float = field(default_factory=time.time)
    paired_at: float | None = None

    def send(self, message: dict[str, Any]) -> None:
        self.link.send(message)


def _new_id() -> str:
    return uuid.uuid4().hex


# ============================================================================
# Registry
# ============================================================================


class ConnectionRegistry:
    """Arena-style map of connection id -> Connection."""

    def __init__(
        self,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], float] = time.time,
    ):
        self._connections: dict[str, Connection] = {}
        self._new_id = id_factory
        self._clock = clock

    def register(self, link: Link) -> str:
        """Create a Connection for link and return its id."""
        conn_id = self._new_id()
        while conn_id in self._connections:
            conn_id = self._new_id()
        self._connections[conn_id] = Connection(
            id=conn_id, link=link, connected_at=self._clock()
        )
        return conn_id

    def get(self, conn_id: str | None) -> Connection | None:
        if conn_id is None:
            return None
        return self._connections.get(conn_id)

    def remove(self, conn_id: str) -> Connection | None:
        """Drop a connection. Removing an unknown id is a no-op."""
        return self._connections.pop(conn_id, None)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        # Snapshot so callers may remove while iterating
        return iter(list(self._connections.values()))

    def paired_count(self) -> int:
        """Number of pairings (each pairing counts once)."""
        paired = sum(1 for c in self._connections.values() if c.state is ConnectionState.PAIRED)
        return paired // 2
