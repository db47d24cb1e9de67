"""
duet/heartbeat.py - Periodic liveness sweep

The monitor owns no state of its own. Its timer loop only posts a tick
into the coordinator mailbox; the sweep runs when the coordinator handles
that tick, so it is serialized with every other mutation.

The acknowledgment is passive. While a link's transport is open it counts
as answered: the WebSocket server pings the peer at the protocol level and
reports a dead peer by closing the transport. A `pong` or any other inbound
frame also counts. A connection with neither by the next sweep is reaped,
giving a detection window of one to two intervals.
"""

import asyncio
import logging
from typing import Callable

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0


class HeartbeatMonitor:
    """Marks connections suspect each cycle and reports the ones that stayed silent."""

    def __init__(self, interval: float = DEFAULT_INTERVAL):
        if interval <= 0:
            raise ValueError(f"Heartbeat interval must be positive, got {interval}")
        self.interval = interval

    def sweep(self, registry: ConnectionRegistry, probe: Callable[[str], None]) -> list[str]:
        """Run one cycle.

        Connections whose transport has closed and that have sent nothing
        since the last cycle are returned for teardown (and not probed).
        Every other connection is flagged and probed.
        """
        dead = []
        for conn in registry:
            if not conn.is_alive and not conn.link.is_open:
                dead.append(conn.id)
                continue
            conn.is_alive = False
            probe(conn.id)
        return dead

    async def run(self, on_tick: Callable[[], None]) -> None:
        """Call on_tick every interval until cancelled."""
        logger.info(f"Heartbeat running every {self.interval:g}s")
        while True:
            await asyncio.sleep(self.interval)
            on_tick()
