"""
duet/coordinator.py - The matchmaking state machine

SessionCoordinator is the only thing that mutates the registry, the queue,
or any Connection. Every event source (socket frames, socket closes, the
heartbeat timer) posts into one asyncio.Queue mailbox, and run() applies
events one at a time. Handlers never await, so each event is applied
completely before the next one is looked at and no locks are needed.

State per connection:

    IDLE --ready--> WAITING --matched--> PAIRED
    IDLE --ready--> PAIRED                        (someone was waiting)
    PAIRED --leave/close/timeout--> IDLE          (partner also -> IDLE)
    WAITING --leave/close/timeout--> IDLE

Pairing and unpairing always touch both sides in the same handler call.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from . import protocol
from .heartbeat import HeartbeatMonitor
from .matching import MatchingQueue
from .protocol import LeaveMessage, PongMessage, ProtocolError, ReadyMessage, SignalMessage
from .registry import Connection, ConnectionRegistry, ConnectionState, Link
from .stats import NullStats, StatsSink

logger = logging.getLogger(__name__)

MSG_CONNECTED = "Connected to signaling server. Send ready to find someone."
MSG_WAITING = "Waiting for someone to join..."
MSG_ALREADY_WAITING = "Waiting for the next available partner..."
MSG_ALREADY_PAIRED = "Already chatting. Leave to find someone new."
MSG_PAIRED = "Connected! Start your video."
MSG_NO_PARTNER = "Waiting for a partner before sending media."
MSG_PARTNER_LEFT = "Partner disconnected."


# ============================================================================
# Events
# ============================================================================


@dataclass(eq=False)
class Connected:
    link: Link


@dataclass(eq=False)
class Inbound:
    link: Link
    raw: str | bytes


@dataclass(eq=False)
class Disconnected:
    link: Link
    reason: str = "closed"


@dataclass(eq=False)
class HeartbeatTick:
    pass


Event = Connected | Inbound | Disconnected | HeartbeatTick


# ============================================================================
# Coordinator
# ============================================================================


class SessionCoordinator:
    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        queue: MatchingQueue | None = None,
        stats: StatsSink | None = None,
        heartbeat: HeartbeatMonitor | None = None,
        clock: Callable[[], float] = time.time,
    ):
        # Explicit None checks: an empty registry or queue is falsy
        self.registry = registry if registry is not None else ConnectionRegistry(clock=clock)
        self.queue = queue if queue is not None else MatchingQueue()
        self.stats = stats if stats is not None else NullStats()
        self.heartbeat = heartbeat if heartbeat is not None else HeartbeatMonitor()
        self._clock = clock
        self._ids: dict[Link, str] = {}
        self._mailbox: asyncio.Queue[Event] = asyncio.Queue()

    # ------------------------------------------------------------------
    # Mailbox
    # ------------------------------------------------------------------

    def submit(self, event: Event) -> None:
        """Post an event. Safe to call from any coroutine on the loop."""
        self._mailbox.put_nowait(event)

    def tick(self) -> None:
        self.submit(HeartbeatTick())

    async def run(self) -> None:
        """Apply mailbox events forever, in arrival order."""
        logger.info("Coordinator started")
        while True:
            event = await self._mailbox.get()
            self.dispatch(event)

    def dispatch(self, event: Event) -> None:
        """Apply one event. Errors are logged; they never stop the loop."""
        try:
            if isinstance(event, Connected):
                self.connect(event.link)
            elif isinstance(event, Inbound):
                conn_id = self._ids.get(event.link)
                if conn_id is not None:
                    self.handle_message(conn_id, event.raw)
            elif isinstance(event, Disconnected):
                conn_id = self._ids.pop(event.link, None)
                if conn_id is not None:
                    self.disconnect(conn_id, event.reason)
            elif isinstance(event, HeartbeatTick):
                self.check_liveness()
            else:
                logger.warning(f"Ignoring unknown event {event!r}")
        except Exception:
            logger.exception(f"Unhandled error processing {type(event).__name__}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, link: Link) -> str:
        conn_id = self.registry.register(link)
        self._ids[link] = conn_id
        self._notify("on_connection_opened")
        logger.info(f"Connection {conn_id} opened ({len(self.registry)} connected)")
        link.send(protocol.status(MSG_CONNECTED))
        return conn_id

    def disconnect(self, conn_id: str, reason: str = "closed") -> None:
        """Full teardown plus registry removal. No-op for unknown ids."""
        conn = self.registry.get(conn_id)
        if conn is None:
            return
        self._teardown(conn)
        self.registry.remove(conn_id)
        self._ids.pop(conn.link, None)
        self._notify("on_connection_closed")
        logger.info(f"Connection {conn_id} closed: {reason} ({len(self.registry)} connected)")

    def check_liveness(self) -> None:
        """One heartbeat cycle: reap connections whose transport is gone, probe the rest."""
        dead = self.heartbeat.sweep(self.registry, self._probe)
        for conn_id in dead:
            conn = self.registry.get(conn_id)
            if conn is None:
                continue
            logger.warning(f"Terminating unresponsive connection {conn_id} (transport closed)")
            conn.link.close()
            self.disconnect(conn_id, "heartbeat timeout")

    def _probe(self, conn_id: str) -> None:
        conn = self.registry.get(conn_id)
        if conn is not None:
            conn.send(protocol.ping())

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def handle_message(self, conn_id: str, raw: str | bytes) -> None:
        conn = self.registry.get(conn_id)
        if conn is None:
            return

        # Any frame proves the peer is there
        conn.is_alive = True

        try:
            message = protocol.parse_inbound(raw)
        except ProtocolError as e:
            logger.debug(f"Protocol error from {conn_id}: {e}")
            conn.send(protocol.error(str(e)))
            return

        if isinstance(message, ReadyMessage):
            self.ready(conn_id)
        elif isinstance(message, SignalMessage):
            self.relay(conn_id, message.payload)
        elif isinstance(message, LeaveMessage):
            self.leave(conn_id)
        elif isinstance(message, PongMessage):
            pass
        else:
            conn.send(protocol.error("Unknown message type"))

    def ready(self, conn_id: str) -> None:
        """Match with the longest-waiting peer, or start waiting."""
        conn = self.registry.get(conn_id)
        if conn is None:
            return

        if conn.state is ConnectionState.PAIRED:
            conn.send(protocol.status(MSG_ALREADY_PAIRED))
            return

        if conn_id in self.queue:
            conn.send(protocol.status(MSG_ALREADY_WAITING))
            return

        while True:
            candidate_id = self.queue.dequeue_next()
            if candidate_id is None:
                break
            candidate = self.registry.get(candidate_id)
            if self._can_match(conn, candidate):
                self._pair(conn, candidate)
                return
            logger.debug(f"Skipping stale queue entry {candidate_id}")
            if candidate is not None and candidate.state is ConnectionState.WAITING:
                # Out of the queue now, so no longer waiting
                candidate.state = ConnectionState.IDLE

        self.queue.enqueue(conn_id)
        conn.state = ConnectionState.WAITING
        conn.send(protocol.status(MSG_WAITING))
        logger.info(
            f"Connection {conn_id} waiting (position {self.queue.position(conn_id)} of {len(self.queue)})"
        )

    def relay(self, conn_id: str, payload: Any) -> None:
        """Forward an opaque negotiation payload to the sender's partner."""
        conn = self.registry.get(conn_id)
        if conn is None:
            return

        if conn.state is not ConnectionState.PAIRED:
            # Dropped, not buffered
            conn.send(protocol.status(MSG_NO_PARTNER))
            return

        partner = self.registry.get(conn.partner_id)
        if partner is None or partner.partner_id != conn_id:
            logger.warning(f"Connection {conn_id} has a dangling partner {conn.partner_id}")
            self._dissolve(conn, None)
            conn.send(protocol.partner_left())
            conn.send(protocol.status(MSG_PARTNER_LEFT))
            return

        partner.send(protocol.signal(payload))

    def leave(self, conn_id: str) -> None:
        conn = self.registry.get(conn_id)
        if conn is None:
            return
        self._teardown(conn)

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------

    def _can_match(self, conn: Connection, candidate: Connection | None) -> bool:
        return (
            candidate is not None
            and candidate.id != conn.id
            and candidate.state is ConnectionState.WAITING
            and candidate.link.is_open
        )

    def _pair(self, offerer: Connection, answerer: Connection) -> None:
        now = self._clock()
        self.queue.remove(offerer.id)
        self.queue.remove(answerer.id)
        for side, other in ((offerer, answerer), (answerer, offerer)):
            side.state = ConnectionState.PAIRED
            side.partner_id = other.id
            side.paired_at = now
        self._notify("on_pairing_formed")
        logger.info(f"Paired {offerer.id} (offerer) with {answerer.id} (answerer)")

        offerer.send(protocol.match(answerer.id, "offerer"))
        answerer.send(protocol.match(offerer.id, "answerer"))
        offerer.send(protocol.status(MSG_PAIRED))
        answerer.send(protocol.status(MSG_PAIRED))

    def _dissolve(self, conn: Connection, partner: Connection | None) -> None:
        """Clear the pairing on both sides and record its duration once."""
        started = conn.paired_at
        duration = int(max(0.0, self._clock() - started)) if started is not None else 0

        sides = [conn]
        if partner is not None and partner.partner_id == conn.id:
            sides.append(partner)
        for side in sides:
            side.state = ConnectionState.IDLE
            side.partner_id = None
            side.paired_at = None

        self._notify("on_pairing_dissolved", duration)
        logger.info(f"Pairing of {conn.id} dissolved after {duration}s")

    def _teardown(self, conn: Connection) -> None:
        """Shared path for leave, disconnect and heartbeat reaping."""
        self.queue.remove(conn.id)
        if conn.state is ConnectionState.PAIRED:
            partner = self.registry.get(conn.partner_id)
            self._dissolve(conn, partner)
            if partner is not None and partner.state is ConnectionState.IDLE:
                partner.send(protocol.partner_left())
                partner.send(protocol.status(MSG_PARTNER_LEFT))
        conn.state = ConnectionState.IDLE

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def connection_id(self, link: Link) -> str | None:
        return self._ids.get(link)

    @property
    def active_pairings(self) -> int:
        return self.registry.paired_count()

    def _notify(self, hook: str, *args: Any) -> None:
        try:
            getattr(self.stats, hook)(*args)
        except Exception as e:
            logger.warning(f"Stats hook {hook} failed (non-critical): {e}")
