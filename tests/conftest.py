"""Shared fixtures: a coordinator wired to recording links and a fake clock."""

import itertools

import pytest

from duet.coordinator import SessionCoordinator
from duet.registry import ConnectionRegistry, ConnectionState
from duet.stats import InMemoryStats


class RecordingLink:
    """Link that keeps everything sent to it."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    def send(self, message):
        if not self.closed:
            self.sent.append(message)

    def close(self):
        self.closed = True

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def take(self) -> list[dict]:
        """Return and forget everything received so far."""
        sent, self.sent = self.sent, []
        return sent

    def of_type(self, type_: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == type_]


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def assert_pairing_invariants(coordinator: SessionCoordinator) -> None:
    """Symmetry, no self-pairing, and queue membership mirroring WAITING."""
    for conn in coordinator.registry:
        if conn.state is ConnectionState.PAIRED:
            assert conn.partner_id is not None
            assert conn.partner_id != conn.id
            partner = coordinator.registry.get(conn.partner_id)
            assert partner is not None
            assert partner.partner_id == conn.id
            assert partner.state is ConnectionState.PAIRED
            assert conn.paired_at is not None
        else:
            assert conn.partner_id is None
            assert conn.paired_at is None
        assert (conn.id in coordinator.queue) == (conn.state is ConnectionState.WAITING)
    queued = list(coordinator.queue)
    assert len(queued) == len(set(queued))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stats():
    return InMemoryStats()


@pytest.fixture
def coordinator(clock, stats):
    counter = itertools.count(1)
    registry = ConnectionRegistry(id_factory=lambda: f"c{next(counter)}", clock=clock)
    return SessionCoordinator(registry=registry, stats=stats, clock=clock)


@pytest.fixture
def connect(coordinator):
    """Factory: register a new recording link, return (conn_id, link) with a clean inbox."""

    def _connect():
        link = RecordingLink()
        conn_id = coordinator.connect(link)
        link.take()
        return conn_id, link

    return _connect
