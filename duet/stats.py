"""
duet/stats.py - Aggregate counters fed by the coordinator

The coordinator only calls the StatsSink hooks; it never reads them back.
InMemoryStats is the sink the bundled server uses for its /stats endpoint.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

# Upper bounds in seconds, checked in order; anything longer lands in "15m+"
DURATION_BUCKETS: list[tuple[str, float]] = [
    ("0-30s", 30),
    ("30s-1m", 60),
    ("1-5m", 300),
    ("5-15m", 900),
]
OVERFLOW_BUCKET = "15m+"


class StatsSink(Protocol):
    def on_connection_opened(self) -> None: ...

    def on_connection_closed(self) -> None: ...

    def on_pairing_formed(self) -> None: ...

    def on_pairing_dissolved(self, duration_seconds: int) -> None: ...


class NullStats:
    """Sink that drops everything."""

    def on_connection_opened(self) -> None:
        pass

    def on_connection_closed(self) -> None:
        pass

    def on_pairing_formed(self) -> None:
        pass

    def on_pairing_dissolved(self, duration_seconds: int) -> None:
        pass


@dataclass
class ConversationRecord:
    duration: int  # whole seconds
    ended_at: float


def bucket_for(duration: float) -> str:
    for name, upper in DURATION_BUCKETS:
        if duration < upper:
            return name
    return OVERFLOW_BUCKET


@dataclass
class InMemoryStats:
    """Process-lifetime counters. Lost on restart."""

    total_visitors: int = 0
    current_connections: int = 0
    active_conversations: int = 0
    conversation_history: list[ConversationRecord] = field(default_factory=list)

    def on_connection_opened(self) -> None:
        self.total_visitors += 1
        self.current_connections += 1

    def on_connection_closed(self) -> None:
        self.current_connections = max(0, self.current_connections - 1)

    def on_pairing_formed(self) -> None:
        self.active_conversations += 1

    def on_pairing_dissolved(self, duration_seconds: int) -> None:
        self.conversation_history.append(
            ConversationRecord(duration=duration_seconds, ended_at=time.time())
        )
        self.active_conversations = max(0, self.active_conversations - 1)

    def distribution(self) -> dict[str, int]:
        buckets = {name: 0 for name, _ in DURATION_BUCKETS}
        buckets[OVERFLOW_BUCKET] = 0
        for record in self.conversation_history:
            buckets[bucket_for(record.duration)] += 1
        return buckets

    def snapshot(self, connected: int, queue_length: int) -> dict[str, Any]:
        """Payload for the admin /stats endpoint."""
        return {
            "totalVisitors": self.total_visitors,
            "activeConversations": self.active_conversations,
            "conversationHistory": {
                "total": len(self.conversation_history),
                "distribution": self.distribution(),
            },
            "currentlyConnected": connected,
            "queueLength": queue_length,
        }
