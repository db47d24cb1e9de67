"""Tests for duet.stats — in-memory counters behind /stats."""

import pytest

from duet.stats import InMemoryStats, NullStats, bucket_for


class TestInMemoryStats:
    def test_connection_counters(self):
        stats = InMemoryStats()
        stats.on_connection_opened()
        stats.on_connection_opened()
        stats.on_connection_closed()
        assert stats.total_visitors == 2
        assert stats.current_connections == 1

    def test_pairing_counters(self):
        stats = InMemoryStats()
        stats.on_pairing_formed()
        stats.on_pairing_dissolved(12)
        assert stats.active_conversations == 0
        assert [r.duration for r in stats.conversation_history] == [12]

    def test_active_never_negative(self):
        stats = InMemoryStats()
        stats.on_pairing_dissolved(1)
        stats.on_connection_closed()
        assert stats.active_conversations == 0
        assert stats.current_connections == 0

    def test_snapshot(self):
        stats = InMemoryStats()
        stats.on_connection_opened()
        stats.on_pairing_formed()
        stats.on_pairing_dissolved(45)
        snap = stats.snapshot(connected=3, queue_length=1)
        assert snap == {
            "totalVisitors": 1,
            "activeConversations": 0,
            "conversationHistory": {
                "total": 1,
                "distribution": {"0-30s": 0, "30s-1m": 1, "1-5m": 0, "5-15m": 0, "15m+": 0},
            },
            "currentlyConnected": 3,
            "queueLength": 1,
        }


class TestBuckets:
    @pytest.mark.parametrize("duration, bucket", [
        (0, "0-30s"),
        (29, "0-30s"),
        (30, "30s-1m"),
        (59, "30s-1m"),
        (60, "1-5m"),
        (299, "1-5m"),
        (300, "5-15m"),
        (899, "5-15m"),
        (900, "15m+"),
        (86_400, "15m+"),
    ])
    def test_bucket_edges(self, duration, bucket):
        assert bucket_for(duration) == bucket

    def test_distribution_counts(self):
        stats = InMemoryStats()
        for d in (5, 10, 400, 2000):
            stats.on_pairing_dissolved(d)
        assert stats.distribution() == {
            "0-30s": 2, "30s-1m": 0, "1-5m": 0, "5-15m": 1, "15m+": 1,
        }


def test_null_stats_accepts_everything():
    sink = NullStats()
    sink.on_connection_opened()
    sink.on_connection_closed()
    sink.on_pairing_formed()
    sink.on_pairing_dissolved(3)
