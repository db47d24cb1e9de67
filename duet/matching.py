"""
duet/matching.py - FIFO waiting queue

Holds connection ids in arrival order, each at most once. The queue only
stores ids; whether a dequeued id still names a usable connection is for
the caller to decide (see SessionCoordinator.ready).
"""

from collections import OrderedDict


class MatchingQueue:
    """Ordered set of waiting connection ids. Oldest first."""

    def __init__(self):
        # OrderedDict gives FIFO order plus O(1) membership and removal
        self._waiting: OrderedDict[str, None] = OrderedDict()

    def enqueue(self, conn_id: str) -> bool:
        """Append conn_id. Returns False (and changes nothing) if already queued."""
        if conn_id in self._waiting:
            return False
        self._waiting[conn_id] = None
        return True

    def dequeue_next(self) -> str | None:
        """Pop the longest-waiting id, or None if empty."""
        if not self._waiting:
            return None
        conn_id, _ = self._waiting.popitem(last=False)
        return conn_id

    def remove(self, conn_id: str) -> bool:
        """Remove conn_id wherever it sits. Returns False if it wasn't queued."""
        if conn_id not in self._waiting:
            return False
        del self._waiting[conn_id]
        return True

    def position(self, conn_id: str) -> int | None:
        """1-based queue position, or None if not queued."""
        for i, queued in enumerate(self._waiting, start=1):
            if queued == conn_id:
                return i
        return None

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)

    def __iter__(self):
        return iter(list(self._waiting))
