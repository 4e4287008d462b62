"""
Ingestion Queue

Unbounded in-process FIFO buffer between the consumer and the batch scheduler.
Both sides run on the same event loop; neither enqueue nor drain suspends, so
no lock is needed at this boundary.
"""

from collections import deque
from typing import Deque, List

from prometheus_client import Gauge

from analytics_pipeline.ingestion.events import AnalyticsEvent


QUEUE_DEPTH = Gauge(
    "analytics_queue_depth",
    "Number of validated events waiting for aggregation",
)


class EventQueue:
    """
    FIFO buffer of validated events.

    Example:
        queue = EventQueue()
        queue.enqueue(event)
        batch = queue.drain(100)
    """

    def __init__(self):
        self._events: Deque[AnalyticsEvent] = deque()

    def enqueue(self, event: AnalyticsEvent) -> None:
        """Append an event. Never blocks and never rejects on volume."""
        self._events.append(event)
        QUEUE_DEPTH.set(len(self._events))

    def drain(self, max_count: int) -> List[AnalyticsEvent]:
        """Remove and return up to max_count events, oldest first"""
        if max_count <= 0:
            return []

        count = min(max_count, len(self._events))
        batch = [self._events.popleft() for _ in range(count)]
        QUEUE_DEPTH.set(len(self._events))
        return batch

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)
