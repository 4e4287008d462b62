"""
Data Ingestion Module
"""
from .events import AnalyticsAction, AnalyticsEvent
from .queue import EventQueue
from .validator import validate_event
from .stream_consumer import StreamConsumer
from .publisher import AnalyticsEventPublisher

__all__ = [
    "AnalyticsAction",
    "AnalyticsEvent",
    "EventQueue",
    "validate_event",
    "StreamConsumer",
    "AnalyticsEventPublisher",
]
