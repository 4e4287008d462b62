"""
Kafka Event Publisher

Producer side of the events topic. Events are keyed by user id so one user's
events stay on one partition. Publishing is fire-and-forget: delivery failures
are logged, never raised to the caller.
"""

import json
from typing import Iterable, Optional

import structlog
from aiokafka import AIOKafkaProducer

from analytics_pipeline.config import get_settings
from analytics_pipeline.config.settings import KafkaSettings
from analytics_pipeline.ingestion.events import AnalyticsEvent
from analytics_pipeline.ingestion.stream_consumer import kafka_client_options

logger = structlog.get_logger(__name__)


class AnalyticsEventPublisher:
    """
    Publishes analytics events to Kafka.

    Example:
        publisher = AnalyticsEventPublisher()
        await publisher.start()
        await publisher.publish(event)
    """

    def __init__(self, kafka_settings: Optional[KafkaSettings] = None):
        self.kafka_settings = kafka_settings or get_settings().kafka
        self.topic = self.kafka_settings.topic_events
        self._producer: Optional[AIOKafkaProducer] = None

    @property
    def connected(self) -> bool:
        return self._producer is not None

    async def start(self) -> None:
        producer = AIOKafkaProducer(
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            **kafka_client_options(self.kafka_settings),
        )
        try:
            await producer.start()
        except Exception:
            await producer.stop()
            raise
        self._producer = producer
        logger.info("Kafka producer connected", topic=self.topic)

    async def stop(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        try:
            await producer.stop()
            logger.info("Kafka producer disconnected")
        except Exception as e:
            logger.error("Error disconnecting Kafka producer", error=str(e))

    def _on_delivery(self, event: AnalyticsEvent, future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Failed to deliver analytics event",
                action=event.action.value,
                user_id=event.user_id,
                error=str(error),
            )

    async def publish(self, event: AnalyticsEvent) -> bool:
        """
        Queue an event for delivery without waiting for the broker.

        Returns:
            True if the event was handed to the producer
        """
        if self._producer is None:
            logger.error("Kafka producer not started, dropping event", action=event.action.value)
            return False

        try:
            future = await self._producer.send(self.topic, value=event.to_payload(), key=event.user_id)
        except Exception as e:
            logger.error(
                "Failed to send analytics event",
                action=event.action.value,
                user_id=event.user_id,
                error=str(e),
            )
            return False

        future.add_done_callback(lambda f: self._on_delivery(event, f))
        return True

    async def publish_batch(self, events: Iterable[AnalyticsEvent]) -> int:
        """Publish several events. Returns how many were handed to the producer."""
        sent = 0
        for event in events:
            if await self.publish(event):
                sent += 1
        return sent
