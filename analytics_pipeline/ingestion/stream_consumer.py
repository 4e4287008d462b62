"""
Kafka Stream Consumer

Consumes user interaction events from the events topic and hands them to the
ingestion queue:
- JSON decoding
- Validation (malformed events are logged and dropped)
- Enqueue without waiting for aggregation
- Offsets committed as soon as messages are queued
- Connection retries and graceful shutdown
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog
from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaConnectionError
from aiokafka.helpers import create_ssl_context
from prometheus_client import Counter

from analytics_pipeline.config import get_settings
from analytics_pipeline.config.settings import KafkaSettings
from analytics_pipeline.ingestion.queue import EventQueue
from analytics_pipeline.ingestion.validator import validate_event

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

EVENTS_RECEIVED = Counter(
    "analytics_events_received_total",
    "Total number of messages received from the event source",
    ["topic", "status"],
)


def kafka_client_options(kafka: KafkaSettings) -> Dict[str, Any]:
    """
    Connection options shared by consumers and producers.

    SCRAM-SHA-256 over SSL is used only when credentials are configured for a
    remote broker, or when KAFKA_SSL forces it.
    """
    options: Dict[str, Any] = {
        "bootstrap_servers": kafka.brokers,
        "client_id": kafka.client_id,
        "request_timeout_ms": kafka.request_timeout_ms,
    }

    if kafka.use_authentication:
        options.update(
            security_protocol="SASL_SSL",
            sasl_mechanism="SCRAM-SHA-256",
            sasl_plain_username=kafka.username,
            sasl_plain_password=kafka.password.get_secret_value(),
            ssl_context=create_ssl_context(),
        )
        logger.info("Kafka authentication enabled (SCRAM-SHA-256 + SSL)")
    else:
        logger.info(
            "Kafka authentication disabled",
            brokers=kafka.bootstrap_servers,
            local=kafka.is_local_broker,
        )

    return options


@dataclass
class ConsumerConfig:
    """Kafka consumer configuration"""
    topics: List[str]
    group_id: str = "kafka-service-group"
    auto_offset_reset: str = "earliest"
    enable_auto_commit: bool = True  # Acknowledge once queued, not once aggregated
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 3000
    max_retries: int = 5
    retry_backoff_ms: int = 2000


class StreamConsumer:
    """
    Kafka consumer feeding the ingestion queue.

    Example:
        consumer = StreamConsumer(queue)
        await consumer.start()
    """

    def __init__(
        self,
        queue: EventQueue,
        config: Optional[ConsumerConfig] = None,
        kafka_settings: Optional[KafkaSettings] = None,
    ):
        self.kafka_settings = kafka_settings or get_settings().kafka
        self.config = config or ConsumerConfig(
            topics=[self.kafka_settings.topic_events],
            group_id=self.kafka_settings.consumer_group,
            auto_offset_reset=self.kafka_settings.auto_offset_reset,
            session_timeout_ms=self.kafka_settings.session_timeout_ms,
            heartbeat_interval_ms=self.kafka_settings.heartbeat_interval_ms,
        )
        self.queue = queue

        self._consumer: Optional[AIOKafkaConsumer] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _create_consumer(self) -> AIOKafkaConsumer:
        """Create and configure Kafka consumer"""
        return AIOKafkaConsumer(
            *self.config.topics,
            group_id=self.config.group_id,
            auto_offset_reset=self.config.auto_offset_reset,
            enable_auto_commit=self.config.enable_auto_commit,
            session_timeout_ms=self.config.session_timeout_ms,
            heartbeat_interval_ms=self.config.heartbeat_interval_ms,
            **kafka_client_options(self.kafka_settings),
        )

    def handle_message(self, topic: str, value: Optional[bytes]) -> bool:
        """
        Decode, validate and enqueue one message.

        Never suspends and never performs I/O.

        Returns:
            True if the event was queued
        """
        try:
            payload = json.loads(value.decode("utf-8")) if value is not None else None
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Undecodable event message", topic=topic, error=str(e))
            EVENTS_RECEIVED.labels(topic=topic, status="undecodable").inc()
            return False

        event = validate_event(payload)
        if event is None:
            EVENTS_RECEIVED.labels(topic=topic, status="rejected").inc()
            return False

        self.queue.enqueue(event)
        EVENTS_RECEIVED.labels(topic=topic, status="queued").inc()
        logger.debug(
            "Event queued",
            action=event.action.value,
            user_id=event.user_id,
            queue_size=len(self.queue),
        )
        return True

    async def _connect(self) -> AIOKafkaConsumer:
        """Start the consumer, retrying while the broker is unreachable"""
        attempt = 0
        while True:
            consumer = self._create_consumer()
            try:
                await consumer.start()
                return consumer
            except KafkaConnectionError as e:
                await consumer.stop()
                attempt += 1
                if attempt > self.config.max_retries:
                    raise
                logger.warning(
                    "Kafka connection failed, retrying",
                    attempt=attempt,
                    max_retries=self.config.max_retries,
                    error=str(e),
                )
                await asyncio.sleep(self.config.retry_backoff_ms / 1000 * attempt)

    async def start(self) -> None:
        """Start consuming events"""
        logger.info(
            "Starting stream consumer",
            topics=self.config.topics,
            group_id=self.config.group_id,
        )

        self._running = True
        try:
            self._consumer = await self._connect()
            logger.info("Kafka consumer connected", topics=self.config.topics)

            async for message in self._consumer:
                if not self._running:
                    break
                self.handle_message(message.topic, message.value)

        except KafkaConnectionError as e:
            logger.error("Kafka connection error", error=str(e))

        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the consumer gracefully"""
        if self._consumer is None and not self._running:
            return

        logger.info("Stopping stream consumer")
        self._running = False

        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            await consumer.stop()

        logger.info("Stream consumer stopped")
