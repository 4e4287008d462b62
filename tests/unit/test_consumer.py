"""
Unit Tests - Stream Consumer
"""
import json

import pytest

from analytics_pipeline.config.settings import KafkaSettings
from analytics_pipeline.ingestion.events import AnalyticsAction
from analytics_pipeline.ingestion.stream_consumer import (
    ConsumerConfig,
    StreamConsumer,
    kafka_client_options,
)


@pytest.fixture
def kafka_settings() -> KafkaSettings:
    return KafkaSettings(bootstrap_servers="localhost:9092")


@pytest.fixture
def consumer(event_queue, kafka_settings) -> StreamConsumer:
    return StreamConsumer(event_queue, kafka_settings=kafka_settings)


def _message(**payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


class TestHandleMessage:
    """Tests for decoding and queueing messages"""

    def test_valid_event_is_queued(self, consumer, event_queue):
        """Test a valid event lands in the queue"""
        queued = consumer.handle_message(
            "users-event",
            _message(userId="u1", productId="p1", action="add_to_cart", timestamp=1736951400000),
        )

        assert queued
        assert len(event_queue) == 1
        event = event_queue.drain(1)[0]
        assert event.action == AnalyticsAction.ADD_TO_CART
        assert event.product_id == "p1"

    def test_arrival_order_preserved(self, consumer, event_queue):
        """Test messages are queued in the order received"""
        for i in range(3):
            consumer.handle_message("users-event", _message(userId=f"u{i}", action="product_view"))

        assert [e.user_id for e in event_queue.drain(10)] == ["u0", "u1", "u2"]

    @pytest.mark.parametrize("value", [
        b"{not json",
        b"\xff\xfe",
        None,
        _message(userId="u1", action="unknown_action"),
        _message(action="product_view"),
    ])
    def test_bad_messages_are_dropped(self, consumer, event_queue, value):
        """Test undecodable and invalid messages never reach the queue"""
        assert not consumer.handle_message("users-event", value)
        assert len(event_queue) == 0

    def test_default_config_from_settings(self, consumer, kafka_settings):
        """Test the consumer subscribes to the configured topic and group"""
        assert consumer.config.topics == [kafka_settings.topic_events]
        assert consumer.config.group_id == "kafka-service-group"
        assert consumer.config.enable_auto_commit

    def test_explicit_config(self, event_queue, kafka_settings):
        """Test an explicit ConsumerConfig wins"""
        consumer = StreamConsumer(
            event_queue,
            config=ConsumerConfig(topics=["replay"], group_id="replay-group"),
            kafka_settings=kafka_settings,
        )

        assert consumer.config.topics == ["replay"]
        assert not consumer.running

    async def test_stop_before_start(self, consumer):
        """Test stopping an idle consumer is a no-op"""
        await consumer.stop()
        assert not consumer.running


class TestKafkaClientOptions:
    """Tests for connection options"""

    def test_local_broker_without_auth(self):
        """Test local brokers connect in plaintext even with credentials"""
        options = kafka_client_options(KafkaSettings(
            bootstrap_servers="localhost:9092",
            username="svc",
            password="secret",
        ))

        assert options["bootstrap_servers"] == ["localhost:9092"]
        assert "security_protocol" not in options

    def test_remote_broker_with_credentials(self):
        """Test remote brokers with credentials use SCRAM over SSL"""
        options = kafka_client_options(KafkaSettings(
            bootstrap_servers="broker-1.example.com:9092, broker-2.example.com:9092",
            username="svc",
            password="secret",
        ))

        assert options["bootstrap_servers"] == ["broker-1.example.com:9092", "broker-2.example.com:9092"]
        assert options["security_protocol"] == "SASL_SSL"
        assert options["sasl_mechanism"] == "SCRAM-SHA-256"
        assert options["sasl_plain_username"] == "svc"
        assert options["sasl_plain_password"] == "secret"

    def test_remote_broker_without_credentials(self):
        """Test no credentials means no authentication"""
        options = kafka_client_options(KafkaSettings(bootstrap_servers="broker.example.com:9092"))

        assert "security_protocol" not in options

    def test_ssl_override(self):
        """Test KAFKA_SSL=false disables authentication for remote brokers"""
        settings = KafkaSettings(
            bootstrap_servers="broker.example.com:9092",
            username="svc",
            password="secret",
            ssl=False,
        )

        assert not settings.use_authentication
