"""
Pipeline Runtime

Wires the event source, ingestion queue, batch scheduler, aggregation engine
and projection store together and owns their lifecycle.

Start order: projection store, scheduler, consumer, publisher.
Stop order: consumer first (no new events), then the scheduler (the in-flight
batch finishes), then publisher and store.
"""

import asyncio
from typing import Optional

import structlog

from analytics_pipeline.aggregation.engine import AggregationEngine
from analytics_pipeline.aggregation.scheduler import BatchScheduler
from analytics_pipeline.config import Settings, get_settings
from analytics_pipeline.database.store import ProjectionStore, open_projection_store
from analytics_pipeline.ingestion.publisher import AnalyticsEventPublisher
from analytics_pipeline.ingestion.queue import EventQueue
from analytics_pipeline.ingestion.stream_consumer import StreamConsumer

logger = structlog.get_logger(__name__)


class AnalyticsPipeline:
    """
    The running aggregation pipeline.

    Example:
        pipeline = AnalyticsPipeline()
        await pipeline.start()
        ...
        await pipeline.stop()
    """

    def __init__(
        self,
        store: Optional[ProjectionStore] = None,
        publisher: Optional[AnalyticsEventPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.queue = EventQueue()
        self.publisher = publisher

        self.store: Optional[ProjectionStore] = None
        self.engine: Optional[AggregationEngine] = None
        self.scheduler: Optional[BatchScheduler] = None
        self.consumer: Optional[StreamConsumer] = None
        self._consumer_task: Optional[asyncio.Task] = None

        if store is not None:
            self._attach_store(store)

    def _attach_store(self, store: ProjectionStore) -> None:
        pipeline = self.settings.pipeline
        self.store = store
        self.engine = AggregationEngine(store)
        self.scheduler = BatchScheduler(
            self.queue,
            self.engine,
            interval_ms=pipeline.batch_interval_ms,
            max_batch_size=pipeline.max_batch_size,
            flush_on_shutdown=pipeline.flush_on_shutdown,
        )

    async def start(self, with_consumer: bool = True, with_publisher: bool = True) -> None:
        if self.store is None:
            self._attach_store(await open_projection_store(self.settings.database.get_url()))

        self.scheduler.start()

        if with_consumer:
            self.consumer = StreamConsumer(self.queue, kafka_settings=self.settings.kafka)
            self._consumer_task = asyncio.create_task(self.consumer.start(), name="stream-consumer")

        if with_publisher and self.publisher is None:
            publisher = AnalyticsEventPublisher(self.settings.kafka)
            try:
                await publisher.start()
                self.publisher = publisher
            except Exception as e:
                logger.warning(f"Kafka producer init failed: {e}")

        logger.info("Analytics pipeline started")

    async def stop(self) -> None:
        logger.info("Stopping analytics pipeline", queued=len(self.queue))

        if self.consumer is not None:
            await self.consumer.stop()
        if self._consumer_task is not None:
            await asyncio.gather(self._consumer_task, return_exceptions=True)
            self._consumer_task = None

        if self.scheduler is not None:
            await self.scheduler.stop()

        if self.publisher is not None:
            await self.publisher.stop()

        if self.store is not None:
            await self.store.close()

        logger.info("Analytics pipeline stopped")

    async def health(self) -> dict:
        """Component health for the health endpoints"""
        checks = {}

        if self.store is None:
            checks["projection_store"] = {"status": "unhealthy", "error": "not initialized"}
        else:
            try:
                checks["projection_store"] = await self.store.health()
            except Exception as e:
                checks["projection_store"] = {"status": "unhealthy", "error": str(e)}

        scheduler_running = self.scheduler is not None and self.scheduler.running
        checks["scheduler"] = {
            "status": "healthy" if scheduler_running else "stopped",
            "queue_depth": len(self.queue),
            "batch_in_flight": bool(self.scheduler and self.scheduler.busy),
        }
        checks["consumer"] = {
            "status": "healthy" if self.consumer is not None and self.consumer.running else "stopped",
        }
        checks["publisher"] = {
            "status": "healthy" if self.publisher is not None and self.publisher.connected else "stopped",
        }
        return checks
