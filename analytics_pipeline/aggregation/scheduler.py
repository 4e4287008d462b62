"""
Batch Scheduler

Drains the ingestion queue on a fixed interval and hands each bounded batch to
the aggregation engine.

Only one batch is ever in flight: a tick that fires while the previous batch
is still being aggregated is skipped, and the backlog is picked up by the next
one. Events beyond max_batch_size stay queued for later ticks.
"""

import asyncio
from typing import Optional

import structlog
from prometheus_client import Counter, Histogram

from analytics_pipeline.aggregation.engine import AggregationEngine, BatchResult
from analytics_pipeline.config import get_settings
from analytics_pipeline.ingestion.queue import EventQueue

logger = structlog.get_logger(__name__)


BATCH_DURATION = Histogram(
    "analytics_batch_duration_seconds",
    "Time spent aggregating one batch",
)

BATCH_SIZE = Histogram(
    "analytics_batch_size",
    "Events per aggregated batch",
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000),
)

TICKS_SKIPPED = Counter(
    "analytics_scheduler_ticks_skipped_total",
    "Ticks skipped because a batch was still in flight",
)


class BatchScheduler:
    """
    Periodic drain-and-aggregate loop.

    Example:
        scheduler = BatchScheduler(queue, engine)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        queue: EventQueue,
        engine: AggregationEngine,
        interval_ms: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        flush_on_shutdown: Optional[bool] = None,
    ):
        pipeline = get_settings().pipeline
        self.queue = queue
        self.engine = engine
        self.interval_ms = interval_ms or pipeline.batch_interval_ms
        self.max_batch_size = max_batch_size or pipeline.max_batch_size
        self.flush_on_shutdown = (
            pipeline.flush_on_shutdown if flush_on_shutdown is None else flush_on_shutdown
        )

        self._lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        """True while a batch is being aggregated"""
        return self._lock.locked()

    async def tick(self) -> Optional[BatchResult]:
        """
        Run one drain-and-aggregate cycle.

        Returns:
            The batch result, or None when the queue was empty or another
            batch was still in flight
        """
        if self._lock.locked():
            TICKS_SKIPPED.inc()
            logger.debug("Previous batch still in flight, skipping tick", queued=len(self.queue))
            return None

        async with self._lock:
            if not self.queue:
                return None

            batch = self.queue.drain(self.max_batch_size)
            logger.info("Processing batch", size=len(batch), remaining=len(self.queue))

            BATCH_SIZE.observe(len(batch))
            with BATCH_DURATION.time():
                return await self.engine.apply_batch(batch)

    async def run(self) -> None:
        """Tick every interval until stop() is called"""
        logger.info(
            "Batch processing started",
            interval_ms=self.interval_ms,
            max_batch_size=self.max_batch_size,
        )
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval_seconds

        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(
                    self._stopping.wait(),
                    timeout=max(0.0, next_tick - loop.time()),
                )
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.tick()
            except Exception as e:
                logger.error("Batch tick failed", error=str(e), error_type=type(e).__name__)

            next_tick += self.interval_seconds
            while next_tick <= loop.time():
                TICKS_SKIPPED.inc()
                next_tick += self.interval_seconds

        logger.info("Batch processing stopped", queued=len(self.queue))

    def start(self) -> asyncio.Task:
        """Start the timer on the running loop"""
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name="batch-scheduler")
        return self._task

    async def flush(self) -> int:
        """Aggregate everything still queued. Returns the number of events processed."""
        processed = 0
        while self.queue:
            result = await self.tick()
            if result is None:
                break
            processed += result.size
        return processed

    async def stop(self) -> None:
        """
        Stop ticking.

        The in-flight batch, if any, is allowed to finish. Queued events are
        left in place unless flush_on_shutdown is set.
        """
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

        if self.flush_on_shutdown and self.queue:
            logger.info("Flushing queue before shutdown", queued=len(self.queue))
            await self.flush()
        elif self.queue:
            logger.warning("Shutting down with queued events", queued=len(self.queue))
