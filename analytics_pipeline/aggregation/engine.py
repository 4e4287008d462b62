"""
Aggregation Engine

Applies validated events to the user, product and shop projections.

For one event the three projection updates are independent: they run
concurrently and a failure in one is logged, counted and abandoned without
affecting the others. Events of a batch are applied strictly one after the
other in arrival order, so several events for the same key always land in
FIFO order.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import structlog
from prometheus_client import Counter

from analytics_pipeline.aggregation.derived_metrics import DerivedMetricsCalculator
from analytics_pipeline.aggregation.increments import product_delta, shop_delta, user_delta
from analytics_pipeline.database.store import ProjectionStore
from analytics_pipeline.ingestion.events import AnalyticsEvent

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

EVENTS_AGGREGATED = Counter(
    "analytics_events_aggregated_total",
    "Events applied to the projections",
    ["status"],
)

PROJECTION_UPDATES = Counter(
    "analytics_projection_updates_total",
    "Projection upserts by projection and outcome",
    ["projection", "status"],
)


# =============================================================================
# RESULTS
# =============================================================================

class Projection(str, Enum):
    """Aggregate projections maintained by the engine"""
    USER = "user"
    PRODUCT = "product"
    SHOP = "shop"


@dataclass
class EventOutcome:
    """Result of applying one event"""
    event: AnalyticsEvent
    applied: List[Projection] = field(default_factory=list)
    failed: Dict[Projection, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failed


@dataclass
class BatchResult:
    """Result of applying one batch"""
    size: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    outcomes: List[EventOutcome] = field(default_factory=list)


# =============================================================================
# ENGINE
# =============================================================================

class AggregationEngine:
    """
    Upsert-with-increment aggregation over a projection store.

    Example:
        engine = AggregationEngine(store)
        result = await engine.apply_batch(queue.drain(100))
    """

    def __init__(
        self,
        store: ProjectionStore,
        derived_metrics: Optional[DerivedMetricsCalculator] = None,
    ):
        self.store = store
        self.derived_metrics = derived_metrics or DerivedMetricsCalculator(store)

    async def _update_user(self, event: AnalyticsEvent) -> None:
        await self.store.upsert_user(event, user_delta(event.action))

    async def _update_product(self, event: AnalyticsEvent) -> None:
        counters = await self.store.upsert_product(event, product_delta(event.action))
        await self.derived_metrics.refresh(event.product_id, counters)

    async def _update_shop(self, event: AnalyticsEvent) -> None:
        await self.store.upsert_shop(event, shop_delta(event.action))

    async def apply(self, event: AnalyticsEvent) -> EventOutcome:
        """
        Apply one event to every projection it touches.

        Never raises for a failed projection update; failures are reported in
        the returned outcome.
        """
        updates = {Projection.USER: self._update_user(event)}
        if event.product_id:
            updates[Projection.PRODUCT] = self._update_product(event)
        if event.shop_id:
            updates[Projection.SHOP] = self._update_shop(event)

        results = await asyncio.gather(*updates.values(), return_exceptions=True)

        outcome = EventOutcome(event=event)
        for projection, result in zip(updates, results):
            if isinstance(result, Exception):
                outcome.failed[projection] = str(result)
                PROJECTION_UPDATES.labels(projection=projection.value, status="error").inc()
                logger.error(
                    "Failed to update projection",
                    projection=projection.value,
                    user_id=event.user_id,
                    product_id=event.product_id,
                    shop_id=event.shop_id,
                    action=event.action.value,
                    error=str(result),
                    error_type=type(result).__name__,
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.applied.append(projection)
                PROJECTION_UPDATES.labels(projection=projection.value, status="success").inc()

        EVENTS_AGGREGATED.labels(status="success" if outcome.succeeded else "error").inc()
        logger.debug(
            "Applied analytics event",
            user_id=event.user_id,
            action=event.action.value,
            applied=[p.value for p in outcome.applied],
        )
        return outcome

    async def apply_batch(self, events: Sequence[AnalyticsEvent]) -> BatchResult:
        """Apply events one at a time, in order"""
        start_time = time.perf_counter()
        result = BatchResult(size=len(events))

        for event in events:
            outcome = await self.apply(event)
            result.outcomes.append(outcome)
            if outcome.succeeded:
                result.succeeded += 1
            else:
                result.failed += 1

        result.duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "Batch processed",
            size=result.size,
            succeeded=result.succeeded,
            failed=result.failed,
            duration_ms=result.duration_ms,
        )
        return result
