"""
Derived Metrics

Conversion rates recomputed from product counters after each product update.
The refresh is best-effort: a failure leaves the previous rates in place and
never fails the event that triggered it.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import structlog
from prometheus_client import Counter

from analytics_pipeline.database.schemas import ConversionRates, ProductCounters
from analytics_pipeline.database.store import ProjectionStore

logger = structlog.get_logger(__name__)


RATE_REFRESHES = Counter(
    "analytics_conversion_rate_refreshes_total",
    "Conversion rate recomputations",
    ["status"],
)

TWO_PLACES = Decimal("0.01")


def round2(value: float) -> float:
    """Round half-up to two decimals on the exact binary value"""
    return float(Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def percentage(numerator: int, denominator: int) -> float:
    """numerator / denominator as a percentage, 0 when the denominator is 0"""
    if denominator <= 0:
        return 0.0
    return round2((numerator / denominator) * 100)


def compute_conversion_rates(counters: ProductCounters) -> ConversionRates:
    return ConversionRates(
        view_to_cart_rate=percentage(counters.cart_adds, counters.views),
        view_to_wishlist_rate=percentage(counters.wishlist_adds, counters.views),
        cart_to_purchase_rate=percentage(counters.purchases, counters.cart_adds),
    )


class DerivedMetricsCalculator:
    """
    Writes conversion rates back to product records.

    Example:
        calculator = DerivedMetricsCalculator(store)
        counters = await store.upsert_product(event, delta)
        await calculator.refresh(event.product_id, counters)
    """

    def __init__(self, store: ProjectionStore):
        self.store = store

    async def refresh(self, product_id: str, counters: ProductCounters) -> Optional[ConversionRates]:
        """
        Recompute and store the rates for a product.

        Returns:
            The stored rates, or None if they could not be written
        """
        try:
            rates = compute_conversion_rates(counters)
            updated = await self.store.update_conversion_rates(product_id, rates)
        except Exception as e:
            logger.warning(
                "Failed to update conversion rates",
                product_id=product_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            RATE_REFRESHES.labels(status="error").inc()
            return None

        if not updated:
            logger.warning("Product analytics missing, conversion rates not updated", product_id=product_id)
            RATE_REFRESHES.labels(status="missing").inc()
            return None

        RATE_REFRESHES.labels(status="success").inc()
        return rates
