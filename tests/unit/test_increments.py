"""
Unit Tests - Increment Table
"""
from dataclasses import asdict

import pytest

from analytics_pipeline.aggregation.increments import product_delta, shop_delta, user_delta
from analytics_pipeline.ingestion.events import AnalyticsAction


def _nonzero(delta) -> dict:
    return {k: v for k, v in asdict(delta).items() if k != "stamps" and v != 0}


class TestIncrementTable:
    """Tests for the per-action deltas"""

    @pytest.mark.parametrize("action,expected", [
        (AnalyticsAction.PRODUCT_VIEW, {"total_views": 1}),
        (AnalyticsAction.ADD_TO_CART, {"total_cart_adds": 1}),
        (AnalyticsAction.REMOVE_FROM_CART, {}),
        (AnalyticsAction.ADD_TO_WISHLIST, {"total_wishlist": 1}),
        (AnalyticsAction.REMOVE_FROM_WISHLIST, {"total_wishlist": -1}),
        (AnalyticsAction.SHOP_VISIT, {}),
        (AnalyticsAction.PURCHASE, {"total_purchases": 1}),
    ])
    def test_user_delta(self, action, expected):
        """Test user counters per action"""
        assert _nonzero(user_delta(action)) == expected

    @pytest.mark.parametrize("action,expected,stamps", [
        (AnalyticsAction.PRODUCT_VIEW, {"views": 1, "unique_views": 1}, ("last_view_at",)),
        (AnalyticsAction.ADD_TO_CART, {"cart_adds": 1}, ("last_cart_add_at",)),
        (AnalyticsAction.REMOVE_FROM_CART, {}, ()),
        (AnalyticsAction.ADD_TO_WISHLIST, {"wishlist_adds": 1}, ()),
        (AnalyticsAction.REMOVE_FROM_WISHLIST, {"wishlist_removes": 1}, ()),
        (AnalyticsAction.SHOP_VISIT, {}, ()),
        (AnalyticsAction.PURCHASE, {"purchases": 1}, ("last_purchase_at",)),
    ])
    def test_product_delta(self, action, expected, stamps):
        """Test product counters and timestamps per action"""
        delta = product_delta(action)

        assert _nonzero(delta) == expected
        assert delta.stamps == stamps

    @pytest.mark.parametrize("action,expected,stamps", [
        (AnalyticsAction.PRODUCT_VIEW, {"total_product_views": 1}, ()),
        (AnalyticsAction.ADD_TO_CART, {"total_cart_adds": 1}, ()),
        (AnalyticsAction.REMOVE_FROM_CART, {}, ()),
        (AnalyticsAction.ADD_TO_WISHLIST, {"total_wishlist_adds": 1}, ()),
        (AnalyticsAction.REMOVE_FROM_WISHLIST, {}, ()),
        (AnalyticsAction.SHOP_VISIT, {"visits": 1}, ("last_visit_at",)),
        (AnalyticsAction.PURCHASE, {"total_purchases": 1}, ()),
    ])
    def test_shop_delta(self, action, expected, stamps):
        """Test shop counters and timestamps per action"""
        delta = shop_delta(action)

        assert _nonzero(delta) == expected
        assert delta.stamps == stamps
