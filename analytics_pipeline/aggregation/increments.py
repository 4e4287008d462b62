"""
Per-Action Increment Table

Maps each analytics action to the counter deltas it applies to the user,
product and shop projections.
"""

from dataclasses import dataclass
from typing import Tuple, assert_never

from analytics_pipeline.ingestion.events import AnalyticsAction


@dataclass(frozen=True)
class UserDelta:
    """Counter changes on a UserAnalytics record"""
    total_views: int = 0
    total_cart_adds: int = 0
    total_wishlist: int = 0
    total_purchases: int = 0


@dataclass(frozen=True)
class ProductDelta:
    """Counter changes on a ProductAnalytics record"""
    views: int = 0
    unique_views: int = 0
    cart_adds: int = 0
    wishlist_adds: int = 0
    wishlist_removes: int = 0
    purchases: int = 0
    # Timestamp columns stamped with the event time
    stamps: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ShopDelta:
    """Counter changes on a ShopAnalytics record"""
    visits: int = 0
    total_product_views: int = 0
    total_cart_adds: int = 0
    total_wishlist_adds: int = 0
    total_purchases: int = 0
    stamps: Tuple[str, ...] = ()


def user_delta(action: AnalyticsAction) -> UserDelta:
    match action:
        case AnalyticsAction.PRODUCT_VIEW:
            return UserDelta(total_views=1)
        case AnalyticsAction.ADD_TO_CART:
            return UserDelta(total_cart_adds=1)
        case AnalyticsAction.ADD_TO_WISHLIST:
            return UserDelta(total_wishlist=1)
        case AnalyticsAction.REMOVE_FROM_WISHLIST:
            return UserDelta(total_wishlist=-1)
        case AnalyticsAction.PURCHASE:
            return UserDelta(total_purchases=1)
        case AnalyticsAction.REMOVE_FROM_CART | AnalyticsAction.SHOP_VISIT:
            return UserDelta()
        case _:
            assert_never(action)


def product_delta(action: AnalyticsAction) -> ProductDelta:
    match action:
        case AnalyticsAction.PRODUCT_VIEW:
            return ProductDelta(views=1, unique_views=1, stamps=("last_view_at",))
        case AnalyticsAction.ADD_TO_CART:
            return ProductDelta(cart_adds=1, stamps=("last_cart_add_at",))
        case AnalyticsAction.ADD_TO_WISHLIST:
            return ProductDelta(wishlist_adds=1)
        case AnalyticsAction.REMOVE_FROM_WISHLIST:
            return ProductDelta(wishlist_removes=1)
        case AnalyticsAction.PURCHASE:
            return ProductDelta(purchases=1, stamps=("last_purchase_at",))
        case AnalyticsAction.REMOVE_FROM_CART | AnalyticsAction.SHOP_VISIT:
            return ProductDelta()
        case _:
            assert_never(action)


def shop_delta(action: AnalyticsAction) -> ShopDelta:
    match action:
        case AnalyticsAction.SHOP_VISIT:
            return ShopDelta(visits=1, stamps=("last_visit_at",))
        case AnalyticsAction.PRODUCT_VIEW:
            return ShopDelta(total_product_views=1)
        case AnalyticsAction.ADD_TO_CART:
            return ShopDelta(total_cart_adds=1)
        case AnalyticsAction.ADD_TO_WISHLIST:
            return ShopDelta(total_wishlist_adds=1)
        case AnalyticsAction.PURCHASE:
            return ShopDelta(total_purchases=1)
        case AnalyticsAction.REMOVE_FROM_CART | AnalyticsAction.REMOVE_FROM_WISHLIST:
            return ShopDelta()
        case _:
            assert_never(action)
