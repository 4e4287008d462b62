"""
Projection Snapshots

Read models returned by projection stores, plus the small value types passed
between the aggregation engine and the store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionLogEntry(BaseModel):
    """One applied event in a user's action history"""

    model_config = ConfigDict(from_attributes=True)

    action: str
    product_id: Optional[str] = None
    shop_id: Optional[str] = None
    timestamp: datetime
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None


class UserAnalyticsSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    last_visited: datetime
    total_views: int = 0
    total_cart_adds: int = 0
    total_wishlist: int = 0
    total_purchases: int = 0
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None
    actions: List[ActionLogEntry] = Field(default_factory=list)


class ProductAnalyticsSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    shop_id: Optional[str] = None
    views: int = 0
    unique_views: int = 0
    cart_adds: int = 0
    wishlist_adds: int = 0
    wishlist_removes: int = 0
    purchases: int = 0
    last_view_at: Optional[datetime] = None
    last_cart_add_at: Optional[datetime] = None
    last_purchase_at: Optional[datetime] = None
    view_to_cart_rate: float = 0.0
    view_to_wishlist_rate: float = 0.0
    cart_to_purchase_rate: float = 0.0


class ShopAnalyticsSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    shop_id: str
    visits: int = 0
    unique_visitors: int = 1
    total_product_views: int = 0
    total_cart_adds: int = 0
    total_wishlist_adds: int = 0
    total_purchases: int = 0
    last_visit_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProductCounters:
    """Counters of a product record right after an upsert"""
    views: int
    cart_adds: int
    wishlist_adds: int
    purchases: int


@dataclass(frozen=True)
class ConversionRates:
    """Percentages derived from product counters"""
    view_to_cart_rate: float
    view_to_wishlist_rate: float
    cart_to_purchase_rate: float
