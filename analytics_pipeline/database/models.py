"""
Database Models - Aggregate Projections

Denormalized summary records, one per entity key:

- UserAnalytics: per-user activity counters and last-known location/device
- UserActionLog: the user's ordered action history, capped per user
- ProductAnalytics: per-product funnel counters and conversion rates
- ShopAnalytics: per-shop traffic counters

Entity ids are references only; there is no catalog to validate them against.
"""

from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class UserAnalytics(Base):
    """
    User Projection

    Created on a user's first event and updated on every later one.
    total_wishlist is signed: removals without a matching add push it below zero.
    """
    __tablename__ = "user_analytics"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_visited: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    total_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cart_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_wishlist: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Last known values
    country: Mapped[Optional[str]] = mapped_column(String(100))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    device: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    actions: Mapped[List["UserActionLog"]] = relationship(
        order_by="UserActionLog.id",
        lazy="selectin",
        viewonly=True,
    )


class UserActionLog(Base):
    """
    User Action History

    One row per applied event. Older rows beyond the configured per-user
    limit are pruned on write.
    """
    __tablename__ = "user_action_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_analytics.user_id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(64))
    shop_id: Mapped[Optional[str]] = mapped_column(String(64))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    country: Mapped[Optional[str]] = mapped_column(String(100))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    device: Mapped[Optional[str]] = mapped_column(String(255))

    __table_args__ = (
        Index("ix_user_action_log_user_id", "user_id", "id"),
    )


class ProductAnalytics(Base):
    """
    Product Projection

    Funnel counters plus conversion rates derived from them. unique_views is
    counted exactly like views.
    """
    __tablename__ = "product_analytics"

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    shop_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unique_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cart_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wishlist_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wishlist_removes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_view_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_cart_add_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_purchase_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Percentages, two decimals
    view_to_cart_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    view_to_wishlist_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cart_to_purchase_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ShopAnalytics(Base):
    """
    Shop Projection

    unique_visitors is seeded with 1 when the record is created and is not
    incremented afterwards.
    """
    __tablename__ = "shop_analytics"

    shop_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    visits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unique_visitors: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_product_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cart_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_wishlist_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_visit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
