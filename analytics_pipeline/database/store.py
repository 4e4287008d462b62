"""
Projection Store

Upsert-with-increment persistence for the user, product and shop projections.

Each upsert is a single atomic statement per key: the record is created with
the event's increments when absent, otherwise the increments are added to the
stored counters. No transaction spans more than one key.

Implementations:
- SQLProjectionStore: INSERT ... ON CONFLICT DO UPDATE on PostgreSQL or SQLite
- InMemoryProjectionStore: process-local dictionaries (memory://)
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from analytics_pipeline.aggregation.increments import ProductDelta, ShopDelta, UserDelta
from analytics_pipeline.config import get_settings
from analytics_pipeline.database.connection import (
    check_database_health,
    close_database,
    get_db,
    get_engine,
    init_database,
)
from analytics_pipeline.database.models import (
    ProductAnalytics,
    ShopAnalytics,
    UserActionLog,
    UserAnalytics,
)
from analytics_pipeline.database.schemas import (
    ActionLogEntry,
    ConversionRates,
    ProductAnalyticsSnapshot,
    ProductCounters,
    ShopAnalyticsSnapshot,
    UserAnalyticsSnapshot,
)
from analytics_pipeline.ingestion.events import AnalyticsEvent

logger = structlog.get_logger(__name__)

MEMORY_URL_SCHEME = "memory://"

_PRODUCT_COUNTERS = ("views", "unique_views", "cart_adds", "wishlist_adds", "wishlist_removes", "purchases")
_PRODUCT_STAMPS = ("last_view_at", "last_cart_add_at", "last_purchase_at")
_SHOP_COUNTERS = ("visits", "total_product_views", "total_cart_adds", "total_wishlist_adds", "total_purchases")
_SHOP_STAMPS = ("last_visit_at",)
_USER_COUNTERS = ("total_views", "total_cart_adds", "total_wishlist", "total_purchases")
_USER_LAST_KNOWN = ("country", "city", "device")


class ProjectionStoreError(Exception):
    """Raised when the projection store cannot perform an operation"""
    pass


class ProjectionStore(ABC):
    """Abstract projection store"""

    @abstractmethod
    async def upsert_user(self, event: AnalyticsEvent, delta: UserDelta) -> None:
        """Apply a user delta and append the event to the user's action log"""
        pass

    @abstractmethod
    async def upsert_product(self, event: AnalyticsEvent, delta: ProductDelta) -> ProductCounters:
        """Apply a product delta and return the counters as stored afterwards"""
        pass

    @abstractmethod
    async def upsert_shop(self, event: AnalyticsEvent, delta: ShopDelta) -> None:
        pass

    @abstractmethod
    async def update_conversion_rates(self, product_id: str, rates: ConversionRates) -> bool:
        """
        Write derived rates to a product record.

        Returns:
            False if the product record does not exist
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserAnalyticsSnapshot]:
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[ProductAnalyticsSnapshot]:
        pass

    @abstractmethod
    async def get_shop(self, shop_id: str) -> Optional[ShopAnalyticsSnapshot]:
        pass

    @abstractmethod
    async def get_user_actions(self, user_id: str) -> List[ActionLogEntry]:
        pass

    @abstractmethod
    async def health(self) -> dict:
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# SQL STORE
# =============================================================================

class SQLProjectionStore(ProjectionStore):
    """
    Projection store on top of the shared async engine.

    Requires init_database() to have been called.

    Example:
        await init_database("sqlite+aiosqlite:///analytics.db")
        store = SQLProjectionStore()
        await store.upsert_user(event, user_delta(event.action))
    """

    def __init__(self, action_log_limit: Optional[int] = None):
        if action_log_limit is None:
            action_log_limit = get_settings().pipeline.action_log_limit
        self.action_log_limit = action_log_limit

    def _insert(self, table):
        """Dialect insert supporting ON CONFLICT"""
        dialect = get_engine().dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise ProjectionStoreError(f"Upserts are not supported on dialect: {dialect}")

    async def upsert_user(self, event: AnalyticsEvent, delta: UserDelta) -> None:
        table = UserAnalytics.__table__
        log = UserActionLog.__table__

        stmt = self._insert(table).values(
            user_id=event.user_id,
            last_visited=event.timestamp,
            total_views=delta.total_views,
            total_cart_adds=delta.total_cart_adds,
            total_wishlist=delta.total_wishlist,
            total_purchases=delta.total_purchases,
            country=event.country,
            city=event.city,
            device=event.device,
        )
        set_ = {"last_visited": stmt.excluded.last_visited, "updated_at": func.now()}
        for name in _USER_COUNTERS:
            set_[name] = table.c[name] + stmt.excluded[name]
        for name in _USER_LAST_KNOWN:
            set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.user_id], set_=set_)

        async with get_db() as db:
            await db.execute(stmt)
            await db.execute(insert(log).values(user_id=event.user_id, **event.summary()))

            if self.action_log_limit:
                newest = (
                    select(log.c.id)
                    .where(log.c.user_id == event.user_id)
                    .order_by(log.c.id.desc())
                    .limit(self.action_log_limit)
                )
                await db.execute(
                    delete(log).where(log.c.user_id == event.user_id, log.c.id.not_in(newest))
                )

    async def upsert_product(self, event: AnalyticsEvent, delta: ProductDelta) -> ProductCounters:
        table = ProductAnalytics.__table__

        values = {"product_id": event.product_id, "shop_id": event.shop_id}
        for name in _PRODUCT_COUNTERS:
            values[name] = getattr(delta, name)
        for name in _PRODUCT_STAMPS:
            values[name] = event.timestamp if name in delta.stamps else None

        stmt = self._insert(table).values(**values)
        set_ = {
            "shop_id": func.coalesce(table.c.shop_id, stmt.excluded.shop_id),
            "updated_at": func.now(),
        }
        for name in _PRODUCT_COUNTERS:
            set_[name] = table.c[name] + stmt.excluded[name]
        for name in _PRODUCT_STAMPS:
            set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.product_id], set_=set_
        ).returning(table.c.views, table.c.cart_adds, table.c.wishlist_adds, table.c.purchases)

        async with get_db() as db:
            row = (await db.execute(stmt)).one()

        return ProductCounters(
            views=row.views,
            cart_adds=row.cart_adds,
            wishlist_adds=row.wishlist_adds,
            purchases=row.purchases,
        )

    async def upsert_shop(self, event: AnalyticsEvent, delta: ShopDelta) -> None:
        table = ShopAnalytics.__table__

        values = {"shop_id": event.shop_id, "unique_visitors": 1}
        for name in _SHOP_COUNTERS:
            values[name] = getattr(delta, name)
        for name in _SHOP_STAMPS:
            values[name] = event.timestamp if name in delta.stamps else None

        stmt = self._insert(table).values(**values)
        set_ = {"updated_at": func.now()}
        for name in _SHOP_COUNTERS:
            set_[name] = table.c[name] + stmt.excluded[name]
        for name in _SHOP_STAMPS:
            set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.shop_id], set_=set_)

        async with get_db() as db:
            await db.execute(stmt)

    async def update_conversion_rates(self, product_id: str, rates: ConversionRates) -> bool:
        table = ProductAnalytics.__table__
        stmt = (
            update(table)
            .where(table.c.product_id == product_id)
            .values(
                view_to_cart_rate=rates.view_to_cart_rate,
                view_to_wishlist_rate=rates.view_to_wishlist_rate,
                cart_to_purchase_rate=rates.cart_to_purchase_rate,
            )
        )
        async with get_db() as db:
            result = await db.execute(stmt)
        return result.rowcount > 0

    async def get_user(self, user_id: str) -> Optional[UserAnalyticsSnapshot]:
        async with get_db() as db:
            record = await db.get(UserAnalytics, user_id)
            return UserAnalyticsSnapshot.model_validate(record) if record else None

    async def get_product(self, product_id: str) -> Optional[ProductAnalyticsSnapshot]:
        async with get_db() as db:
            record = await db.get(ProductAnalytics, product_id)
            return ProductAnalyticsSnapshot.model_validate(record) if record else None

    async def get_shop(self, shop_id: str) -> Optional[ShopAnalyticsSnapshot]:
        async with get_db() as db:
            record = await db.get(ShopAnalytics, shop_id)
            return ShopAnalyticsSnapshot.model_validate(record) if record else None

    async def get_user_actions(self, user_id: str) -> List[ActionLogEntry]:
        async with get_db() as db:
            result = await db.execute(
                select(UserActionLog)
                .where(UserActionLog.user_id == user_id)
                .order_by(UserActionLog.id)
            )
            return [ActionLogEntry.model_validate(row) for row in result.scalars()]

    async def health(self) -> dict:
        return await check_database_health()

    async def close(self) -> None:
        await close_database()


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemoryProjectionStore(ProjectionStore):
    """
    Process-local projection store.

    Every upsert completes without suspending, so each one is atomic with
    respect to other coroutines on the loop.
    """

    def __init__(self, action_log_limit: Optional[int] = None):
        if action_log_limit is None:
            action_log_limit = get_settings().pipeline.action_log_limit
        self.action_log_limit = action_log_limit
        self._users: Dict[str, UserAnalyticsSnapshot] = {}
        self._products: Dict[str, ProductAnalyticsSnapshot] = {}
        self._shops: Dict[str, ShopAnalyticsSnapshot] = {}

    async def upsert_user(self, event: AnalyticsEvent, delta: UserDelta) -> None:
        record = self._users.get(event.user_id)
        if record is None:
            record = UserAnalyticsSnapshot(user_id=event.user_id, last_visited=event.timestamp)
            self._users[event.user_id] = record

        record.last_visited = event.timestamp
        for name in _USER_COUNTERS:
            setattr(record, name, getattr(record, name) + getattr(delta, name))
        for name in _USER_LAST_KNOWN:
            value = getattr(event, name)
            if value is not None:
                setattr(record, name, value)

        record.actions.append(ActionLogEntry(**event.summary()))
        if self.action_log_limit and len(record.actions) > self.action_log_limit:
            del record.actions[: len(record.actions) - self.action_log_limit]

    async def upsert_product(self, event: AnalyticsEvent, delta: ProductDelta) -> ProductCounters:
        record = self._products.get(event.product_id)
        if record is None:
            record = ProductAnalyticsSnapshot(product_id=event.product_id, shop_id=event.shop_id)
            self._products[event.product_id] = record
        elif record.shop_id is None:
            record.shop_id = event.shop_id

        for name in _PRODUCT_COUNTERS:
            setattr(record, name, getattr(record, name) + getattr(delta, name))
        for name in delta.stamps:
            setattr(record, name, event.timestamp)

        return ProductCounters(
            views=record.views,
            cart_adds=record.cart_adds,
            wishlist_adds=record.wishlist_adds,
            purchases=record.purchases,
        )

    async def upsert_shop(self, event: AnalyticsEvent, delta: ShopDelta) -> None:
        record = self._shops.get(event.shop_id)
        if record is None:
            record = ShopAnalyticsSnapshot(shop_id=event.shop_id, unique_visitors=1)
            self._shops[event.shop_id] = record

        for name in _SHOP_COUNTERS:
            setattr(record, name, getattr(record, name) + getattr(delta, name))
        for name in delta.stamps:
            setattr(record, name, event.timestamp)

    async def update_conversion_rates(self, product_id: str, rates: ConversionRates) -> bool:
        record = self._products.get(product_id)
        if record is None:
            return False
        record.view_to_cart_rate = rates.view_to_cart_rate
        record.view_to_wishlist_rate = rates.view_to_wishlist_rate
        record.cart_to_purchase_rate = rates.cart_to_purchase_rate
        return True

    async def get_user(self, user_id: str) -> Optional[UserAnalyticsSnapshot]:
        record = self._users.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def get_product(self, product_id: str) -> Optional[ProductAnalyticsSnapshot]:
        record = self._products.get(product_id)
        return record.model_copy(deep=True) if record else None

    async def get_shop(self, shop_id: str) -> Optional[ShopAnalyticsSnapshot]:
        record = self._shops.get(shop_id)
        return record.model_copy(deep=True) if record else None

    async def get_user_actions(self, user_id: str) -> List[ActionLogEntry]:
        record = self._users.get(user_id)
        return [entry.model_copy() for entry in record.actions] if record else []

    async def health(self) -> dict:
        return {
            "status": "healthy",
            "backend": "memory",
            "users": len(self._users),
            "products": len(self._products),
            "shops": len(self._shops),
        }


async def open_projection_store(url: Optional[str] = None) -> ProjectionStore:
    """
    Create the projection store for a URL.

    memory:// selects the in-process store, any other URL is handed to
    SQLAlchemy.
    """
    url = url or get_settings().database.get_url()

    if url.startswith(MEMORY_URL_SCHEME):
        logger.info("Using in-memory projection store")
        return InMemoryProjectionStore()

    await init_database(url)
    return SQLProjectionStore()
