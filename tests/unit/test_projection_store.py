"""
Unit Tests - SQL Projection Store

Runs the upserts against SQLite. SQLite returns timestamps without a zone, so
comparisons are made on naive UTC values.
"""
from datetime import timedelta

from analytics_pipeline.aggregation.engine import AggregationEngine
from analytics_pipeline.aggregation.increments import product_delta, shop_delta, user_delta
from analytics_pipeline.database.schemas import ConversionRates
from analytics_pipeline.database.store import (
    InMemoryProjectionStore,
    SQLProjectionStore,
    open_projection_store,
)


def _naive(value):
    return value.replace(tzinfo=None)


class TestUserUpserts:
    """Tests for the user projection"""

    async def test_create_then_increment(self, sql_store, make_event):
        """Test the first event creates the record and later ones add to it"""
        view = make_event("product_view", productId="p1", country="US")
        await sql_store.upsert_user(view, user_delta(view.action))
        purchase = make_event("purchase", productId="p1")
        await sql_store.upsert_user(purchase, user_delta(purchase.action))

        user = await sql_store.get_user("u1")

        assert user.total_views == 1
        assert user.total_purchases == 1
        assert user.total_cart_adds == 0
        assert user.country == "US"

    async def test_wishlist_goes_negative(self, sql_store, make_event):
        """Test the wishlist balance is signed"""
        event = make_event("remove_from_wishlist")
        await sql_store.upsert_user(event, user_delta(event.action))

        assert (await sql_store.get_user("u1")).total_wishlist == -1

    async def test_action_log_order(self, sql_store, make_event, event_time):
        """Test the action log keeps application order"""
        actions = ["product_view", "add_to_cart", "purchase"]
        for i, action in enumerate(actions):
            event = make_event(action, productId="p1", timestamp=event_time + timedelta(seconds=i))
            await sql_store.upsert_user(event, user_delta(event.action))

        entries = await sql_store.get_user_actions("u1")
        user = await sql_store.get_user("u1")

        assert [entry.action for entry in entries] == actions
        assert [entry.action for entry in user.actions] == actions
        assert _naive(user.last_visited) == _naive(event_time + timedelta(seconds=2))

    async def test_action_log_cap(self, sql_store, make_event):
        """Test only the newest entries are kept when capped"""
        store = SQLProjectionStore(action_log_limit=2)
        for action in ["product_view", "add_to_cart", "purchase"]:
            event = make_event(action)
            await store.upsert_user(event, user_delta(event.action))

        entries = await store.get_user_actions("u1")
        user = await store.get_user("u1")

        assert [entry.action for entry in entries] == ["add_to_cart", "purchase"]
        assert user.total_views == 1


class TestProductUpserts:
    """Tests for the product projection"""

    async def test_returns_stored_counters(self, sql_store, make_event):
        """Test upserts return the counters after the increment"""
        event = make_event("product_view", productId="p1", shopId="s1")
        await sql_store.upsert_product(event, product_delta(event.action))
        counters = await sql_store.upsert_product(event, product_delta(event.action))

        assert counters.views == 2
        assert counters.cart_adds == 0

    async def test_stamps_are_preserved(self, sql_store, make_event, event_time):
        """Test other actions leave last_*_at untouched"""
        view = make_event("product_view", productId="p1")
        await sql_store.upsert_product(view, product_delta(view.action))
        cart = make_event("add_to_cart", productId="p1", timestamp=event_time + timedelta(minutes=1))
        await sql_store.upsert_product(cart, product_delta(cart.action))

        product = await sql_store.get_product("p1")

        assert _naive(product.last_view_at) == _naive(event_time)
        assert _naive(product.last_cart_add_at) == _naive(event_time + timedelta(minutes=1))
        assert product.last_purchase_at is None

    async def test_shop_id_is_kept(self, sql_store, make_event):
        """Test shop_id is set once and never overwritten"""
        first = make_event("product_view", productId="p1")
        await sql_store.upsert_product(first, product_delta(first.action))
        second = make_event("product_view", productId="p1", shopId="s1")
        await sql_store.upsert_product(second, product_delta(second.action))
        third = make_event("product_view", productId="p1", shopId="s2")
        await sql_store.upsert_product(third, product_delta(third.action))

        assert (await sql_store.get_product("p1")).shop_id == "s1"

    async def test_conversion_rates(self, sql_store, make_event):
        """Test rates are written to an existing record only"""
        event = make_event("product_view", productId="p1")
        await sql_store.upsert_product(event, product_delta(event.action))
        rates = ConversionRates(view_to_cart_rate=20.0, view_to_wishlist_rate=10.0, cart_to_purchase_rate=33.33)

        assert await sql_store.update_conversion_rates("p1", rates)
        assert not await sql_store.update_conversion_rates("missing", rates)

        product = await sql_store.get_product("p1")
        assert product.view_to_cart_rate == 20.0
        assert product.cart_to_purchase_rate == 33.33


class TestShopUpserts:
    """Tests for the shop projection"""

    async def test_unique_visitors_seeded_once(self, sql_store, make_event):
        """Test unique_visitors starts at 1 and stays there"""
        for user_id in ["u1", "u2", "u3"]:
            event = make_event("shop_visit", user_id=user_id, shopId="s1")
            await sql_store.upsert_shop(event, shop_delta(event.action))

        shop = await sql_store.get_shop("s1")

        assert shop.visits == 3
        assert shop.unique_visitors == 1

    async def test_last_visit_only_on_visits(self, sql_store, make_event, event_time):
        """Test non-visit actions keep last_visit_at"""
        visit = make_event("shop_visit", shopId="s1")
        await sql_store.upsert_shop(visit, shop_delta(visit.action))
        purchase = make_event("purchase", shopId="s1", timestamp=event_time + timedelta(hours=1))
        await sql_store.upsert_shop(purchase, shop_delta(purchase.action))

        shop = await sql_store.get_shop("s1")

        assert _naive(shop.last_visit_at) == _naive(event_time)
        assert shop.total_purchases == 1


class TestStoreLifecycle:
    """Tests for store selection and health"""

    async def test_missing_records(self, sql_store):
        """Test reads of unknown keys"""
        assert await sql_store.get_user("nobody") is None
        assert await sql_store.get_product("nothing") is None
        assert await sql_store.get_shop("nowhere") is None
        assert await sql_store.get_user_actions("nobody") == []

    async def test_health(self, sql_store):
        """Test the SQL store reports its dialect"""
        health = await sql_store.health()

        assert health["status"] == "healthy"
        assert health["dialect"] == "sqlite"

    async def test_memory_url(self):
        """Test memory:// selects the in-process store"""
        store = await open_projection_store("memory://")

        assert isinstance(store, InMemoryProjectionStore)
        assert (await store.health())["backend"] == "memory"


class TestEndToEnd:
    """Engine against the SQL store"""

    async def test_funnel(self, sql_store, make_event):
        """Test a view, cart add and purchase across all projections"""
        engine = AggregationEngine(sql_store)
        result = await engine.apply_batch([
            make_event("product_view", productId="p1", shopId="s1"),
            make_event("product_view", productId="p1", shopId="s1"),
            make_event("add_to_cart", productId="p1", shopId="s1"),
            make_event("purchase", productId="p1", shopId="s1"),
        ])

        assert result.succeeded == 4

        user = await sql_store.get_user("u1")
        product = await sql_store.get_product("p1")
        shop = await sql_store.get_shop("s1")

        assert (user.total_views, user.total_cart_adds, user.total_purchases) == (2, 1, 1)
        assert len(user.actions) == 4
        assert (product.views, product.cart_adds, product.purchases) == (2, 1, 1)
        assert product.view_to_cart_rate == 50.0
        assert product.cart_to_purchase_rate == 100.0
        assert (shop.total_product_views, shop.total_cart_adds, shop.total_purchases) == (2, 1, 1)
