"""
Test Suite Configuration
"""
from datetime import datetime, timezone

import pytest

from analytics_pipeline.aggregation.engine import AggregationEngine
from analytics_pipeline.config import Settings
from analytics_pipeline.database.connection import close_database, init_database
from analytics_pipeline.database.store import InMemoryProjectionStore, SQLProjectionStore
from analytics_pipeline.ingestion.events import AnalyticsEvent
from analytics_pipeline.ingestion.queue import EventQueue


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def memory_store() -> InMemoryProjectionStore:
    """In-process projection store without an action log cap"""
    return InMemoryProjectionStore(action_log_limit=0)


@pytest.fixture
async def sql_store(tmp_path):
    """SQLite-backed projection store, one database file per test"""
    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}", create_tables=True)
    yield SQLProjectionStore(action_log_limit=0)
    await close_database()


@pytest.fixture
def event_queue() -> EventQueue:
    return EventQueue()


@pytest.fixture
def engine(memory_store) -> AggregationEngine:
    return AggregationEngine(memory_store)


@pytest.fixture
def event_time() -> datetime:
    return datetime(2025, 1, 15, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_event(event_time):
    """Factory for validated events"""
    def _make(action: str = "product_view", user_id: str = "u1", **fields) -> AnalyticsEvent:
        fields.setdefault("timestamp", event_time)
        return AnalyticsEvent(userId=user_id, action=action, **fields)

    return _make
