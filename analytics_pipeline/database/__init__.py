"""
Database Module
"""
from .connection import init_database, close_database, get_db
from .models import Base
from .store import (
    InMemoryProjectionStore,
    ProjectionStore,
    ProjectionStoreError,
    SQLProjectionStore,
    open_projection_store,
)

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "Base",
    "InMemoryProjectionStore",
    "ProjectionStore",
    "ProjectionStoreError",
    "SQLProjectionStore",
    "open_projection_store",
]
