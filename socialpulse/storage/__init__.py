"""
Storage layer.

``StorageBackend`` names every read and write the engine performs;
``DuckDBStorage`` is the relational implementation used by the demo seeder
and the test suite.
"""

from functools import lru_cache

from socialpulse.config import get_settings

from .base import StorageBackend, StorageCapabilities
from .duckdb_storage import DuckDBStorage


@lru_cache
def get_storage() -> StorageBackend:
    """
    Get cached storage backend instance (singleton).

    Returns:
        StorageBackend implementation instance
    """
    settings = get_settings()
    return DuckDBStorage(db_path=settings.db_path)


__all__ = [
    "StorageBackend",
    "StorageCapabilities",
    "DuckDBStorage",
    "get_storage",
]
