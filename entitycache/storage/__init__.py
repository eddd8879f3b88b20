"""
Durable key-value substrates for the entity cache.

Use create_storage to build the backend named in CacheSettings, or construct
InMemoryKeyValueStorage / SqlKeyValueStorage directly.
"""
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from entitycache.data.config import CacheSettings
from entitycache.data.errors import UnsupportedEnvironmentError
from .base import KeyValueStorage
from .memory import InMemoryKeyValueStorage
from .sql import CacheEntrySQL, SqlKeyValueStorage, create_tables

logger = logging.getLogger("entitycache.storage")


def create_storage(settings: CacheSettings) -> KeyValueStorage:
    """
    Build the storage backend configured in settings.

    Raises:
        UnsupportedEnvironmentError: If the backend is unknown or the
            database cannot be reached
    """
    if settings.storage_backend == "memory":
        return InMemoryKeyValueStorage()
    if settings.storage_backend == "sql":
        try:
            engine = create_engine(settings.database_url)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            create_tables(engine)
        except SQLAlchemyError as e:
            logger.error(f"Cannot use database {settings.database_url}: {e}")
            raise UnsupportedEnvironmentError(
                f"Durable storage unavailable at {settings.database_url}"
            ) from e
        logger.info(f"Using SQL storage at {settings.database_url}")
        return SqlKeyValueStorage(sessionmaker(bind=engine))
    raise UnsupportedEnvironmentError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "KeyValueStorage",
    "InMemoryKeyValueStorage",
    "SqlKeyValueStorage",
    "CacheEntrySQL",
    "create_tables",
    "create_storage",
]
