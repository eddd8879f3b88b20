"""
Entity cache settings.

Settings can be built directly or read from the environment (and a `.env`
file, if present) with CacheSettings.from_env().
"""
import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_PREFIX = "LOCAL_DATA_CACHE:"


class CacheSettings(BaseModel):
    """Configuration of a LocalStore and its durable storage."""
    prefix: str = Field(
        default=DEFAULT_PREFIX,
        description="Prefix of every durable key owned by the store"
    )
    db_version: str = Field(
        default="",
        description="Running schema version; a persisted mismatch wipes the namespace"
    )
    storage_backend: Literal["memory", "sql"] = Field(
        default="memory",
        description="Durable key-value substrate to use"
    )
    database_url: str = Field(
        default="sqlite:///entity_cache.db",
        description="SQLAlchemy URL used by the sql backend"
    )

    @classmethod
    def from_env(cls) -> "CacheSettings":
        load_dotenv()
        return cls(
            prefix=os.getenv("ENTITY_CACHE_PREFIX", DEFAULT_PREFIX),
            db_version=os.getenv("ENTITY_CACHE_DB_VERSION", ""),
            storage_backend=os.getenv("ENTITY_CACHE_BACKEND", "memory"),
            database_url=os.getenv("ENTITY_CACHE_DATABASE_URL", "sqlite:///entity_cache.db"),
        )
