"""
SQL key-value substrate.

Stores every cache entry as one row of the `entity_cache_entries` table.
Accepts a session_factory (anything producing SQLAlchemy sessions usable as
context managers, e.g. `sessionmaker(bind=engine)`), so the caller owns the
engine and its lifetime.
"""
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy import String, Text, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class CacheEntrySQL(Base):
    """One persisted cache entry."""
    __tablename__ = "entity_cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"CacheEntrySQL({self.key!r})"


def create_tables(engine: Engine) -> None:
    """Create the cache table if it does not exist yet."""
    Base.metadata.create_all(engine)


class SqlKeyValueStorage:
    """Key-value storage backed by a single SQL table."""

    def __init__(self, session_factory: Callable[..., Any]) -> None:
        self._logger = logging.getLogger("SqlKeyValueStorage")
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as sess:
            row = sess.get(CacheEntrySQL, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        with self._session_factory() as sess:
            sess.merge(CacheEntrySQL(key=key, value=value))
            sess.commit()
        self._logger.debug(f"Wrote {len(value)} chars to {key!r}")

    def delete(self, key: str) -> None:
        with self._session_factory() as sess:
            sess.execute(delete(CacheEntrySQL).where(CacheEntrySQL.key == key))
            sess.commit()

    def keys(self) -> List[str]:
        with self._session_factory() as sess:
            return list(sess.scalars(select(CacheEntrySQL.key).order_by(CacheEntrySQL.key)).all())
