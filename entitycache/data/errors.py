"""
Error taxonomy for the entity cache.

Every failure raised by this package derives from EntityCacheError so callers
can tell cache failures apart from their own. Errors are always raised
synchronously to the immediate caller; nothing here retries.
"""


class EntityCacheError(Exception):
    """Base class for all entity cache errors."""


class NotFoundError(EntityCacheError, LookupError):
    """A type, entity or schema field is absent from the cache or schema."""


class InvariantViolationError(EntityCacheError):
    """Persisted or supplied state breaks a cache invariant."""


class UnsupportedEnvironmentError(EntityCacheError):
    """No usable durable key-value substrate is available."""
