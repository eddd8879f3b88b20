"""
Durable key-value substrate protocol.

All values are strings. A missing key (`get` returns None) is a distinct
state from an empty string value.
"""
from typing import List, Optional, Protocol


class KeyValueStorage(Protocol):
    """Synchronous string key-value store used by LocalStore."""

    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...
    def keys(self) -> List[str]: ...
