"""In-memory key-value substrate for tests and single-process sessions."""
import logging
from typing import Dict, List, Optional


class InMemoryKeyValueStorage:
    """
    Dict-backed storage. Data lives as long as the instance does, so sharing
    one instance across LocalStore constructions simulates a restart.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("InMemoryKeyValueStorage")
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)
