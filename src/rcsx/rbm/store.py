"""Keyed record stores backing the conversation tracker."""

from __future__ import annotations

from typing import Protocol


class KeyedStore[T](Protocol):
    """Minimal contract for a store of records keyed by id."""

    def get(self, key: str) -> T | None: ...

    def put(self, key: str, value: T) -> None: ...

    def delete(self, key: str) -> bool: ...

    def values(self) -> list[T]: ...

    def count(self) -> int: ...


class InMemoryStore[T]:
    """Volatile dict-backed store; state lives for the process lifetime only."""

    def __init__(self) -> None:
        self._records: dict[str, T] = {}

    def get(self, key: str) -> T | None:
        return self._records.get(key)

    def put(self, key: str, value: T) -> None:
        self._records[key] = value

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def values(self) -> list[T]:
        return list(self._records.values())

    def count(self) -> int:
        return len(self._records)
