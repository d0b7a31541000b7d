"""Key-value store interface backing session state and one-time codes."""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def compare_and_set(
        self, key: str, expected: str, value: str, ttl_seconds: int | None = None
    ) -> bool:
        """Atomically replace ``key`` with ``value`` only if it currently holds ``expected``."""
        ...

    async def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        """Atomically add one to a counter; the TTL is set when the counter is created."""
        ...

    async def add_to_set(self, key: str, member: str, ttl_seconds: int | None = None) -> None:
        ...

    async def remove_from_set(self, key: str, member: str) -> None:
        ...

    async def set_members(self, key: str) -> set[str]:
        ...
