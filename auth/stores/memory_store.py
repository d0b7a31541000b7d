"""In-memory auth stores."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable
from uuid import uuid4


class MemoryUserStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users_by_email: dict[str, dict[str, Any]] = {}
        self._users_by_id: dict[str, dict[str, Any]] = {}

    async def get_by_email(self, email: str) -> dict | None:
        async with self._lock:
            user = self._users_by_email.get(email.lower())
            return dict(user) if user else None

    async def get_by_id(self, user_id: str) -> dict | None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            return dict(user) if user else None

    async def create_user(self, data: dict) -> dict:
        async with self._lock:
            payload = dict(data)
            payload["email"] = payload["email"].lower()
            if payload["email"] in self._users_by_email:
                raise ValueError("User already exists")
            payload["id"] = payload.get("id") or str(uuid4())
            payload.setdefault("role", "mentee")
            payload.setdefault("is_active", True)
            payload["created_at"] = payload.get("created_at", int(time.time()))
            payload["updated_at"] = payload.get("updated_at", payload["created_at"])
            self._users_by_email[payload["email"]] = payload
            self._users_by_id[payload["id"]] = payload
            return dict(payload)

    async def update_user(self, user_id: str, updates: dict) -> dict:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            if not user:
                raise ValueError("User not found")
            new_email = updates.get("email")
            if new_email is not None:
                new_email = new_email.lower()
                owner = self._users_by_email.get(new_email)
                if owner is not None and owner["id"] != user_id:
                    raise ValueError("User already exists")
                self._users_by_email.pop(user["email"], None)
            for key, value in updates.items():
                user[key] = value
            if new_email is not None:
                user["email"] = new_email
            user["updated_at"] = int(time.time())
            self._users_by_email[user["email"]] = user
            return dict(user)

    async def update_password(self, user_id: str, hashed_password: str) -> None:
        await self.update_user(user_id, {"hashed_password": hashed_password})


class MemoryKeyValueStore:
    """Process-local stand-in for Redis.

    Every operation runs under one lock, which makes ``compare_and_set``
    atomic for coroutines sharing the store. Expired keys are dropped lazily.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = asyncio.Lock()
        self._clock = clock
        self._values: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}
        self._expiry: dict[str, float] = {}

    def _expire_at(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + max(1, int(ttl_seconds))

    def _purge(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and deadline <= self._clock():
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._expiry.pop(key, None)

    def _put(self, key: str, value: str, ttl_seconds: int | None) -> None:
        self._values[key] = value
        deadline = self._expire_at(ttl_seconds)
        if deadline is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = deadline

    async def get(self, key: str) -> str | None:
        async with self._lock:
            self._purge(key)
            return self._values.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._put(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._expiry.pop(key, None)

    async def compare_and_set(
        self, key: str, expected: str, value: str, ttl_seconds: int | None = None
    ) -> bool:
        async with self._lock:
            self._purge(key)
            if self._values.get(key) != expected:
                return False
            self._put(key, value, ttl_seconds)
            return True

    async def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        async with self._lock:
            self._purge(key)
            current = self._values.get(key)
            count = int(current) + 1 if current is not None else 1
            if current is None:
                self._put(key, str(count), ttl_seconds)
            else:
                self._values[key] = str(count)
            return count

    async def add_to_set(self, key: str, member: str, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._purge(key)
            self._sets.setdefault(key, set()).add(member)
            deadline = self._expire_at(ttl_seconds)
            if deadline is not None:
                # Membership lives as long as its longest-lived member
                self._expiry[key] = max(deadline, self._expiry.get(key, deadline))

    async def remove_from_set(self, key: str, member: str) -> None:
        async with self._lock:
            members = self._sets.get(key)
            if members:
                members.discard(member)

    async def set_members(self, key: str) -> set[str]:
        async with self._lock:
            self._purge(key)
            return set(self._sets.get(key, set()))


class MemoryAuditLogStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.events: list[dict[str, Any]] = []

    async def append(self, event: dict) -> None:
        async with self._lock:
            self.events.append(dict(event))


class MemoryRateLimiter:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._hits: dict[str, list[float]] = {}

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        async with self._lock:
            hits = self._hits.get(key, [])
            hits = [timestamp for timestamp in hits if (now - timestamp) < window_seconds]
            if len(hits) >= limit:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._hits.pop(key, None)
