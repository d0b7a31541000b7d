"""Session store interface for refresh-token sessions."""

from __future__ import annotations

from typing import Protocol

from auth.models import SessionRecord


class SessionStore(Protocol):
    async def create(self, record: SessionRecord, ttl_seconds: int) -> None:
        ...

    async def get(self, session_id: str) -> SessionRecord | None:
        ...

    async def is_revoked(self, session_id: str) -> bool:
        ...

    async def get_current_token_id(self, session_id: str) -> str | None:
        ...

    async def rotate(
        self, session_id: str, expected_token_id: str, new_token_id: str, ttl_seconds: int
    ) -> bool:
        ...

    async def revoke(self, session_id: str, ttl_seconds: int) -> None:
        ...

    async def list_for_user(self, user_id: str) -> list[SessionRecord]:
        ...
