"""Audit sink interface for security events."""

from __future__ import annotations

from typing import Any, Protocol


class AuditSink(Protocol):
    async def record_token_reuse_attempt(self, *, user_id: str, session_id: str, token_id: str) -> None:
        ...

    async def log_logout(
        self,
        *,
        user_id: str,
        email: str,
        session_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        ...

    async def log_refresh_token(
        self,
        *,
        user_id: str,
        email: str,
        session_id: str,
        success: bool,
        failure_reason: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        ...

    async def log_registration(self, *, user_id: str, email: str, **details: Any) -> None:
        ...

    async def log_login(self, *, user_id: str, email: str, session_id: str, **details: Any) -> None:
        ...

    async def log_session_revoked(self, *, user_id: str, session_id: str, reason: str) -> None:
        ...


class AuditLogStore(Protocol):
    async def append(self, event: dict) -> None:
        ...
