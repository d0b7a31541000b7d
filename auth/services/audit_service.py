"""Security audit trail for session events."""

from __future__ import annotations

import logging
import time
from typing import Any

from auth.interfaces.audit_sink import AuditLogStore

logger = logging.getLogger("auth.audit")


class AuditService:
    """Writes every event to the ``auth.audit`` logger and, optionally, a store."""

    def __init__(self, log_store: AuditLogStore | None = None) -> None:
        self._log_store = log_store

    async def _emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        record = {"event": event, "timestamp": int(time.time()), **fields}
        logger.log(level, "auth event %s", event, extra={"audit": record})
        if self._log_store is not None:
            await self._log_store.append(record)

    async def record_token_reuse_attempt(self, *, user_id: str, session_id: str, token_id: str) -> None:
        await self._emit(
            "token_reuse",
            logging.WARNING,
            user_id=user_id,
            session_id=session_id,
            token_id=token_id,
            success=False,
        )

    async def log_logout(
        self,
        *,
        user_id: str,
        email: str,
        session_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        await self._emit(
            "logout",
            user_id=user_id,
            email=email,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

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
        await self._emit(
            "refresh_token",
            logging.INFO if success else logging.WARNING,
            user_id=user_id,
            email=email,
            session_id=session_id,
            success=success,
            failure_reason=failure_reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_registration(self, *, user_id: str, email: str, **details: Any) -> None:
        await self._emit("registration", user_id=user_id, email=email, **details)

    async def log_login(self, *, user_id: str, email: str, session_id: str, **details: Any) -> None:
        await self._emit("login", user_id=user_id, email=email, session_id=session_id, **details)

    async def log_session_revoked(self, *, user_id: str, session_id: str, reason: str) -> None:
        await self._emit("session_revoked", user_id=user_id, session_id=session_id, reason=reason)
