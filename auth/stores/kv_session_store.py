"""Refresh-token session store layered over a key-value store."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from auth.config import AuthConfig
from auth.interfaces.kv_store import KeyValueStore
from auth.models import SessionRecord

logger = logging.getLogger(__name__)

REVOKED_MARKER = "1"


class KeyValueSessionStore:
    """
    Keeps each session as a handful of keys:

        <prefix>:session:<sid>:current-jti   jti of the one valid refresh token
        <prefix>:session:<sid>:revoked       "1" once revoked
        <prefix>:session:<sid>:meta          JSON of the immutable session fields
        <prefix>:user:<uid>:sessions         set of the user's session ids

    Rotation goes through ``compare_and_set`` on the current-jti key, so two
    callers presenting the same token can never both win.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        prefix: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self._prefix = prefix or AuthConfig.SESSION_KEY_PREFIX
        self._clock = clock

    def current_jti_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}:current-jti"

    def revoked_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}:revoked"

    def meta_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}:meta"

    def user_sessions_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:sessions"

    async def create(self, record: SessionRecord, ttl_seconds: int) -> None:
        if record.current_token_id is None:
            raise ValueError("A new session needs a current token id")
        await self._kv.set(self.meta_key(record.session_id), json.dumps(record.meta()), ttl_seconds)
        await self._kv.set(self.current_jti_key(record.session_id), record.current_token_id, ttl_seconds)
        await self._kv.add_to_set(self.user_sessions_key(record.user_id), record.session_id, ttl_seconds)

    async def _load_meta(self, session_id: str) -> dict[str, Any] | None:
        raw = await self._kv.get(self.meta_key(session_id))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable session metadata for %s", session_id)
            return None

    async def get(self, session_id: str) -> SessionRecord | None:
        meta = await self._load_meta(session_id)
        if meta is None:
            return None
        record = SessionRecord(**meta)
        return record.with_state(
            current_token_id=await self.get_current_token_id(session_id),
            revoked=await self.is_revoked(session_id),
        )

    async def is_revoked(self, session_id: str) -> bool:
        return await self._kv.get(self.revoked_key(session_id)) == REVOKED_MARKER

    async def get_current_token_id(self, session_id: str) -> str | None:
        return await self._kv.get(self.current_jti_key(session_id))

    async def rotate(
        self, session_id: str, expected_token_id: str, new_token_id: str, ttl_seconds: int
    ) -> bool:
        rotated = await self._kv.compare_and_set(
            self.current_jti_key(session_id), expected_token_id, new_token_id, ttl_seconds
        )
        if not rotated:
            return False

        # Metadata and the user's index live as long as the newest refresh token
        meta = await self._load_meta(session_id)
        if meta is not None:
            meta["expires_at"] = int(self._clock()) + int(ttl_seconds)
            await self._kv.set(self.meta_key(session_id), json.dumps(meta), ttl_seconds)
            await self._kv.add_to_set(self.user_sessions_key(meta["user_id"]), session_id, ttl_seconds)
        return True

    async def revoke(self, session_id: str, ttl_seconds: int) -> None:
        # Mark first so a concurrent refresh sees the flag before the jti disappears
        await self._kv.set(self.revoked_key(session_id), REVOKED_MARKER, max(1, ttl_seconds))
        await self._kv.delete(self.current_jti_key(session_id))

    async def list_for_user(self, user_id: str) -> list[SessionRecord]:
        records: list[SessionRecord] = []
        for session_id in await self._kv.set_members(self.user_sessions_key(user_id)):
            record = await self.get(session_id)
            if record is None:
                # Metadata expired with the refresh token
                await self._kv.remove_from_set(self.user_sessions_key(user_id), session_id)
                continue
            records.append(record)
        records.sort(key=lambda item: item.created_at, reverse=True)
        return records
