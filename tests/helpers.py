import time
from datetime import timedelta
from unittest.mock import AsyncMock

from auth.security import TokenCodec
from auth.services.audit_service import AuditService
from auth.services.auth_service import AuthService
from auth.services.email_service import EmailService
from auth.stores.kv_session_store import KeyValueSessionStore
from auth.stores.memory_store import MemoryKeyValueStore, MemoryUserStore


class ServiceHarness:
    """AuthService wired to in-memory stores and mocked collaborators."""

    def __init__(self, clock=time.time, refresh_ttl: timedelta | None = None) -> None:
        self.users = MemoryUserStore()
        self.kv = MemoryKeyValueStore(clock=clock)
        self.sessions = KeyValueSessionStore(self.kv, prefix="auth", clock=clock)
        self.codec = TokenCodec(
            access_secret="access-secret",
            refresh_secret="refresh-secret",
            refresh_ttl=refresh_ttl,
        )
        self.audit = AsyncMock(spec=AuditService)
        self.email = AsyncMock(spec=EmailService)
        self.service = AuthService(
            user_store=self.users,
            session_store=self.sessions,
            kv_store=self.kv,
            email_service=self.email,
            audit_sink=self.audit,
            token_codec=self.codec,
        )

    async def add_user(self, user_id="user-1", email="test@example.com", **fields) -> dict:
        data = {
            "id": user_id,
            "email": email,
            "hashed_password": fields.pop("hashed_password", "not-a-real-hash"),
            "first_name": "Test",
            "last_name": "User",
            "is_active": True,
        }
        data.update(fields)
        return await self.users.create_user(data)

    async def seed_session(self, session_id, token_id, user_id="user-1", email="test@example.com", family="family-1") -> str:
        """Store a live session and return a refresh token for it."""
        await self.kv.set(f"auth:session:{session_id}:current-jti", token_id)
        return self.refresh_token(session_id, token_id, user_id=user_id, email=email, family=family)

    def refresh_token(self, session_id, token_id, user_id="user-1", email="test@example.com", family="family-1") -> str:
        return self.codec.sign(
            {
                "sub": user_id,
                "email": email,
                "sid": session_id,
                "family": family,
                "jti": token_id,
                "type": "refresh",
            }
        )

    def claims(self, token: str) -> dict:
        return self.codec.verify(token)


class FakeClock:
    """Settable stand-in for ``time.time``."""

    def __init__(self, now: float | None = None):
        self.now = time.time() if now is None else now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
