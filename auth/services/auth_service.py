"""Core auth service: login, refresh-token rotation, logout and revocation."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Awaitable, Coroutine
from uuid import uuid4

from auth.config import AuthConfig
from auth.exceptions import (
    AuthException,
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from auth.interfaces.audit_sink import AuditSink
from auth.interfaces.kv_store import KeyValueStore
from auth.interfaces.session_store import SessionStore
from auth.interfaces.user_store import UserStore
from auth.models import RequestContext, SessionRecord
from auth.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    TokenCodec,
    hash_password,
    new_token_id,
)
from auth.services.credentials import CredentialVerifier
from auth.services.email_service import EmailService

logger = logging.getLogger(__name__)

INVALID_REFRESH_TOKEN = "Invalid refresh token"
SESSION_REVOKED = "Session has been revoked"
TOKEN_REUSE_DETECTED = "Refresh token reuse detected"
ACCOUNT_UNAVAILABLE = "User not found or inactive"
INVALID_OTP = "Invalid or expired OTP"
FORGOT_PASSWORD_MESSAGE = "If an account exists, an OTP has been sent to your email"

# Keeps fire-and-forget audit and notification tasks alive until they finish
_background_tasks: set[asyncio.Task] = set()


def _spawn(coroutine: Coroutine[Any, Any, None]) -> None:
    task = asyncio.create_task(coroutine)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def wait_for_background_tasks() -> None:
    """Wait for pending audit writes and emails (used on shutdown and in tests)."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


def sanitize_user(user: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in user.items() if key != "hashed_password"}


class AuthService:
    """
    The session authority.

    Owns every write to session state. A session holds exactly one current
    refresh-token id; presenting any other id for that session is treated as
    token theft and revokes the whole session.
    """

    def __init__(
        self,
        user_store: UserStore,
        session_store: SessionStore,
        kv_store: KeyValueStore,
        email_service: EmailService,
        audit_sink: AuditSink | None = None,
        token_codec: TokenCodec | None = None,
    ) -> None:
        self._users = user_store
        self._sessions = session_store
        self._kv = kv_store
        self._email_service = email_service
        self._audit_sink = audit_sink
        self._codec = token_codec or TokenCodec()
        self._credentials = CredentialVerifier(user_store)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        context = context or RequestContext()
        if await self._users.get_by_email(email):
            raise ConflictError("User already exists")

        try:
            user = await self._users.create_user(
                {
                    "email": email,
                    "hashed_password": hash_password(password),
                    "first_name": first_name,
                    "last_name": last_name,
                    "role": "mentee",
                    "is_active": True,
                }
            )
        except ValueError as exc:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError("User already exists") from exc

        tokens = await self._start_session(user, context)
        self._audit(
            "log_registration",
            user_id=str(user["id"]),
            email=user["email"],
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        self._notify("welcome email", self._email_service.send_welcome_email(sanitize_user(user)))
        return {"user": sanitize_user(user), "tokens": tokens}

    async def login(
        self, email: str, password: str, context: RequestContext | None = None
    ) -> dict[str, Any]:
        context = context or RequestContext()
        user = await self._credentials.verify(email, password)
        if not user.get("is_active", True):
            raise UnauthorizedError("Account is inactive")

        tokens = await self._start_session(user, context)
        self._audit(
            "log_login",
            user_id=str(user["id"]),
            email=user["email"],
            session_id=tokens["session_id"],
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        if AuthConfig.SEND_LOGIN_EMAILS:
            self._notify(
                "login email",
                self._email_service.send_login_email(
                    sanitize_user(user), context.ip_address, context.user_agent
                ),
            )
        return {"user": sanitize_user(user), "tokens": tokens}

    # ------------------------------------------------------------------
    # Refresh-token state machine
    # ------------------------------------------------------------------

    async def refresh(
        self, refresh_token: str | None, context: RequestContext | None = None
    ) -> dict[str, Any]:
        context = context or RequestContext()
        payload = self._decode_refresh(refresh_token)
        user_id = str(payload["sub"])
        email = payload.get("email", "")
        session_id = payload["sid"]
        token_id = payload["jti"]

        def fail(reason: str) -> UnauthorizedError:
            self._audit(
                "log_refresh_token",
                user_id=user_id,
                email=email,
                session_id=session_id,
                success=False,
                failure_reason=reason,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            return UnauthorizedError(INVALID_REFRESH_TOKEN)

        if await self._sessions.is_revoked(session_id):
            raise fail(SESSION_REVOKED)

        user = await self._users.get_by_id(user_id)
        if not user or not user.get("is_active", True):
            await self._sessions.revoke(session_id, self._refresh_ttl())
            raise fail(ACCOUNT_UNAVAILABLE)

        # Compare-and-swap: only the caller holding the current jti can advance it
        rotated_token_id = new_token_id()
        rotated = await self._sessions.rotate(
            session_id, token_id, rotated_token_id, self._refresh_ttl()
        )
        if not rotated:
            await self._sessions.revoke(session_id, self._refresh_ttl())
            logger.warning(
                "Refresh token reuse detected; revoked session %s for user %s",
                session_id,
                user_id,
            )
            self._audit(
                "record_token_reuse_attempt",
                user_id=user_id,
                session_id=session_id,
                token_id=token_id,
            )
            raise fail(TOKEN_REUSE_DETECTED)

        tokens = self._issue_tokens(
            user,
            session_id=session_id,
            token_family=payload.get("family", ""),
            token_id=rotated_token_id,
        )
        self._audit(
            "log_refresh_token",
            user_id=user_id,
            email=email,
            session_id=session_id,
            success=True,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return tokens

    async def logout(
        self, refresh_token: str | None, context: RequestContext | None = None
    ) -> dict[str, str]:
        context = context or RequestContext()
        payload = self._decode_refresh(refresh_token)
        session_id = payload["sid"]

        # No point keeping the revocation past the token's own expiry
        await self._sessions.revoke(session_id, self._remaining_lifetime(payload))
        self._audit(
            "log_logout",
            user_id=str(payload["sub"]),
            email=payload.get("email", ""),
            session_id=session_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        return {"message": "Logout successful"}

    # ------------------------------------------------------------------
    # Session administration
    # ------------------------------------------------------------------

    async def list_sessions_for_user(
        self, user_id: str, page: int = 1, per_page: int = 20
    ) -> dict[str, Any]:
        page = max(1, int(page))
        per_page = min(max(1, int(per_page)), AuthConfig.SESSIONS_MAX_PER_PAGE)
        records = await self._sessions.list_for_user(user_id)
        start = (page - 1) * per_page
        return {
            "items": [record.summary() for record in records[start : start + per_page]],
            "total": len(records),
            "page": page,
            "per_page": per_page,
        }

    async def revoke_session_by_id(self, user_id: str, session_id: str) -> bool:
        """Revoke one session. Callers must have checked owner or admin rights."""
        record = await self._sessions.get(session_id)
        if record is None or record.user_id != str(user_id):
            raise NotFoundError("Session not found")
        await self._revoke(record, reason="revoked_by_request")
        return True

    async def revoke_all_sessions_except(
        self, user_id: str, except_session_id: str | None = None
    ) -> int:
        revoked = 0
        for record in await self._sessions.list_for_user(str(user_id)):
            if record.session_id == except_session_id or record.revoked:
                continue
            await self._revoke(record, reason="revoke_all")
            revoked += 1
        return revoked

    async def get_user_from_access(self, access_token: str | None) -> dict[str, Any]:
        """Resolve an access token to its active user.

        The returned dict also carries ``session_id`` and ``role`` from the token
        so the HTTP layer can make owner/admin decisions.
        """
        if not access_token:
            raise UnauthorizedError("Not authenticated")
        payload = self._codec.verify(access_token)
        if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
            raise UnauthorizedError("Invalid access token")
        user = await self._users.get_by_id(str(payload["sub"]))
        if not user:
            raise NotFoundError("User not found")
        if not user.get("is_active", True):
            raise UnauthorizedError("Account is inactive")
        return {**sanitize_user(user), "session_id": payload.get("sid")}

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> dict[str, str]:
        user = await self._users.get_by_email(email)
        if user:
            otp = self._generate_otp()
            await self._kv.delete(self._otp_attempts_key(email))
            await self._kv.set(self._otp_key(email), otp, AuthConfig.OTP_EXPIRY_MINUTES * 60)
            self._notify("OTP email", self._email_service.send_otp_email(user["email"], otp))
        return {"message": FORGOT_PASSWORD_MESSAGE}

    async def verify_otp(self, email: str, otp: str) -> dict[str, Any]:
        if await self._otp_matches(email, otp):
            return {"valid": True, "message": "OTP verified successfully"}
        return {"valid": False, "message": INVALID_OTP}

    async def reset_password(self, email: str, otp: str, new_password: str) -> dict[str, str]:
        if not await self._otp_matches(email, otp):
            raise BadRequestError(INVALID_OTP)
        user = await self._users.get_by_email(email)
        if not user:
            raise BadRequestError(INVALID_OTP)

        await self._users.update_password(str(user["id"]), hash_password(new_password))
        await self._discard_otp(email)
        revoked = await self.revoke_all_sessions_except(str(user["id"]))
        logger.info("Password reset for user %s; revoked %d sessions", user["id"], revoked)
        return {"message": "Password has been reset successfully"}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _start_session(self, user: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        now = int(time.time())
        ttl = self._refresh_ttl()
        record = SessionRecord(
            session_id=uuid4().hex,
            user_id=str(user["id"]),
            email=user["email"],
            token_family=uuid4().hex,
            current_token_id=new_token_id(),
            created_at=now,
            expires_at=now + ttl,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        await self._sessions.create(record, ttl)
        return self._issue_tokens(
            user,
            session_id=record.session_id,
            token_family=record.token_family,
            token_id=record.current_token_id,
        )

    def _issue_tokens(
        self, user: dict[str, Any], *, session_id: str, token_family: str, token_id: str
    ) -> dict[str, Any]:
        user_id = str(user["id"])
        access_token = self._codec.sign(
            {
                "sub": user_id,
                "email": user["email"],
                "role": user.get("role", "mentee"),
                "sid": session_id,
                "type": ACCESS_TOKEN_TYPE,
            }
        )
        refresh_token = self._codec.sign(
            {
                "sub": user_id,
                "email": user["email"],
                "sid": session_id,
                "family": token_family,
                "jti": token_id,
                "type": REFRESH_TOKEN_TYPE,
            }
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "expires_in": self._codec.ttl_seconds(ACCESS_TOKEN_TYPE),
            "session_id": session_id,
        }

    async def _revoke(self, record: SessionRecord, reason: str) -> None:
        ttl = max(1, record.expires_at - int(time.time())) if record.expires_at else self._refresh_ttl()
        await self._sessions.revoke(record.session_id, ttl)
        self._audit(
            "log_session_revoked",
            user_id=record.user_id,
            session_id=record.session_id,
            reason=reason,
        )

    def _decode_refresh(self, token: str | None) -> dict[str, Any]:
        if not token:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        try:
            payload = self._codec.verify(token)
        except AuthException as exc:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN) from exc

        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        if not all(payload.get(claim) for claim in ("sub", "sid", "jti")):
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        return payload

    def _refresh_ttl(self) -> int:
        return self._codec.ttl_seconds(REFRESH_TOKEN_TYPE)

    def _remaining_lifetime(self, payload: dict[str, Any]) -> int:
        expires_at = int(payload.get("exp") or 0)
        if not expires_at:
            return self._refresh_ttl()
        return max(1, expires_at - int(time.time()))

    def _generate_otp(self) -> str:
        if AuthConfig.FIXED_OTP:
            return AuthConfig.FIXED_OTP
        return str(secrets.randbelow(900000) + 100000)

    @staticmethod
    def _otp_key(email: str) -> str:
        return f"otp:{email.lower()}"

    @staticmethod
    def _otp_attempts_key(email: str) -> str:
        return f"otp:{email.lower()}:attempts"

    async def _discard_otp(self, email: str) -> None:
        await self._kv.delete(self._otp_key(email))
        await self._kv.delete(self._otp_attempts_key(email))

    async def _otp_matches(self, email: str, otp: str) -> bool:
        stored = await self._kv.get(self._otp_key(email))
        if stored is None:
            return False
        if secrets.compare_digest(stored.encode(), otp.encode()):
            return True

        attempts = await self._kv.increment(
            self._otp_attempts_key(email), AuthConfig.OTP_EXPIRY_MINUTES * 60
        )
        if attempts >= AuthConfig.MAX_OTP_ATTEMPTS:
            logger.warning("Too many OTP attempts for %s; code invalidated", email.lower())
            await self._discard_otp(email)
        return False

    def _audit(self, event: str, **fields: Any) -> None:
        if self._audit_sink is None:
            return
        record = getattr(self._audit_sink, event)

        async def write() -> None:
            try:
                await record(**fields)
            except Exception:
                logger.exception("Audit sink failed to record %s", event)

        _spawn(write())

    def _notify(self, label: str, send: Awaitable[bool]) -> None:
        async def deliver() -> None:
            try:
                if not await send:
                    logger.info("%s was not delivered", label)
            except Exception:
                logger.exception("Failed to send %s", label)

        _spawn(deliver())
