"""Auth dependency helpers."""

from __future__ import annotations

import secrets
from typing import Any

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response

from auth.config import AuthConfig
from auth.exceptions import AuthException
from auth.interfaces.audit_sink import AuditLogStore
from auth.interfaces.kv_store import KeyValueStore
from auth.interfaces.rate_limiter import RateLimiter
from auth.interfaces.user_store import UserStore
from auth.models import RequestContext
from auth.services.audit_service import AuditService
from auth.services.auth_service import AuthService
from auth.services.email_service import EmailService
from auth.stores.kv_session_store import KeyValueSessionStore
from auth.stores.memory_store import (
    MemoryAuditLogStore,
    MemoryKeyValueStore,
    MemoryRateLimiter,
    MemoryUserStore,
)
from config import Config


_memory_user_store = MemoryUserStore()
_memory_kv_store = MemoryKeyValueStore()
_memory_audit_store = MemoryAuditLogStore()
_memory_rate_limiter = MemoryRateLimiter()

_production_stores: tuple[Any, Any, Any] | None = None


def _get_stores() -> tuple[UserStore, KeyValueStore, AuditLogStore | None]:
    """Get auth stores based on AUTH_STORE config."""
    global _production_stores
    if AuthConfig.AUTH_STORE == "postgres":
        if _production_stores is None:
            from auth.stores.postgres_store import PostgresAuditLogStore, PostgresUserStore
            from auth.stores.redis_store import RedisKeyValueStore

            _production_stores = (
                PostgresUserStore(),
                RedisKeyValueStore(Config.REDIS_URL),
                PostgresAuditLogStore() if AuthConfig.AUDIT_PERSIST else None,
            )
        return _production_stores
    # Fallback to memory store for development/testing
    return _memory_user_store, _memory_kv_store, _memory_audit_store


async def close_stores() -> None:
    """Release connections held by the production stores."""
    global _production_stores
    if _production_stores is None:
        return
    _, kv, _ = _production_stores
    _production_stores = None
    await kv.close()


def get_auth_service() -> AuthService:
    users, kv, audit_log = _get_stores()
    return AuthService(
        user_store=users,
        session_store=KeyValueSessionStore(kv),
        kv_store=kv,
        email_service=EmailService(),
        audit_sink=AuditService(audit_log),
    )


def get_rate_limiter() -> RateLimiter:
    return _memory_rate_limiter


def get_request_context(
    request: Request,
    user_agent: str | None = Header(default=None),
) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
    )


async def require_csrf(
    request: Request,
    csrf_cookie: str | None = Cookie(default=None, alias=AuthConfig.CSRF_COOKIE_NAME),
    csrf_header: str | None = Header(default=None, alias=AuthConfig.CSRF_HEADER_NAME),
) -> None:
    """
    Double-submit CSRF validation for state-changing requests.

    Rules:
    - GET/HEAD/OPTIONS are exempt
    - Otherwise both the cookie issued by /csrf and the header must be present
    - The header must equal the cookie
    """
    if request.method.upper() in {"GET", "HEAD", "OPTIONS"}:
        return

    if not csrf_cookie or not csrf_header:
        raise HTTPException(status_code=403, detail="Missing CSRF token")
    if not secrets.compare_digest(csrf_cookie, csrf_header):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")


async def _enforce_rate_limit(request: Request, limiter: RateLimiter, scope: str, limit: int, window: int, detail: str) -> None:
    client_ip = request.client.host if request.client else "unknown"
    allowed = await limiter.allow(f"{scope}:{client_ip}", limit, window)
    if not allowed:
        raise HTTPException(status_code=429, detail=detail)


async def enforce_login_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    await _enforce_rate_limit(
        request, limiter, "login", AuthConfig.LOGIN_RATE_LIMIT_PER_MINUTE, 60, "Too many login attempts"
    )


async def enforce_register_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    await _enforce_rate_limit(
        request, limiter, "register", AuthConfig.REGISTER_RATE_LIMIT_PER_HOUR, 3600, "Too many registrations"
    )


async def enforce_refresh_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    await _enforce_rate_limit(
        request, limiter, "refresh", AuthConfig.REFRESH_RATE_LIMIT_PER_MINUTE, 60, "Too many refresh attempts"
    )


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user(
    authorization: str | None = Header(default=None),
    access_token: str | None = Cookie(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict:
    token = _bearer_token(authorization) or access_token
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return await auth_service.get_user_from_access(token)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def set_cookie(
    response: Response,
    key: str,
    value: str,
    max_age: int | None = None,
    http_only: bool | None = None,
) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        httponly=AuthConfig.COOKIE_HTTP_ONLY if http_only is None else http_only,
        secure=AuthConfig.COOKIE_SECURE,
        samesite=AuthConfig.COOKIE_SAMESITE,
        domain=AuthConfig.COOKIE_DOMAIN,
    )
