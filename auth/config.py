"""Auth configuration management."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path

# Load .env file before reading config
try:
    from dotenv import load_dotenv

    # Try loading from project root
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)
    else:
        load_dotenv(override=True)
except ImportError:
    pass


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


_DEFAULT_JWT_SECRET = secrets.token_urlsafe(32)
_DEFAULT_REFRESH_SECRET = secrets.token_urlsafe(32)


@dataclass(frozen=True)
class AuthConfig:
    """Configuration values for auth flows."""

    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    JWT_ALGORITHM: str = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
    JWT_SECRET: str = os.getenv("AUTH_JWT_SECRET", _DEFAULT_JWT_SECRET)
    JWT_REFRESH_SECRET: str = os.getenv("AUTH_JWT_REFRESH_SECRET", _DEFAULT_REFRESH_SECRET)

    # Session keys live under this prefix in the key-value store
    SESSION_KEY_PREFIX: str = os.getenv("SESSION_KEY_PREFIX", "auth")

    COOKIE_SECURE: bool = _parse_bool(os.getenv("COOKIE_SECURE"), False)
    COOKIE_HTTP_ONLY: bool = _parse_bool(os.getenv("COOKIE_HTTP_ONLY"), True)
    COOKIE_SAMESITE: str = os.getenv("COOKIE_SAME_SITE", "lax")
    COOKIE_DOMAIN: str | None = os.getenv("COOKIE_DOMAIN")

    CSRF_COOKIE_NAME: str = os.getenv("CSRF_COOKIE_NAME", "csrf-token")
    CSRF_HEADER_NAME: str = os.getenv("CSRF_HEADER_NAME", "X-CSRF-Token")
    CSRF_COOKIE_HTTP_ONLY: bool = _parse_bool(os.getenv("CSRF_COOKIE_HTTP_ONLY"), True)

    OTP_EXPIRY_MINUTES: int = int(os.getenv("OTP_EXPIRY_MINUTES", "10"))
    MAX_OTP_ATTEMPTS: int = int(os.getenv("MAX_OTP_ATTEMPTS", "5"))
    FIXED_OTP: str | None = os.getenv("FIXED_OTP")

    LOGIN_RATE_LIMIT_PER_MINUTE: int = int(os.getenv("LOGIN_RATE_LIMIT_PER_MINUTE", "5"))
    REGISTER_RATE_LIMIT_PER_HOUR: int = int(os.getenv("REGISTER_RATE_LIMIT_PER_HOUR", "3"))
    REFRESH_RATE_LIMIT_PER_MINUTE: int = int(os.getenv("REFRESH_RATE_LIMIT_PER_MINUTE", "30"))

    SESSIONS_MAX_PER_PAGE: int = int(os.getenv("SESSIONS_MAX_PER_PAGE", "100"))
    SEND_LOGIN_EMAILS: bool = _parse_bool(os.getenv("SEND_LOGIN_EMAILS"), True)

    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "resend")
    EMAIL_APP_NAME: str = os.getenv("EMAIL_APP_NAME", "SkillSync")
    EMAIL_SUBJECT_PREFIX: str = os.getenv("EMAIL_SUBJECT_PREFIX", "[SkillSync]")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "SkillSync")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "noreply@skillsync.com")
    RESEND_API_KEY: str | None = os.getenv("RESEND_API_KEY")

    # Auth store: "postgres" (users in Postgres, sessions in Redis) or "memory" (testing)
    AUTH_STORE: str = os.getenv("AUTH_STORE", "postgres")
    AUDIT_PERSIST: bool = _parse_bool(os.getenv("AUDIT_PERSIST"), True)
