"""Security utilities for auth."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt

from auth.config import AuthConfig
from auth.exceptions import UnauthorizedError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_dummy_hash: str | None = None


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        password_bytes = password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        return False


def dummy_password_check(password: str) -> None:
    """Spend one bcrypt round so unknown accounts cost as much as known ones."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password(secrets.token_urlsafe(16))
    verify_password(password, _dummy_hash)


def new_token_id() -> str:
    return uuid4().hex


class TokenCodec:
    """Signs and verifies access and refresh JWTs.

    The two token kinds are signed with different secrets, so a refresh token
    can never pass as an access token or the other way round.
    """

    def __init__(
        self,
        access_secret: str | None = None,
        refresh_secret: str | None = None,
        algorithm: str | None = None,
        access_ttl: timedelta | None = None,
        refresh_ttl: timedelta | None = None,
    ) -> None:
        self._secrets = {
            ACCESS_TOKEN_TYPE: access_secret or AuthConfig.JWT_SECRET,
            REFRESH_TOKEN_TYPE: refresh_secret or AuthConfig.JWT_REFRESH_SECRET,
        }
        self._algorithm = algorithm or AuthConfig.JWT_ALGORITHM
        self._ttls = {
            ACCESS_TOKEN_TYPE: access_ttl or timedelta(minutes=AuthConfig.ACCESS_TOKEN_EXPIRE_MINUTES),
            REFRESH_TOKEN_TYPE: refresh_ttl or timedelta(days=AuthConfig.REFRESH_TOKEN_EXPIRE_DAYS),
        }

    def ttl_seconds(self, token_type: str) -> int:
        return int(self._ttls[token_type].total_seconds())

    def sign(self, payload: dict[str, Any]) -> str:
        token_type = payload.get("type")
        if token_type not in self._secrets:
            raise ValueError(f"Unknown token type: {token_type!r}")

        now = datetime.now(timezone.utc)
        claims = dict(payload)
        claims.setdefault("jti", new_token_id())
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int((now + self._ttls[token_type]).timestamp())
        return jwt.encode(claims, self._secrets[token_type], algorithm=self._algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            token_type = jwt.get_unverified_claims(token).get("type")
            if token_type not in self._secrets:
                raise UnauthorizedError("Invalid token")
            return jwt.decode(token, self._secrets[token_type], algorithms=[self._algorithm])
        except JWTError as exc:
            raise UnauthorizedError("Invalid token") from exc
