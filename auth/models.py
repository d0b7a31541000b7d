"""Session and request value objects shared by the auth services."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class RequestContext:
    """Client details forwarded to the audit sink and notifier."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SessionRecord:
    """
    State of one login.

    ``current_token_id`` is the jti of the single refresh token that may be
    rotated; it is ``None`` once the session is logged out, revoked or expired.
    ``revoked`` only ever moves from False to True.
    """

    session_id: str
    user_id: str
    email: str
    token_family: str
    current_token_id: str | None = None
    revoked: bool = False
    created_at: int = field(default_factory=lambda: int(time.time()))
    expires_at: int = 0
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at) and self.expires_at <= int(time.time())

    @property
    def is_active(self) -> bool:
        return not self.revoked and self.current_token_id is not None and not self.is_expired

    def with_state(self, *, current_token_id: str | None, revoked: bool) -> "SessionRecord":
        return replace(self, current_token_id=current_token_id, revoked=revoked)

    def meta(self) -> dict[str, Any]:
        """Immutable fields, as persisted next to the mutable state keys."""
        data = asdict(self)
        data.pop("current_token_id")
        data.pop("revoked")
        return data

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.session_id,
            "user_id": self.user_id,
            "token_family": self.token_family,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "revoked": self.revoked,
            "active": self.is_active,
        }
