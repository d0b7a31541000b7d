"""Email/password verification."""

from __future__ import annotations

from typing import Any

from auth.exceptions import UnauthorizedError
from auth.interfaces.user_store import UserStore
from auth.security import dummy_password_check, verify_password

INVALID_CREDENTIALS = "Invalid credentials"


class CredentialVerifier:
    def __init__(self, user_store: UserStore) -> None:
        self._users = user_store

    async def verify(self, email: str, password: str) -> dict[str, Any]:
        """Return the account for ``email`` if ``password`` matches.

        Unknown accounts and wrong passwords raise the same error after the
        same amount of hashing work.
        """
        user = await self._users.get_by_email(email)
        if not user:
            dummy_password_check(password)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        hashed = user.get("hashed_password")
        if not hashed or not verify_password(password, hashed):
            raise UnauthorizedError(INVALID_CREDENTIALS)
        return user
