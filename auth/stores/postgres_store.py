"""PostgreSQL auth stores using SQLAlchemy."""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.engine import SessionLocal, session_scope
from db.models.auth import AuthAuditEvent
from db.models.user import User


def _user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "hashed_password": user.hashed_password,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": int(user.created_at.timestamp()) if user.created_at else None,
        "updated_at": int(user.updated_at.timestamp()) if user.updated_at else None,
    }


class PostgresUserStore:
    """User store backed by PostgreSQL."""

    def _get_session(self) -> Session:
        return SessionLocal()

    async def get_by_email(self, email: str) -> dict | None:
        with self._get_session() as db:
            user = db.execute(
                select(User).where(User.email == email.lower())
            ).scalar_one_or_none()
            return _user_to_dict(user) if user else None

    async def get_by_id(self, user_id: str) -> dict | None:
        with self._get_session() as db:
            user = db.execute(
                select(User).where(User.id == user_id)
            ).scalar_one_or_none()
            return _user_to_dict(user) if user else None

    async def create_user(self, data: dict) -> dict:
        with self._get_session() as db:
            user = User(
                id=data.get("id") or str(uuid4()),
                email=data["email"].lower(),
                hashed_password=data["hashed_password"],
                first_name=data.get("first_name"),
                last_name=data.get("last_name"),
                role=data.get("role", "mentee"),
                is_active=data.get("is_active", True),
            )
            db.add(user)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ValueError("User already exists") from exc
            db.refresh(user)
            return _user_to_dict(user)

    async def update_user(self, user_id: str, updates: dict) -> dict:
        with self._get_session() as db:
            user = db.execute(
                select(User).where(User.id == user_id)
            ).scalar_one_or_none()
            if not user:
                raise ValueError("User not found")
            for key, value in updates.items():
                if hasattr(user, key):
                    setattr(user, key, value)
            db.commit()
            db.refresh(user)
            return _user_to_dict(user)

    async def update_password(self, user_id: str, hashed_password: str) -> None:
        await self.update_user(user_id, {"hashed_password": hashed_password})


class PostgresAuditLogStore:
    """Append-only audit trail in the auth_audit_events table."""

    async def append(self, event: dict) -> None:
        # The ORM session is synchronous; keep the insert off the event loop
        await asyncio.to_thread(self._insert, event)

    @staticmethod
    def _insert(event: dict) -> None:
        details = {
            key: value
            for key, value in event.items()
            if key not in {"event", "user_id", "session_id", "success"}
        }
        with session_scope() as db:
            db.add(
                AuthAuditEvent(
                    event_type=event["event"],
                    user_id=event.get("user_id"),
                    session_id=event.get("session_id"),
                    success=event.get("success", True),
                    details=details,
                )
            )
