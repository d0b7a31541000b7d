"""
SQLAlchemy models for the SkillSync auth database.

All models inherit from db.engine.Base for Alembic migrations.
"""

from db.models.user import User
from db.models.auth import AuthAuditEvent

__all__ = [
    # User
    "User",
    # Auth
    "AuthAuditEvent",
]
