"""
Auth models.

AuthAuditEvent: security events emitted by the session authority
(logins, refreshes, logouts, token reuse, revocations).

Session state itself lives in the key-value store, not here.
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import relationship

from db.engine import Base


class AuthAuditEvent(Base):
    """
    Append-only security audit record.
    """
    __tablename__ = "auth_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(50), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    session_id = Column(String(64), nullable=True, index=True)
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationship
    user = relationship("User", back_populates="audit_events")

    def __repr__(self):
        return f"<AuthAuditEvent(type={self.event_type}, user_id={self.user_id})>"
