"""
User model.

User: Authentication and identity for mentors, mentees and admins.
Profiles, availability and skills hang off this table but are owned by
other services.
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Text,
)
from sqlalchemy.orm import relationship

from db.engine import Base


class User(Base):
    """
    User account for authentication.

    The password is only ever stored as a bcrypt hash.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(Text, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="mentee")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship
    audit_events = relationship("AuthAuditEvent", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
