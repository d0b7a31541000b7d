"""
Database module for the SkillSync auth server.

Provides SQLAlchemy models and the engine/session factory for PostgreSQL persistence.
"""

from db.engine import Base, SessionLocal, engine, session_scope

__all__ = ["Base", "SessionLocal", "engine", "session_scope"]
