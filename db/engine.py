"""
SQLAlchemy engine and session factory for the auth database.

Stores open a short-lived session per call:

    with SessionLocal() as db:
        user = db.execute(select(User)).scalars().first()

Writes that must commit or roll back as one unit use ``session_scope()``.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from config import Config


engine = create_engine(
    Config.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=Config.DB_POOL_SIZE,
    max_overflow=20,
    echo=Config.DB_ECHO,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base shared by the models and Alembic
Base = declarative_base()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back on any error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
