"""
Alembic environment for the auth schema (users, auth_audit_events).

The database URL always comes from ``Config.DATABASE_URL`` rather than an ini
file, so migrations run against the same database as the service.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

from config import Config
from db.engine import Base
from db.models import AuthAuditEvent, User  # noqa: F401  (registers tables on Base.metadata)

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)


def run_offline() -> None:
    """Emit SQL to the script output without connecting."""
    context.configure(
        url=Config.DATABASE_URL,
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(Config.DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=Base.metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
