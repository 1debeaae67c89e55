"""
env.py — Alembic migration environment for LoadHunter

The database URL always comes from loadhunter.config (DATABASE_URL), so
the API, the poller and migrations can never disagree about which database
they talk to. Importing loadhunter.models registers every table on
Base.metadata for autogenerate.

Business Rules:
- SQLite runs in batch mode (ALTER TABLE support)
- Column type changes are detected by autogenerate

Called by: alembic CLI
Depends on: loadhunter.models (Base + all tables), loadhunter.config (settings)
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from loadhunter.config import settings
from loadhunter.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kw) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kw)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    _configure(url=settings.database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_online() -> None:
    engine = create_engine(settings.database_url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")


if context.is_offline_mode():
    run_offline()
else:
    run_online()
