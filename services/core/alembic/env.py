"""Alembic environment for the EchoDesk schema.

The database URL comes from `sqlalchemy.url` when the caller sets one
(tests do), otherwise from the application settings (MYSQL_URL).
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from echodesk_core.config import get_settings
from echodesk_core.domain.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_settings().mysql_url


def _configure(**kwargs) -> None:
    # Autogenerate also diffs column types and enum values
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    _configure(url=get_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = get_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
