# creativedesk/db/migrations/env.py
from __future__ import annotations

from logging.config import fileConfig
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, make_url
from alembic import context

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from creativedesk.db import models  # noqa: E402,F401  (реєструє всі таблиці)
from creativedesk.db.base import Base  # noqa: E402
from creativedesk.core.config import settings  # noqa: E402

target_metadata = Base.metadata

# async-драйвер застосунку -> sync-драйвер для alembic
SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def sync_url(async_url: str) -> str:
    url = make_url(async_url)
    driver = SYNC_DRIVERS.get(url.drivername)
    if driver is None:
        return async_url
    return url.set(drivername=driver).render_as_string(hide_password=False)


SYNC_URL = sync_url(config.get_main_option("sqlalchemy.url") or settings.database_url)
IS_SQLITE = SYNC_URL.startswith("sqlite")


def run_migrations_offline() -> None:
    """Offline: лише генеруємо SQL."""
    context.configure(
        url=SYNC_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        # sqlite не вміє ALTER — batch-режим
        render_as_batch=IS_SQLITE,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(SYNC_URL, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        do_run_migrations(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
