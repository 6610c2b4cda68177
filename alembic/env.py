"""
Alembic environment configuration with SQLite and PostgreSQL support.

- Async migrations (aiosqlite / asyncpg)
- Batch mode for SQLite (required for ALTER TABLE operations)
- Database URL taken from DB_URL, defaulting to the app's SQLite file
"""

import asyncio
import os
from logging.config import fileConfig
from sqlalchemy import pool, event
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context
from dotenv import load_dotenv

# Import models so Alembic can detect them
from gallery.core.db.base import Base
from gallery.core.db.engine import configure_sqlite_connection
from gallery.modules.products.models import Product  # noqa: F401
from gallery.modules.product_images.models import ProductImage  # noqa: F401

load_dotenv()

config = context.config

db_url = os.getenv("DB_URL")

if not db_url:
    from pathlib import Path
    project_root = Path(__file__).resolve().parent.parent
    db_url = f"sqlite+aiosqlite:///{project_root}/data/gallery.db"
    (project_root / "data").mkdir(parents=True, exist_ok=True)

config.set_main_option("sqlalchemy.url", db_url)

is_sqlite = db_url.startswith("sqlite")

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Generate SQL without connecting to the database."""
    url = config.get_main_option("sqlalchemy.url")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=is_sqlite,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=is_sqlite,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database URL configured")

    connectable = create_async_engine(url, poolclass=pool.NullPool)

    if is_sqlite:
        event.listen(connectable.sync_engine, "connect", configure_sqlite_connection)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
