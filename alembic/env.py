from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from app.store.schema import metadata


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("gigsec.alembic")


def _database_url() -> str:
    # explicit env wins over alembic.ini; settings covers .env files
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        from settings import settings

        url = settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return url


def _context_opts(url: str) -> dict:
    # SQLite cannot ALTER most constraints in place
    return {
        "target_metadata": metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def run_migrations_offline(url: str) -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_opts(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = url

    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_context_opts(url))
        with context.begin_transaction():
            context.run_migrations()


_url = _database_url()
logger.info("migrating backend=%s", make_url(_url).get_backend_name())

if context.is_offline_mode():
    run_migrations_offline(_url)
else:
    run_migrations_online(_url)
