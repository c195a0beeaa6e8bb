"""
Alembic environment for the issueflow schema.

Run from the project root (`alembic upgrade head`, configured from
[tool.alembic] in pyproject.toml); the database comes from
ISSUEFLOW_DATABASE_URL or .env and the target metadata is every SQLModel table in
issueflow.models.
"""

from __future__ import annotations

import os, sys
from logging.config import fileConfig
from alembic import context
from sqlmodel import SQLModel

# Project root on sys.path so `issueflow` imports without installing
sys.path.append(os.getcwd())

from issueflow import models  # noqa: E402,F401  (registers the tables)
from issueflow.config import settings  # noqa: E402
from issueflow.database import create_db_engine  # noqa: E402

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

config.set_main_option("script_location", "alembic")
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = SQLModel.metadata

# Tables are small and SQLite is the default backend: batch mode for ALTERs
COMMON_OPTS = {"target_metadata": target_metadata, "compare_type": True, "render_as_batch": True}


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMMON_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # Same engine options as the app (driver timeouts, SQLite threading)
    engine = create_db_engine(settings)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **COMMON_OPTS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
