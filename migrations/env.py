from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Include civicdesk models
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from civicdesk.config import Config
from civicdesk.db import _normalize_url
from civicdesk.models import Base

config = context.config

# DATABASE_URL wins over alembic.ini; Config supplies the dev default
config.set_main_option("sqlalchemy.url", _normalize_url(os.getenv("DATABASE_URL") or Config.from_env().database_url))

if config.config_file_name:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    section = config.get_section(config.config_ini_section) or {}
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
