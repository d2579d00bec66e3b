"""Alembic environment for the Scribe import schema.

The database URL comes from ``Scribe.config.Settings`` (init > .env > env >
config.toml), after ``.env.local`` has had a chance to override ``.env``.
Async driver suffixes are swapped for their sync counterparts since Alembic
runs migrations on a blocking connection.
"""

import pathlib
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from Scribe import models  # noqa: F401  (registers tables on Base.metadata)
from Scribe.config import load_settings
from Scribe.db import Base

_ROOT = pathlib.Path(__file__).resolve().parents[1]
for name, override in ((".env", False), (".env.local", True)):
    path = _ROOT / name
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata

_SYNC_DRIVERS = {
    "sqlite": "sqlite",
    "postgresql": "postgresql+psycopg",
}


def _sync_db_url() -> str:
    url = make_url(load_settings().database_url)
    backend = url.get_backend_name()
    driver = _SYNC_DRIVERS.get(backend)
    if driver is None:
        raise RuntimeError(f"Unsupported database backend for migrations: {backend}")
    return url.set(drivername=driver).render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    context.configure(url=_sync_db_url(), target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_sync_db_url())
    with connectable.connect() as connection:
        # SQLite cannot ALTER constraints in place; batch mode recreates tables
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
