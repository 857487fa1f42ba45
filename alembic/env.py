import asyncio
import logging
from logging.config import fileConfig
from time import perf_counter

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

config = context.config

if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Importing the models attaches every table to Base.metadata.
import beanstalker.schema.sql  # noqa: E402, F401
from beanstalker.core.database import DATABASE_URL, Base  # noqa: E402

target_metadata = Base.metadata

_MIGRATION_TIMER: dict[str, float | None] = {"current_start": None}
_migration_logger = logging.getLogger("alembic.runtime.migration")


def _on_version_apply(*, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
  """Log each applied revision with its duration."""
  end_time = perf_counter()
  start_time = _MIGRATION_TIMER.get("current_start")
  revision = getattr(step, "up_revision_id", None) or "unknown"
  if start_time is None:
    _migration_logger.info("Applied migration %s", revision)
  else:
    _migration_logger.info("Applied migration %s in %.3fs", revision, end_time - start_time)

  _MIGRATION_TIMER["current_start"] = perf_counter()


def _require_url() -> str:
  if not DATABASE_URL:
    raise RuntimeError("BEANSTALKER_PG_DSN (or DATABASE_URL) must be set to run migrations.")
  return DATABASE_URL


def run_migrations_offline() -> None:
  context.configure(url=_require_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"}, compare_type=True)

  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata, compare_type=True, on_version_apply=_on_version_apply)
  migration_context = context.get_context()
  current_revision = migration_context.get_current_revision() or "base"
  target_heads = ", ".join(migration_context.script.get_heads() if migration_context.script else []) or "none"
  _migration_logger.info("Starting migration run from %s to %s", current_revision, target_heads)
  _MIGRATION_TIMER["current_start"] = perf_counter()

  with context.begin_transaction():
    context.run_migrations()

  _migration_logger.info("Completed migration run at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  """Run migrations through the same asyncpg driver the service uses."""
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = _require_url()
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)

  await connectable.dispose()


def run_migrations_online() -> None:
  asyncio.run(run_async_migrations())


if context.is_offline_mode():
  run_migrations_offline()
else:
  run_migrations_online()
