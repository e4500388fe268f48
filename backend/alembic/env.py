"""
Alembic migration environment for the reconciliation schema.

Migrations run over the synchronous driver (DATABASE_URL_SYNC); the service
itself only ever uses the async URL. Offline mode renders SQL for review,
which is how the unique indexes backing booking idempotency get audited
before they reach production.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from reconciler.db.base import Base
from reconciler.models import Tour, Customer, Booking  # noqa: F401 - registers tables on Base.metadata
from reconciler.core.config import get_settings

config = context.config
settings = get_settings()

config.set_main_option("sqlalchemy.url", settings.DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Autogenerate must see Numeric precision and String length changes: pinned
# prices and reference widths are part of the contract with checkout.
COMPARE_OPTIONS = {
    "target_metadata": target_metadata,
    "compare_type": True,
    "compare_server_default": True,
}


def run_migrations_offline() -> None:
    """Render the migration SQL without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **COMPARE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
