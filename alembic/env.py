from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from hr_platform.core.config import settings
from hr_platform.core.database import Base

# Ensure all models are imported so autogenerate sees every table
from hr_platform.modules.staff.models.staff_models import StaffMember  # noqa: F401
from hr_platform.modules.payroll.models import (  # noqa: F401
    PayrollPeriod,
    PayrollInputValue,
    PayrollExpenseEntry,
    PayrollComputedValue,
    PayrollReceipt,
    PayrollApprovalEvent,
    PayrollImportBatch,
    PayrollImportRow,
    PayrollIdentityMapping,
    PayrollFinancialYear,
    PayrollTaxBracket,
)

target_metadata = Base.metadata

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# The database URL always comes from application settings
config.set_main_option("sqlalchemy.url", settings.database_url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    This configures the context with just a URL
    and not an Engine. Calls to context.execute() here emit the given
    string to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
