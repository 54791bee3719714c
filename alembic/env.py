from logging.config import fileConfig
import os

from alembic import context
from sqlalchemy import create_engine

from db.models import Base

# Import settings with fallback
try:
    from core.settings import Settings

    settings = Settings()  # It's okay to create settings here since this is a CLI tool
except Exception:
    from pydantic_settings import BaseSettings

    class FallbackSettings(BaseSettings):
        DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./billing.db")
        DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    settings = FallbackSettings()

# this is the Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(
        settings.DATABASE_URL,
        echo=getattr(settings, "DEBUG", False),
        future=True,
        pool_pre_ping=settings.DATABASE_URL.startswith("postgresql"),
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
