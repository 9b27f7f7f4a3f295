"""Database configuration and session management."""

import os
import logging
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker

from crm_sync.config import settings

logger = logging.getLogger(__name__)

# SQLite files live under ./data by default
if settings.database_url.startswith("sqlite:///./data/"):
    os.makedirs("data", exist_ok=True)

# Create SQLAlchemy engine
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base for models
Base = declarative_base()


def get_db():
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables.

    Creates all tables defined in the models if they don't exist and runs
    column migrations against databases created by older releases.

    Args:
        bind: Optional engine to initialize instead of the configured one.
    """
    # Import all models to ensure they are registered with Base
    from crm_sync.models import IntegrationSyncJob, IntegrationSyncRecord, IntegrationConfig

    bind = bind or engine
    logger.info("Initializing database...")

    inspector = inspect(bind)
    existing_tables = inspector.get_table_names()

    if not existing_tables:
        logger.info("No existing tables found. Creating all tables...")
    else:
        logger.info(f"Found existing tables: {existing_tables}")

    Base.metadata.create_all(bind=bind)

    if existing_tables:
        logger.info("Running database migrations...")
        from crm_sync.database.migrations import migrate_database
        db = sessionmaker(bind=bind)()
        try:
            migrate_database(db)
        finally:
            db.close()

    created_tables = inspect(bind).get_table_names()
    logger.info(f"Database initialized with tables: {created_tables}")


def drop_all_tables(bind=None):
    """Drop all tables from the database.

    WARNING: This will delete all data. Use only for testing or development.
    """
    logger.warning("Dropping all tables from database...")
    Base.metadata.drop_all(bind=bind or engine)
    logger.info("All tables dropped successfully")


def reset_db(bind=None):
    """Reset the database by dropping and recreating all tables.

    WARNING: This will delete all data. Use only for testing or development.
    """
    logger.warning("Resetting database...")
    drop_all_tables(bind)
    init_db(bind)
    logger.info("Database reset complete")
