"""Database migration utilities."""

import logging
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# (table, column, DDL type) added after the first schema release
COLUMN_MIGRATIONS = [
    ("integration_sync_jobs", "last_error", "TEXT"),
    ("integration_sync_records", "last_job_id", "VARCHAR"),
    ("integration_sync_records", "deleted_at", "DATETIME"),
]


def migrate_database(db: Session) -> None:
    """Apply database migrations.

    Adds any column from ``COLUMN_MIGRATIONS`` that is missing from an existing
    table. Safe to call multiple times.

    Args:
        db: Database session.
    """
    logger.info("Checking for database migrations...")

    inspector = inspect(db.get_bind())
    tables = inspector.get_table_names()

    for table, column, ddl_type in COLUMN_MIGRATIONS:
        if table not in tables:
            continue

        columns = [col['name'] for col in inspector.get_columns(table)]
        if column in columns:
            continue

        logger.info(f"Adding {column} column to {table} table")
        try:
            db.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
            db.commit()
            logger.info(f"Successfully added {table}.{column} column")
        except Exception as e:
            logger.error(f"Failed to add {table}.{column} column: {e}")
            db.rollback()

    logger.info("Database migrations complete")


def get_migration_status(db: Session) -> dict:
    """Get the status of database migrations.

    Args:
        db: Database session.

    Returns:
        Dictionary with the table list and applied ``table.column`` migrations.
    """
    inspector = inspect(db.get_bind())

    status = {
        'tables': inspector.get_table_names(),
        'migrations_applied': []
    }

    for table, column, _ in COLUMN_MIGRATIONS:
        if table not in status['tables']:
            continue
        columns = [col['name'] for col in inspector.get_columns(table)]
        if column in columns:
            status['migrations_applied'].append(f"{table}.{column}")

    return status
