"""Tests for database initialization and migrations."""

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crm_sync.database.database import init_db, reset_db
from crm_sync.database.migrations import get_migration_status, migrate_database


def legacy_engine():
    """Engine holding the first-release schema, without later columns."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE integration_sync_jobs ("
            "id INTEGER PRIMARY KEY, job_id VARCHAR NOT NULL UNIQUE, integration_id VARCHAR NOT NULL, "
            "status VARCHAR NOT NULL, attempt INTEGER NOT NULL, max_attempts INTEGER NOT NULL, "
            "summary JSON, started_at DATETIME, finished_at DATETIME, "
            "created_at DATETIME, updated_at DATETIME)"
        ))
        conn.execute(text(
            "CREATE TABLE integration_sync_records ("
            "id INTEGER PRIMARY KEY, integration_id VARCHAR NOT NULL, record_type VARCHAR NOT NULL, "
            "external_id VARCHAR NOT NULL, checksum VARCHAR NOT NULL, payload JSON NOT NULL, "
            "is_deleted BOOLEAN NOT NULL, first_seen_at DATETIME NOT NULL, "
            "last_seen_at DATETIME NOT NULL, last_synced_at DATETIME NOT NULL, "
            "created_at DATETIME, updated_at DATETIME)"
        ))
    return engine


def columns(engine, table):
    return [col["name"] for col in inspect(engine).get_columns(table)]


def test_migrate_adds_missing_columns():
    engine = legacy_engine()
    db = sessionmaker(bind=engine)()

    assert get_migration_status(db)["migrations_applied"] == []
    migrate_database(db)

    assert "last_error" in columns(engine, "integration_sync_jobs")
    assert "last_job_id" in columns(engine, "integration_sync_records")
    assert "deleted_at" in columns(engine, "integration_sync_records")
    assert get_migration_status(db)["migrations_applied"] == [
        "integration_sync_jobs.last_error",
        "integration_sync_records.last_job_id",
        "integration_sync_records.deleted_at",
    ]

    # Safe to run again
    migrate_database(db)
    db.close()


def test_init_db_creates_tables_and_migrates():
    engine = legacy_engine()

    init_db(engine)

    tables = inspect(engine).get_table_names()
    assert "integration_configs" in tables
    assert "deleted_at" in columns(engine, "integration_sync_records")


def test_init_db_fresh_database():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})

    init_db(engine)

    assert set(inspect(engine).get_table_names()) >= {
        "integration_sync_jobs", "integration_sync_records", "integration_configs"
    }


def test_reset_db(engine, db_session):
    db_session.execute(text(
        "INSERT INTO integration_configs (integration_id, config) VALUES ('glpi', '{}')"
    ))
    db_session.commit()
    db_session.close()

    reset_db(engine)

    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM integration_configs")).scalar() == 0
