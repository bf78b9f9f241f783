"""
Database Initializer.

Run this script to create the orchestrator tables (tasks, plans, decisions,
results, approval_patterns) in the PostgreSQL database named by DATABASE_URL.

Usage:
    python -m hitl_orchestrator.scripts.db_init

Existing tables are left untouched, so it is safe to run repeatedly.
"""

from sqlalchemy import inspect
from sqlmodel import SQLModel

from hitl_orchestrator.config import settings
from hitl_orchestrator.infrastructure.database.connection import get_engine, init_db


def initialize():
    print("Initializing Database Connection...")
    engine = get_engine()

    existing = set(inspect(engine).get_table_names())
    print(f"Found {len(existing)} existing tables at {engine.url.render_as_string(hide_password=True)}.")

    init_db(engine)

    for table_name in SQLModel.metadata.tables:
        if table_name in existing:
            print(f"--> {table_name}: already present.")
        else:
            print(f"--> {table_name}: created.")

    print(f"Database initialization complete (backend setting: {settings.STORAGE_BACKEND}).")


if __name__ == "__main__":
    initialize()
