"""
Database Connection Manager.

This module handles the low-level details of connecting to PostgreSQL.
It exposes the SQLModel engine which will be used by the Postgres repositories.
The engine is created lazily so that the in-memory backend never needs a driver.
"""

from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import create_engine, SQLModel

from ...config import settings
from . import tables  # noqa: F401  (registers the tables on SQLModel.metadata)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    # echo=False in production to avoid leaking sensitive data in logs
    return create_engine(settings.DATABASE_URL, echo=False)


def init_db(engine: Engine | None = None):
    """
    Idempotent initialization.
    Creates tables if they do not exist.
    Useful for local dev or simple deployments.
    """
    SQLModel.metadata.create_all(engine or get_engine())
