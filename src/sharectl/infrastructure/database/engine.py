"""Database engine setup for SQLite with WAL mode.

Stored at ``{data_root}/.sharectl/sharectl.db``. SQLAlchemy Core (not ORM):
every table here is a small key-addressed store with no object graph.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from sharectl.infrastructure.database.schema import metadata

DEFAULT_DB_NAME = "sharectl.db"


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode enabled."""
    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def init_database(storage_dir: Path, db_name: str = DEFAULT_DB_NAME) -> Engine:
    """Initialize the database inside *storage_dir*.

    Creates the directory (and its ``plugins/`` subdirectory) and all
    tables. Idempotent.
    """
    storage_dir.mkdir(parents=True, exist_ok=True)
    (storage_dir / "plugins").mkdir(exist_ok=True)

    engine = create_db_engine(storage_dir / db_name)
    metadata.create_all(engine)
    return engine
