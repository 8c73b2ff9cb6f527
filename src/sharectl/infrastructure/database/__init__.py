"""Database layer — SQLAlchemy Core over SQLite."""

from sharectl.infrastructure.database.engine import create_db_engine, init_database

__all__ = ["create_db_engine", "init_database"]
