"""Persistence helpers for storing favorite schools in relational databases."""

from .sqlalchemy_store import (
    Base,
    FavoriteSchoolRecord,
    SqlAlchemyFavoritesStore,
    create_engine,
    create_sessionmaker,
    create_sqlite_memory_engine,
    ensure_schema,
    record_to_payload,
)

__all__ = [
    "Base",
    "FavoriteSchoolRecord",
    "SqlAlchemyFavoritesStore",
    "create_engine",
    "create_sessionmaker",
    "create_sqlite_memory_engine",
    "ensure_schema",
    "record_to_payload",
]
