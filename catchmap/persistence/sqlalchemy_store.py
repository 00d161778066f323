"""SQLAlchemy-backed favorites store.

Each favorite school is one row of ``favorite_schools`` keyed by
``(user_id, school_id)``. Catchment zones and the average catchment are kept
in JSON columns using the same camelCase payload the engine exchanges with
any remote store, so rows can be served to other clients unchanged.

The store satisfies :class:`catchmap.sync.FavoritesStore`. Database work is
synchronous SQLAlchemy run in a worker thread; calls on one store are
serialized.
"""

from __future__ import annotations

from datetime import datetime, timezone
import asyncio
import logging
import threading
from typing import Any, Callable, List

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
    create_engine as _sa_create_engine,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..entities import School
from ..errors import PersistenceError, ValidationError

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

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON everywhere else
_JSONType = JSON().with_variant(JSONB(), "postgresql")

_naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=_naming_convention)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FavoriteSchoolRecord(Base):
    __tablename__ = "favorite_schools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    school_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    catchment_zones: Mapped[list[dict[str, Any]] | None] = mapped_column(_JSONType)
    average_catchment: Mapped[dict[str, Any] | None] = mapped_column(_JSONType)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (UniqueConstraint("user_id", "school_id"),)


def create_engine(url: str, *, echo: bool = False, **kwargs):
    """Wrapper around :func:`sqlalchemy.create_engine` for convenience."""

    return _sa_create_engine(url, echo=echo, **kwargs)


def create_sqlite_memory_engine(echo: bool = False):
    """Shared in-memory SQLite engine usable from worker threads (tests, demos)."""

    return create_engine(
        "sqlite+pysqlite:///:memory:",
        echo=echo,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def create_sessionmaker(engine, *, expire_on_commit: bool = False, **kwargs):
    """Return a configured ``sessionmaker`` factory for the given engine."""

    return sessionmaker(bind=engine, expire_on_commit=expire_on_commit, class_=Session, **kwargs)


def ensure_schema(engine) -> None:
    """Create the database schema if it does not already exist."""

    Base.metadata.create_all(engine)


def record_to_payload(record: FavoriteSchoolRecord) -> dict[str, Any]:
    return {
        "id": record.school_id,
        "name": record.name,
        "address": record.address or "",
        "coordinates": [record.latitude, record.longitude],
        "catchmentZones": list(record.catchment_zones or []),
        "averageCatchment": record.average_catchment,
        "isActive": record.is_active,
        "isFavorite": True,
    }


def _fill_record(record: FavoriteSchoolRecord, school: School) -> None:
    payload = school.to_payload()
    record.name = school.name
    record.address = school.address
    record.latitude, record.longitude = school.coordinates
    record.catchment_zones = payload["catchmentZones"]
    record.average_catchment = payload["averageCatchment"]
    record.is_active = school.is_active


class SqlAlchemyFavoritesStore:
    def __init__(self, session_factory: Callable[[], Session], user_id: str):
        if not user_id:
            raise ValueError("user_id is required")
        self.session_factory = session_factory
        self.user_id = str(user_id)
        self._db_lock = threading.Lock()

    def _get(self, session: Session, school_id: str) -> FavoriteSchoolRecord | None:
        stmt = select(FavoriteSchoolRecord).where(
            FavoriteSchoolRecord.user_id == self.user_id,
            FavoriteSchoolRecord.school_id == school_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    async def _run(self, op: str, work: Callable[[Session], Any]) -> Any:
        def _in_session() -> Any:
            with self._db_lock, self.session_factory() as session:
                try:
                    result = work(session)
                    session.commit()
                    return result
                except IntegrityError as exc:
                    session.rollback()
                    raise PersistenceError(f"Conflicting favorite school during {op}") from exc
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error("sqlalchemy_store.failed op=%s error=%r", op, exc)
                    raise PersistenceError(f"Database error during {op}", retryable=True) from exc

        return await asyncio.to_thread(_in_session)

    async def list(self) -> List[School]:
        def work(session: Session) -> List[School]:
            stmt = (
                select(FavoriteSchoolRecord)
                .where(FavoriteSchoolRecord.user_id == self.user_id)
                .order_by(FavoriteSchoolRecord.created_at, FavoriteSchoolRecord.id)
            )
            schools = []
            for record in session.execute(stmt).scalars():
                if not record.is_active:
                    continue
                try:
                    schools.append(School.from_payload(record_to_payload(record)))
                except (ValidationError, TypeError, ValueError) as exc:
                    logger.warning(
                        "sqlalchemy_store.skipped_row school_id=%s error=%r", record.school_id, exc
                    )
            return schools

        return await self._run("list", work)

    async def create(self, school: School) -> dict[str, Any]:
        def work(session: Session) -> dict[str, Any]:
            if self._get(session, school.id) is not None:
                raise PersistenceError("School is already in favorites")
            record = FavoriteSchoolRecord(user_id=self.user_id, school_id=school.id)
            _fill_record(record, school)
            session.add(record)
            session.flush()
            return record_to_payload(record)

        return await self._run("create", work)

    async def update(self, school: School) -> dict[str, Any]:
        def work(session: Session) -> dict[str, Any]:
            record = self._get(session, school.id)
            if record is None:
                raise PersistenceError(f"Favorite school {school.id!r} does not exist")
            _fill_record(record, school)
            session.flush()
            return record_to_payload(record)

        return await self._run("update", work)

    async def delete(self, school_id: str) -> None:
        def work(session: Session) -> None:
            record = self._get(session, school_id)
            if record is None:
                raise PersistenceError(f"Favorite school {school_id!r} does not exist")
            session.delete(record)

        await self._run("delete", work)
