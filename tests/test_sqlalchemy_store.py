import asyncio
import logging

import pytest
from sqlalchemy import select

from catchmap.entities import AverageCatchment, CatchmentZone, School
from catchmap.errors import PersistenceError
from catchmap.persistence import (
    FavoriteSchoolRecord,
    SqlAlchemyFavoritesStore,
    create_sessionmaker,
    create_sqlite_memory_engine,
    ensure_schema,
)


@pytest.fixture
def session_factory():
    engine = create_sqlite_memory_engine()
    ensure_schema(engine)
    return create_sessionmaker(engine)


def _school(sid="s1", **kwargs):
    zone = CatchmentZone(id=f"{sid}-2024", year=2024, radius=1.2, unit="km", color="#FF6B6B")
    defaults = dict(
        id=sid,
        name="Hill Primary",
        address="1 Hill Rd",
        coordinates=(51.5, -0.12),
        zones=(zone,),
        average=AverageCatchment(radius=1.2, color="#6B7280"),
    )
    defaults.update(kwargs)
    return School(**defaults)


def test_create_list_update_delete(session_factory):
    store = SqlAlchemyFavoritesStore(session_factory, user_id="u1")

    async def scenario():
        await store.create(_school("s1"))
        await store.create(_school("s2", name="Vale Academy"))
        await store.update(_school("s1", coordinates=(51.6, -0.2)))
        listed = await store.list()
        await store.delete("s2")
        return listed, await store.list()

    listed, after_delete = asyncio.run(scenario())

    assert [s.id for s in listed] == ["s1", "s2"]
    assert listed[0].coordinates == (51.6, -0.2)
    assert listed[0].zones == _school().zones
    assert listed[0].average == _school().average
    assert [s.id for s in after_delete] == ["s1"]


def test_rows_hold_camel_case_payload(session_factory):
    store = SqlAlchemyFavoritesStore(session_factory, user_id="u1")
    asyncio.run(store.create(_school()))

    with session_factory() as session:
        record = session.execute(select(FavoriteSchoolRecord)).scalar_one()
    assert record.user_id == "u1"
    assert record.catchment_zones[0]["isVisible"] is True
    assert record.average_catchment["unit"] == "km"
    assert (record.latitude, record.longitude) == (51.5, -0.12)


def test_duplicate_and_missing_rows_raise(session_factory):
    store = SqlAlchemyFavoritesStore(session_factory, user_id="u1")
    asyncio.run(store.create(_school()))

    with pytest.raises(PersistenceError, match="already in favorites"):
        asyncio.run(store.create(_school()))
    with pytest.raises(PersistenceError, match="does not exist"):
        asyncio.run(store.update(_school("s9")))
    with pytest.raises(PersistenceError):
        asyncio.run(store.delete("s9"))


def test_users_are_isolated(session_factory):
    mine = SqlAlchemyFavoritesStore(session_factory, user_id="u1")
    theirs = SqlAlchemyFavoritesStore(session_factory, user_id="u2")
    asyncio.run(mine.create(_school()))
    asyncio.run(theirs.create(_school()))

    assert len(asyncio.run(mine.list())) == 1
    asyncio.run(theirs.delete("s1"))
    assert len(asyncio.run(mine.list())) == 1
    assert asyncio.run(theirs.list()) == []


def test_list_skips_rows_that_fail_to_parse(session_factory, caplog):
    store = SqlAlchemyFavoritesStore(session_factory, user_id="u1")
    asyncio.run(store.create(_school()))
    with session_factory() as session:
        session.add(
            FavoriteSchoolRecord(
                user_id="u1", school_id="bad", name="", latitude=51.5, longitude=-0.12
            )
        )
        session.commit()

    with caplog.at_level(logging.WARNING, logger="catchmap.persistence.sqlalchemy_store"):
        schools = asyncio.run(store.list())

    assert [s.id for s in schools] == ["s1"]
    assert any("sqlalchemy_store.skipped_row school_id=bad" in r.getMessage() for r in caplog.records)
