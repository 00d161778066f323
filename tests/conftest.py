import asyncio
import itertools

import pytest

from catchmap.catchmap_config import EngineConfig
from catchmap.engine import CatchmentEngine
from catchmap.palettes import ColorAssigner
from catchmap.registry import SchoolRegistry
from catchmap.rendering import RecordingMapSurface
from catchmap.sync import PersistenceSync


class MemoryStore:
    """In-memory favorites store; ``fail_ops`` and ``delay`` simulate a flaky backend."""

    def __init__(self, schools=()):
        self.rows = {s.id: s for s in schools}
        self.calls = []
        self.fail_ops = set()
        self.delay = 0.0

    async def _step(self, op, arg):
        self.calls.append((op, arg))
        if self.delay:
            await asyncio.sleep(self.delay)
        if op in self.fail_ops:
            raise RuntimeError(f"{op} rejected")

    async def list(self):
        await self._step("list", None)
        return list(self.rows.values())

    async def create(self, school):
        await self._step("create", school.id)
        self.rows[school.id] = school
        return school.to_payload()

    async def update(self, school):
        await self._step("update", school.id)
        self.rows[school.id] = school
        return school.to_payload()

    async def delete(self, school_id):
        await self._step("delete", school_id)
        self.rows.pop(school_id, None)


class RecordingNotifier:
    def __init__(self):
        self.successes = []
        self.errors = []

    def success(self, message):
        self.successes.append(message)

    def error(self, message):
        self.errors.append(message)


def sequential_ids(prefix="s"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registry(store, notifier):
    sync = PersistenceSync(store, notifier=notifier, timeout=1.0)
    return SchoolRegistry(sync, ColorAssigner(), id_factory=sequential_ids())


@pytest.fixture
def engine(store, notifier):
    config = EngineConfig(network_timeout=1.0)
    config.validate()
    return CatchmentEngine(
        store,
        config=config,
        surface=RecordingMapSurface(),
        notifier=notifier,
        id_factory=sequential_ids(),
    )
