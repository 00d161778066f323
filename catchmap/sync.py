"""Remote-first commit discipline between in-memory state and the favorites store.

Every structural mutation goes through :meth:`PersistenceSync.commit`:

1. acquire the per-school lock (mutations of one school are serialized),
2. build the candidate from the *current* committed state,
3. await the remote call, bounded by the configured network timeout,
4. only then apply the candidate locally and notify success.

Any failure in step 3 leaves local state untouched, surfaces an error
notification and raises :class:`~catchmap.errors.PersistenceError`.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar
import asyncio
import logging

from .entities import School
from .errors import PersistenceError

__all__ = [
    "FavoritesStore",
    "Notifier",
    "LoggingNotifier",
    "PersistenceSync",
    "DEFAULT_TIMEOUT",
]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

T = TypeVar("T")


class FavoritesStore(Protocol):
    """Remote favorites store; failures are reported by raising."""

    async def list(self) -> List[School]: ...

    async def create(self, school: School) -> Any: ...

    async def update(self, school: School) -> Any: ...

    async def delete(self, school_id: str) -> Any: ...


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier: user-facing messages go to the ``catchmap.notifications`` logger."""

    def __init__(self, name: str = "catchmap.notifications"):
        self._log = logging.getLogger(name)

    def success(self, message: str) -> None:
        self._log.info(message)

    def error(self, message: str) -> None:
        self._log.error(message)


class PersistenceSync:
    def __init__(
        self,
        store: FavoritesStore,
        *,
        notifier: Optional[Notifier] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.store = store
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.timeout = float(timeout)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._in_flight: Dict[str, int] = defaultdict(int)

    def lock_for(self, school_id: str) -> asyncio.Lock:
        return self._locks[school_id]

    def in_flight(self, school_id: str) -> bool:
        return self._in_flight.get(school_id, 0) > 0

    async def _call(self, op: str, school_id: str, call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "sync.timeout op=%s school_id=%s timeout=%.1fs", op, school_id, self.timeout
            )
            raise PersistenceError(
                f"Timed out after {self.timeout:g}s while saving; please retry",
                retryable=True,
            ) from None
        except PersistenceError:
            raise
        except Exception as exc:
            logger.error("sync.commit_failed op=%s school_id=%s error=%r", op, school_id, exc)
            raise PersistenceError(f"Remote store error during {op}: {exc}") from exc

    async def load(self) -> List[School]:
        """Fetch the full favorites list once; used to seed local state at start-up."""
        try:
            schools = await self._call("list", "*", self.store.list)
        except PersistenceError as exc:
            self.notifier.error(f"Failed to load saved data: {exc}")
            raise
        logger.info("sync.loaded schools=%d", len(schools))
        return list(schools)

    async def commit(
        self,
        school_id: str,
        *,
        op: str,
        build: Callable[[], T],
        send: Callable[[T], Awaitable[Any]],
        apply: Callable[[T], None],
        success_message: str,
        failure_message: str,
    ) -> T:
        self._in_flight[school_id] += 1
        try:
            async with self.lock_for(school_id):
                candidate = build()
                try:
                    await self._call(op, school_id, lambda: send(candidate))
                except PersistenceError as exc:
                    self.notifier.error(f"{failure_message}: {exc}")
                    raise
                apply(candidate)
                logger.debug("sync.committed op=%s school_id=%s", op, school_id)
                self.notifier.success(success_message)
                return candidate
        finally:
            self._in_flight[school_id] -= 1
            if self._in_flight[school_id] <= 0:
                self._in_flight.pop(school_id, None)
                lock = self._locks.get(school_id)
                if lock is not None and not lock.locked():
                    self._locks.pop(school_id, None)

    async def create(self, school_id: str, *, build: Callable[[], School], apply: Callable[[School], None], **messages: str) -> School:
        return await self.commit(
            school_id, op="create", build=build, send=self.store.create, apply=apply, **messages
        )

    async def update(self, school_id: str, *, build: Callable[[], School], apply: Callable[[School], None], **messages: str) -> School:
        return await self.commit(
            school_id, op="update", build=build, send=self.store.update, apply=apply, **messages
        )

    async def delete(self, school_id: str, *, build: Callable[[], School], apply: Callable[[School], None], **messages: str) -> School:
        return await self.commit(
            school_id,
            op="delete",
            build=build,
            send=lambda school: self.store.delete(school.id),
            apply=apply,
            **messages,
        )
