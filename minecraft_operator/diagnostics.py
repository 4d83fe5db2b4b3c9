"""
Diagnostics store — the last-reconcile snapshot read by the status server.

One instance is created by the Manager and shared by reference with the
reconcilers (writers) and the HTTP handlers (readers).
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from minecraft_operator.config import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Diagnostics:
    last_event: datetime = field(default_factory=_utcnow)
    reporter: str = settings.CONTROLLER_NAME


class ReadWriteLock:
    """
    Asyncio reader/writer lock: many readers or one writer, never both.

    Waiting writers block new readers so a steady stream of status reads
    cannot starve reconciliations.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def reader(self):
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def writer(self):
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class DiagnosticsStore:
    """Lock-guarded holder of the current Diagnostics snapshot."""

    def __init__(self, reporter: str = settings.CONTROLLER_NAME):
        self._lock = ReadWriteLock()
        self._state = Diagnostics(reporter=reporter)

    async def read(self) -> Diagnostics:
        async with self._lock.reader():
            return self._state

    async def touch(self) -> Diagnostics:
        """Record that a reconcile or cleanup just ran."""
        async with self._lock.writer():
            self._state = replace(self._state, last_event=_utcnow())
            return self._state

    async def reporter(self) -> str:
        async with self._lock.reader():
            return self._state.reporter
