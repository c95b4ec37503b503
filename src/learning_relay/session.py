"""Session-scoped state: catalog snapshot, search history and response stream."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional
from uuid import UUID, uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from learning_relay.models import CatalogEntry, HistoryEntry, SessionInfo

logger = logging.getLogger(__name__)

CatalogFetcher = Callable[[], Awaitable[tuple[CatalogEntry, ...]]]


class CatalogCache:
    """Holds one catalog snapshot, fetched at most once.

    Concurrent callers share a single in-flight fetch. A failed fetch is
    forgotten so a later call can try again; a completed one is never repeated.
    """

    def __init__(self, fetcher: CatalogFetcher):
        self._fetcher = fetcher
        self._task: Optional[asyncio.Task] = None
        self._snapshot: Optional[tuple[CatalogEntry, ...]] = None

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> tuple[CatalogEntry, ...]:
        return self._snapshot or ()

    async def get(self) -> tuple[CatalogEntry, ...]:
        """Return the snapshot, fetching it on first use."""
        if self._snapshot is not None:
            return self._snapshot

        if self._task is None:
            self._task = asyncio.create_task(self._fetch())

        # Waiters must not cancel the shared fetch when they time out
        return await asyncio.shield(self._task)

    async def _fetch(self) -> tuple[CatalogEntry, ...]:
        try:
            snapshot = tuple(await self._fetcher())
        except BaseException:
            self._task = None
            raise
        self._snapshot = snapshot
        return snapshot

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


class SessionHistory:
    """Append-only record of searches, in the order they were made."""

    def __init__(self):
        self._entries: list[HistoryEntry] = []

    def record(self, query: str, results: tuple[CatalogEntry, ...]) -> HistoryEntry:
        entry = HistoryEntry(
            query=query,
            results=tuple(results),
            recorded_at=datetime.now(timezone.utc),
        )
        self._entries.append(entry)
        return entry

    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class Session:
    """An active tool session."""

    def __init__(self, fetcher: CatalogFetcher, session_id: Optional[UUID] = None):
        self.session_id = session_id or uuid4()
        self.created_at = datetime.now(timezone.utc)
        self.catalog = CatalogCache(fetcher)
        self.history = SessionHistory()
        # Batches are handled one at a time per session
        self.batch_lock = asyncio.Lock()
        # Channel for sending events back to the client via SSE
        self.event_send: MemoryObjectSendStream[dict[str, Any]]
        self.event_recv: MemoryObjectReceiveStream[dict[str, Any]]
        self.event_send, self.event_recv = anyio.create_memory_object_stream(32)
        # Only sessions with an attached SSE stream receive events
        self.streaming = False
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self.last_active = time.monotonic()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return bool(self._pending) or self.batch_lock.locked()

    def touch(self) -> None:
        self.last_active = time.monotonic()

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.session_id.hex,
            created_at=self.created_at,
            catalog_loaded=self.catalog.loaded,
            catalog_size=len(self.catalog.snapshot),
            searches=len(self.history),
        )

    async def send_event(self, event: dict[str, Any]) -> None:
        """Send an event to the client; dropped without a stream or once closed."""
        if self.streaming and not self._closed:
            try:
                await self.event_send.send(event)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                self._closed = True

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run background work owned by this session."""
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def close(self) -> None:
        """Close the session, abandoning any in-flight work."""
        self._closed = True
        for task in list(self._pending):
            task.cancel()
        self.catalog.cancel()
        await self.event_send.aclose()


class SessionRegistry:
    """Maps session ids to live sessions."""

    def __init__(self, fetcher: CatalogFetcher):
        self._fetcher = fetcher
        self._sessions: dict[UUID, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self) -> Session:
        session = Session(self._fetcher)
        async with self._lock:
            self._sessions[session.session_id] = session
        logger.info(f"Session started: {session.session_id}")
        return session

    async def get(self, session_id: UUID) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def close(self, session_id: UUID) -> bool:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Session ended: {session_id}")
        return True

    async def close_all(self) -> None:
        async with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            await self.close(session_id)

    async def sessions(self) -> list[Session]:
        async with self._lock:
            return list(self._sessions.values())

    async def expire_idle(self, max_idle: float, now: Optional[float] = None) -> int:
        """Close sessions unused for longer than ``max_idle`` seconds.

        Sessions with an attached stream end when it disconnects, and sessions
        with work in flight are left alone.
        """
        now = time.monotonic() if now is None else now
        async with self._lock:
            expired = [
                self._sessions.pop(session_id)
                for session_id, session in list(self._sessions.items())
                if not session.streaming
                and not session.busy
                and now - session.last_active > max_idle
            ]
        for session in expired:
            await session.close()
            logger.info(f"Session expired after {max_idle:.0f}s idle: {session.session_id}")
        return len(expired)
