"""
Session Registry
================

In-memory registry of live stream sessions, keyed by ride or stream id.
One registry exists per session kind (frame forwarding, HLS segments,
realtime presence); each session carries the buffer policy of its kind.

NOT persistent: sessions are lost on restart.  Stopped sessions stay
readable for a grace period, and a background sweep evicts both expired
stopped sessions and sessions that have gone idle, so the registry
itself cannot grow without bound.

Locking:
    - ``SessionRegistry._lock`` guards the key → session map.
    - ``Session.lock`` serializes buffer and viewer mutation for one
      session, so unrelated streams never wait on each other.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

from app.core.errors import SessionInactiveError, SessionNotFoundError
from app.utils.helpers import Clock, system_clock

logger = logging.getLogger(__name__)

BufferT = TypeVar("BufferT")
ResultT = TypeVar("ResultT")

# Defaults mirror the settings; callers pick per-kind values.
DEFAULT_GRACE_PERIOD_SECONDS = 30.0
DEFAULT_IDLE_TTL_SECONDS = 60 * 30  # 30 minutes
DEFAULT_SWEEP_INTERVAL_SECONDS = 60


@dataclass(eq=False)
class Session(Generic[BufferT]):
    """One independently tracked live channel."""

    key: str
    created_at: float
    last_activity: float
    buffer: BufferT
    is_active: bool = True
    stopped_at: Optional[float] = None
    viewers: set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def touch(self, now: float) -> None:
        self.last_activity = now

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    @property
    def serves_after_stop(self) -> bool:
        """Whether reads keep working during the post-stop grace window."""
        return bool(getattr(self.buffer, "serves_after_stop", False))


class SessionRegistry(Generic[BufferT]):
    """Owns every session of one kind and their eviction."""

    def __init__(
        self,
        kind: str,
        buffer_factory: Callable[[], BufferT],
        *,
        grace_period_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS,
        idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Clock = system_clock,
    ) -> None:
        self.kind = kind
        self.grace_period_seconds = grace_period_seconds
        self.idle_ttl_seconds = idle_ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._buffer_factory = buffer_factory
        self._clock = clock
        self._sessions: dict[str, Session[BufferT]] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def now(self) -> float:
        return self._clock()

    # -------------------------------------------------------------------------
    # Lookup / creation
    # -------------------------------------------------------------------------

    def _new_session(self, key: str) -> Session[BufferT]:
        now = self._clock()
        session = Session(
            key=key,
            created_at=now,
            last_activity=now,
            buffer=self._buffer_factory(),
        )
        self._sessions[key] = session
        logger.info("%s session created: %s", self.kind, key)
        return session

    async def get_or_create(self, key: str) -> Session[BufferT]:
        """Return the session for *key*, creating an active one if absent."""
        async with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = self._new_session(key)
            return session

    async def start(self, key: str) -> Session[BufferT]:
        """
        Explicitly start a session.

        An active session is returned as-is.  A stopped session still in
        its grace window is replaced by a fresh one, which also drops its
        pending eviction.
        """
        async with self._lock:
            session = self._sessions.get(key)
            if session is not None and session.is_active:
                session.touch(self._clock())
                return session
            if session is not None:
                logger.info("%s session restarted: %s", self.kind, key)
            return self._new_session(key)

    async def get(self, key: str) -> Optional[Session[BufferT]]:
        """Return the session for *key*, or ``None``.  Never creates."""
        async with self._lock:
            return self._sessions.get(key)

    async def require(self, key: str) -> Session[BufferT]:
        """
        Return the session for *key*.

        Raises:
            SessionNotFoundError: If no session exists for *key*
        """
        session = await self.get(key)
        if session is None:
            raise SessionNotFoundError(key, self.kind)
        return session

    async def list_active(self) -> list[Session[BufferT]]:
        """Snapshot of all sessions that have not been stopped."""
        async with self._lock:
            return [s for s in self._sessions.values() if s.is_active]

    # -------------------------------------------------------------------------
    # Buffer access
    # -------------------------------------------------------------------------

    async def write(
        self,
        key: str,
        apply: Callable[[Session[BufferT]], ResultT],
        *,
        create: bool = False,
    ) -> ResultT:
        """
        Run a mutation against a live session under its lock.

        Liveness is re-checked once the session lock is held, so a write
        racing a ``stop`` is rejected rather than applied to a stopped
        session.

        Args:
            key: Session key
            apply: Mutation; receives the session, its result is returned
            create: Lazily create the session when *key* is unknown

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionInactiveError: If the session has been stopped
        """
        if create:
            session = await self.get_or_create(key)
        else:
            session = await self.require(key)

        async with session.lock:
            if not session.is_active:
                raise SessionInactiveError(key, self.kind)
            result = apply(session)
            session.touch(self._clock())
        return result

    async def read(
        self,
        key: str,
        apply: Callable[[Session[BufferT]], ResultT],
    ) -> ResultT:
        """
        Project session state under its lock without mutating it.

        Stopped sessions are readable during their grace window only if
        their buffer policy allows it.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionInactiveError: If stopped and the buffer is live-only
        """
        session = await self.require(key)
        async with session.lock:
            if not session.is_active and not session.serves_after_stop:
                raise SessionInactiveError(key, self.kind)
            return apply(session)

    async def inspect(
        self,
        key: str,
        apply: Callable[[Session[BufferT]], ResultT],
    ) -> ResultT:
        """
        Project session metadata regardless of liveness (stats, status).

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.require(key)
        async with session.lock:
            return apply(session)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def stop(self, key: str) -> Optional[Session[BufferT]]:
        """
        Mark a session inactive; it is evicted once the grace period ends.

        No-op (returns ``None``) if the session does not exist.
        """
        session = await self.get(key)
        if session is None:
            return None

        async with session.lock:
            if session.is_active:
                now = self._clock()
                session.is_active = False
                session.stopped_at = now
                session.touch(now)
                logger.info(
                    "%s session stopped: %s (evicted in %ss)",
                    self.kind,
                    key,
                    self.grace_period_seconds,
                )
        return session

    async def join(self, key: str, viewer_id: str) -> int:
        """
        Add a viewer and return the new viewer count.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionInactiveError: If the session has been stopped
        """
        def add_viewer(session: Session[BufferT]) -> int:
            session.viewers.add(viewer_id)
            return session.viewer_count

        count = await self.write(key, add_viewer)
        logger.info("Viewer %s joined %s session %s", viewer_id, self.kind, key)
        return count

    async def leave(self, key: str, viewer_id: str) -> int:
        """Remove a viewer if present and return the viewer count."""
        session = await self.get(key)
        if session is None:
            return 0

        async with session.lock:
            if viewer_id in session.viewers:
                session.viewers.discard(viewer_id)
                session.touch(self._clock())
                logger.info("Viewer %s left %s session %s", viewer_id, self.kind, key)
            return session.viewer_count

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def _is_expired(self, session: Session[BufferT], now: float) -> bool:
        if not session.is_active:
            stopped_at = session.stopped_at if session.stopped_at is not None else now
            return (now - stopped_at) >= self.grace_period_seconds
        return (now - session.last_activity) > self.idle_ttl_seconds

    async def sweep(self, now: Optional[float] = None) -> list[str]:
        """
        Evict stopped sessions past their grace period and idle sessions.

        Returns:
            Keys of the evicted sessions
        """
        if now is None:
            now = self._clock()

        async with self._lock:
            expired = [
                key
                for key, session in self._sessions.items()
                if self._is_expired(session, now)
            ]
            for key in expired:
                removed = self._sessions.pop(key)
                logger.info(
                    "Evicted %s %s session %s",
                    "stopped" if not removed.is_active else "idle",
                    self.kind,
                    key,
                )
        return expired

    async def _sweep_loop(self) -> None:
        """Periodically evict expired sessions."""
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception as exc:
                logger.error("%s session sweep failed: %s", self.kind, exc)

    def start_sweeper(self) -> None:
        """Start the background sweep task (safe to call multiple times)."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        """Cancel the background sweep task."""
        task = self._sweep_task
        self._sweep_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
