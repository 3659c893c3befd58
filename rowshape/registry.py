"""Session registry owning one asyncpg pool per caller session."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable

import asyncpg

from .config import RegistryConfig
from .errors import CapacityExceededError, ConnectionFailedError, SessionNotFoundError
from .gate import admit

LOG = logging.getLogger(__name__)

PROBE_QUERY = "SELECT 1"
POOL_IDLE_LIFETIME = 30.0

PoolFactory = Callable[..., Awaitable[Any]]
Clock = Callable[[], float]


class SessionState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CLOSED = "closed"


@dataclass(slots=True)
class Session:
    """Registry-owned binding between an opaque id and a live pool."""

    id: str
    created_at: float
    pool: Any = None
    state: SessionState = SessionState.PENDING
    leases: int = 0
    released: bool = False

    def age(self, now: float) -> float:
        return now - self.created_at


def new_session_id() -> str:
    """Return an unguessable session id (192 random bits)."""

    return secrets.token_urlsafe(24)


class SessionRegistry:
    """Creates, hands out and reclaims pooled database sessions.

    The session map is only touched while holding ``self._lock``. Handles are
    normally borrowed through :meth:`lease`, which pins the session so that a
    concurrent sweep or close removes it from the map but leaves its pool open
    until the last lease is returned.

    Sessions expire a fixed ``session_ttl`` after creation regardless of how
    recently they were used.
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        *,
        bypass: bool = False,
        production: bool = False,
        pool_factory: PoolFactory | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._config = config or RegistryConfig()
        self._bypass = bypass
        self._production = production
        self._pool_factory = pool_factory
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._pending: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def session_count(self) -> int:
        """Number of active sessions (for monitoring)."""

        return len(self._sessions)

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def __aenter__(self) -> SessionRegistry:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close_all()

    def start(self) -> None:
        """Launch the background sweep on the running event loop."""

        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._sweeper = loop.create_task(self._sweep_loop(), name="rowshape-session-sweep")

    async def stop(self) -> None:
        """Cancel the background sweep without touching sessions."""

        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def create(self, descriptor: str) -> str:
        """Admit ``descriptor``, open a probed pool for it and return a new session id."""

        admit(descriptor, bypass=self._bypass)
        session = Session(id=new_session_id(), created_at=self._clock())
        async with self._lock:
            if len(self._sessions) + len(self._pending) >= self._config.max_sessions:
                raise CapacityExceededError(
                    "Maximum number of concurrent connections reached. Please try again later."
                )
            self._pending[session.id] = session
        try:
            session.pool = await self._open_pool(descriptor)
            async with self._lock:
                session.created_at = self._clock()
                session.state = SessionState.ACTIVE
                self._sessions[session.id] = session
        except BaseException:
            # Cancelled between probe and registration: nobody else owns the pool.
            if session.pool is not None and session.state is SessionState.PENDING:
                _terminate_quiet(session.pool)
            raise
        finally:
            self._pending.pop(session.id, None)
        LOG.info("Session opened", extra={"sessions": len(self._sessions)})
        return session.id

    async def get_handle(self, session_id: str) -> Any:
        """Return the pool of an active session.

        The pool is not pinned, so a sweep or close may release it while the
        caller still holds it. Use :meth:`lease` for anything that runs queries.
        """

        async with self._lock:
            return self._active(session_id).pool

    @asynccontextmanager
    async def lease(self, session_id: str) -> AsyncIterator[Any]:
        """Borrow a session's pool; the pool stays open until the lease is returned."""

        async with self._lock:
            session = self._active(session_id)
            session.leases += 1
        try:
            yield session.pool
        finally:
            async with self._lock:
                session.leases -= 1
                release = session.state is not SessionState.ACTIVE and session.leases == 0
            if release:
                await self._release(session)

    async def close(self, session_id: str) -> None:
        """Close one session and release its pool."""

        async with self._lock:
            session = self._active(session_id)
            release = self._detach(session, SessionState.CLOSED)
        if release:
            await self._release(session)
        LOG.info("Session closed", extra={"sessions": len(self._sessions)})

    async def close_all(self) -> None:
        """Stop sweeping and close every session; failures are logged, not raised."""

        await self.stop()
        async with self._lock:
            sessions = list(self._sessions.values())
            releasable = [s for s in sessions if self._detach(s, SessionState.CLOSED)]
        await asyncio.gather(*(self._release(session) for session in releasable))
        if sessions:
            LOG.info("Closed all sessions", extra={"count": len(sessions)})

    async def sweep(self) -> int:
        """Expire sessions older than the TTL; returns how many were expired."""

        now = self._clock()
        ttl = self._config.session_ttl
        async with self._lock:
            expired = [s for s in self._sessions.values() if s.age(now) > ttl]
            releasable = [s for s in expired if self._detach(s, SessionState.EXPIRED)]
        for session in releasable:
            await self._release(session)
        if expired:
            LOG.info(
                "Expired sessions reclaimed",
                extra={"expired": len(expired), "deferred": len(expired) - len(releasable)},
            )
        return len(expired)

    def stats(self) -> dict[str, int]:
        """Return registry statistics for monitoring."""

        return {
            "sessions": len(self._sessions),
            "pending": len(self._pending),
            "leased": sum(1 for s in self._sessions.values() if s.leases),
            "capacity": self._config.max_sessions,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _active(self, session_id: str) -> Session:
        session = self._sessions.get(session_id) if isinstance(session_id, str) else None
        if session is None or session.state is not SessionState.ACTIVE:
            raise SessionNotFoundError("Connection not found or expired. Please reconnect.")
        return session

    def _detach(self, session: Session, state: SessionState) -> bool:
        """Remove ``session`` from the map; True when its pool can be released now."""

        self._sessions.pop(session.id, None)
        session.state = state
        return session.leases == 0

    async def _open_pool(self, descriptor: str) -> Any:
        factory = self._pool_factory or asyncpg.create_pool
        config = self._config
        pool = None
        try:
            pool = await factory(
                dsn=descriptor,
                min_size=0,
                max_size=config.pool_max_size,
                max_inactive_connection_lifetime=POOL_IDLE_LIFETIME,
                timeout=config.connect_timeout,
                command_timeout=config.statement_timeout,
                server_settings={"statement_timeout": str(int(config.statement_timeout * 1000))},
            )
            async with pool.acquire(timeout=config.connect_timeout) as conn:
                await conn.fetchval(PROBE_QUERY)
        except Exception as exc:
            if pool is not None:
                _terminate_quiet(pool)
            LOG.info("Connection probe failed", extra={"error": type(exc).__name__})
            if self._production:
                raise ConnectionFailedError(
                    "Failed to connect to database. Please verify your connection string."
                ) from exc
            raise ConnectionFailedError(f"Failed to connect: {exc}") from exc
        except BaseException:
            if pool is not None:
                _terminate_quiet(pool)
            raise
        return pool

    async def _release(self, session: Session) -> None:
        if session.released:
            return
        session.released = True
        try:
            await session.pool.close()
        except Exception:
            LOG.exception("Failed to close session pool", extra={"state": session.state.value})

    async def _sweep_loop(self) -> None:
        interval = self._config.sweep_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:  # pragma: no cover - defensive logging path
                LOG.exception("Session sweep failed")


def _terminate_quiet(pool: Any) -> None:
    try:
        pool.terminate()
    except Exception:  # pragma: no cover - best effort cleanup
        pass


__all__ = [
    "PROBE_QUERY",
    "Session",
    "SessionRegistry",
    "SessionState",
    "new_session_id",
]
