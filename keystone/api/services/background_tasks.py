"""
Background Workers

Housekeeping that runs beside the request path. Nothing here affects
authorization outcomes: a revoked or expired refresh session is already
invalid whether or not its row has been purged.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from keystone.api.auth.sessions import SessionManager
from keystone.api.config import settings
from keystone.api.db.session import Database

logger = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    """Statistics for a background worker."""
    name: str
    started_at: datetime
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    purged_total: int = 0
    error_count: int = 0
    last_error: Optional[str] = None


class SessionSweepWorker:
    """Periodically deletes revoked and expired refresh sessions."""

    def __init__(self, database: Database, interval_seconds: Optional[int] = None):
        self.database = database
        self.interval = interval_seconds or settings.SESSION_SWEEP_INTERVAL_SECONDS
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stats = WorkerStats(
            name="session_sweep",
            started_at=datetime.now(timezone.utc),
        )

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep worker."""
        if self._running:
            return

        self._running = True
        self._stats.started_at = datetime.now(timezone.utc)
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Session sweep worker started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        """Stop the sweep worker."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session sweep worker stopped")

    async def run_once(self) -> int:
        """One sweep in its own session; returns rows purged."""
        async for session in self.database.session():
            purged = await SessionManager(session).sweep()
            await session.commit()

        self._stats.run_count += 1
        self._stats.purged_total += purged
        self._stats.last_run_at = datetime.now(timezone.utc)
        return purged

    async def _run_loop(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Session sweep error: {e}")
                self._stats.error_count += 1
                self._stats.last_error = str(e)
