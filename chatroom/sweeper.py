"""
Background eviction of participants that stopped sending heartbeats.

The sweeper is the only mechanism that detects departures. Each pass reads
the stale participants once, then evicts them one by one in independent
sessions: a failure on one participant is logged and the pass moves on.
"""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from chatroom.config import settings
from chatroom.metrics import record_eviction, record_sweep
from chatroom.presence import PresenceRegistry
from chatroom.storage import SessionLocal

logger = logging.getLogger(__name__)


class EvictionSweeper:
    """
    Periodically evicts stale participants from a presence registry.

    Args:
        registry: Registry whose clock and staleness threshold drive eviction
        session_factory: Creates a database session per unit of work
        interval_seconds: Delay between two passes of the background loop
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.SWEEP_INTERVAL_SECONDS
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> list:
        """
        Run one pass: evict every participant stale at the time of the pass.

        Never raises; failures are logged and counted per participant.

        Returns:
            Names of the participants evicted by this pass
        """
        now = self.registry.now()
        try:
            with self.session_factory() as db:
                stale = [(p.name, p.last_heartbeat) for p in self.registry.find_stale(db, now)]
        except Exception as e:
            logger.error(f"Sweep aborted, could not read participants: {e}")
            return []

        evicted = []
        for name, last_heartbeat in stale:
            try:
                with self.session_factory() as db:
                    removed = self.registry.evict(db, name, last_heartbeat, now)
            except Exception as e:
                logger.error(f"Failed to evict {name}: {e}")
                record_eviction("failed")
                continue

            if removed:
                evicted.append(name)
                record_eviction("evicted")
            else:
                record_eviction("skipped")

        record_sweep()
        if stale:
            logger.info(f"Sweep complete: {len(evicted)} of {len(stale)} stale participants evicted")
        else:
            logger.debug("Sweep complete: no stale participants")
        return evicted

    async def _run(self) -> None:
        logger.info(f"Eviction sweeper started (interval={self.interval_seconds}s)")
        while True:
            await asyncio.sleep(self.interval_seconds)
            # Database work happens off the event loop so requests keep flowing
            await asyncio.to_thread(self.sweep)

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="eviction-sweeper")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Eviction sweeper stopped")
