"""
Presence Monitor: per-connection last-active timestamps.

Every inbound frame (including heartbeats) refreshes a connection. A
background task sweeps at a fixed interval and hands connections that have
been silent longer than the timeout to the on_expired callback, which runs
the normal disconnect path.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from config import settings

logger = logging.getLogger(__name__)

ExpiredCallback = Callable[[str], Awaitable[None]]


class PresenceMonitor:

    def __init__(
        self,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout if timeout is not None else settings.heartbeat_timeout_seconds
        self.interval = interval if interval is not None else settings.heartbeat_interval_seconds
        self._clock = clock
        self._last_active: Dict[str, float] = {}
        self._task: Optional[asyncio.Task] = None

    # ── Tracking ──────────────────────────────────────────────────────────────

    def touch(self, connection_id: str) -> None:
        self._last_active[connection_id] = self._clock()

    def forget(self, connection_id: str) -> None:
        self._last_active.pop(connection_id, None)

    def last_active(self, connection_id: str) -> Optional[float]:
        return self._last_active.get(connection_id)

    def expired(self, now: Optional[float] = None) -> List[str]:
        """Connection ids silent for longer than the timeout."""
        now = self._clock() if now is None else now
        return [
            cid for cid, seen in self._last_active.items()
            if now - seen > self.timeout
        ]

    def __len__(self) -> int:
        return len(self._last_active)

    # ── Background sweep ──────────────────────────────────────────────────────

    async def sweep(self, on_expired: ExpiredCallback) -> List[str]:
        stale = self.expired()
        for cid in stale:
            logger.info(f"Connection {cid} timed out")
            self.forget(cid)
            try:
                await on_expired(cid)
            except Exception:
                logger.exception("Presence expiry handler failed for %s", cid)
        return stale

    async def _run(self, on_expired: ExpiredCallback) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.sweep(on_expired)

    def start(self, on_expired: ExpiredCallback) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(on_expired))
        logger.debug(f"Presence monitor started (timeout={self.timeout}s, interval={self.interval}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
