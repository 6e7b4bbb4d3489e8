"""
Activity Deduper
================

Process-wide set of Live Activity ids that are currently live.  A ride's
start notification is processed at most once per activity id until the
ride ends, so duplicate client retries cannot double-send a push.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class ActivityDeduper:
    """Test-and-set registry of live activity ids."""

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._lock = asyncio.Lock()

    async def try_start(self, activity_id: str) -> bool:
        """
        Mark *activity_id* live.

        Returns:
            True if this call claimed the id, False if it was already live
        """
        async with self._lock:
            if activity_id in self._active:
                logger.warning("Duplicate activity detected: %s", activity_id)
                return False
            self._active.add(activity_id)
            return True

    async def end(self, activity_id: str) -> None:
        """Forget *activity_id*; no-op if it is not live."""
        async with self._lock:
            self._active.discard(activity_id)

    async def is_live(self, activity_id: str) -> bool:
        async with self._lock:
            return activity_id in self._active

    def __len__(self) -> int:
        return len(self._active)
