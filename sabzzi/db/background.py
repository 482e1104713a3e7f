"""
Background task for database maintenance.

Periodically deletes expired challenges and revocation entries. Correctness
never depends on it: expiry is checked wherever a record is read.
"""

import asyncio
import logging

from ..util.timeutil import utcnow
from . import DatabaseInterface

# Cleanup expired items every N seconds (cheap when nothing to remove)
CLEANUP_INTERVAL = 60

_logger = logging.getLogger(__name__)


async def _background_loop(db: DatabaseInterface, interval: float):
    _logger.info("Background loop starting")
    while True:
        try:
            await db.cleanup(utcnow())
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            _logger.info("Background loop cancelled")
            break
        except Exception:
            _logger.exception("Error in database background loop")
            await asyncio.sleep(interval)


def start_background(
    db: DatabaseInterface, interval: float = CLEANUP_INTERVAL
) -> asyncio.Task:
    """Start the cleanup task; the caller owns the returned task."""
    return asyncio.create_task(_background_loop(db, interval))


async def stop_background(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
