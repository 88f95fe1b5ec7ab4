"""Helpers to remove expired SHARED_CARD rows from the SQLite database."""

import asyncio
import logging
import time

from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class DatabaseCleaner:
    """Delete shared cards whose expiry time has passed."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        """
        Args:
            db_initializer: Shared database initializer/connection provider.
        """
        self._db = db_initializer

    async def prune_expired_cards(self, now: int | None = None) -> int:
        """Delete expired SHARED_CARD rows and return the count removed."""
        cutoff = int(time.time()) if now is None else now
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM SHARED_CARD WHERE expires_at <= ?", (cutoff,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            deleted = await cur.fetchone()
            return int(deleted[0]) if deleted and deleted[0] is not None else 0

    async def run_periodic_cleanup(self, interval_seconds: int = 3_600) -> None:
        """
        Repeatedly prune expired rows at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                removed = await self.prune_expired_cards()
                if removed:
                    LOGGER.info("Removed %d expired shared card(s)", removed)
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                LOGGER.warning("Shared card cleanup failed: %s", exc)
                await asyncio.sleep(interval_seconds)
