"""Async Data Access Layer for the SHARED_CARD table.

Provides ShareDAL with the create/read operations behind share
links, compatible with `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from models.share_record import SharedCardRecord
from utils.database_init import AsyncDatabaseInitializer


class ShareDAL:
    """Data access layer for SHARED_CARD records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "story_text",
        "child_name",
        "voice_id",
        "image_url",
        "custom_voice_id",
        "experience_type",
        "occasion",
        "created_at",
        "expires_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)
    _PLACEHOLDERS = ", ".join("?" for _ in _COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_card(self, record: SharedCardRecord, ttl_seconds: int) -> SharedCardRecord:
        """Insert a card that expires ``ttl_seconds`` from its creation time.

        Returns:
            The stored record with `created_at` and `expires_at` filled in.
        """
        created_at = record.created_at or int(time.time())
        record.created_at = created_at
        record.expires_at = created_at + ttl_seconds

        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT INTO SHARED_CARD ({self._COLUMN_LIST}) VALUES ({self._PLACEHOLDERS})",
                (
                    record.id,
                    record.story_text,
                    record.child_name,
                    record.voice_id,
                    record.image_url,
                    record.custom_voice_id,
                    record.experience_type,
                    record.occasion,
                    record.created_at,
                    record.expires_at,
                ),
            )
            await conn.commit()
        return record

    async def get_card(self, card_id: str, now: Optional[int] = None) -> Optional[SharedCardRecord]:
        """Return the card for `card_id`, or None if missing or expired."""
        cutoff = int(time.time()) if now is None else now
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM SHARED_CARD WHERE id = ? AND expires_at > ?",
                (card_id, cutoff),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> SharedCardRecord:
        """Convert a DB row tuple into a SharedCardRecord."""
        return SharedCardRecord(
            id=row[0],
            story_text=row[1],
            child_name=row[2],
            voice_id=row[3],
            image_url=row[4],
            custom_voice_id=row[5],
            experience_type=row[6],
            occasion=row[7],
            created_at=row[8],
            expires_at=row[9],
        )
