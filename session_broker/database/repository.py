"""Async repository for the acquisition attempt journal."""

from __future__ import annotations

import logging
import sys

import aiosqlite

from ..models.attempt import AcquisitionAttempt

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class AttemptRepository:
    """Async repository for acquisition attempts in SQLite."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def record_attempt(self, attempt: AcquisitionAttempt) -> int:
        """Insert an attempt and return its row id."""
        cursor = await self._db.execute(
            """
            INSERT INTO acquisition_attempts (
                started_at, finished_at, outcome, failure_kind,
                failure_detail, cookie_count, final_url
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attempt.started_at, attempt.finished_at, attempt.outcome,
                attempt.failure_kind, attempt.failure_detail,
                attempt.cookie_count, attempt.final_url,
            ),
        )
        await self._db.commit()
        attempt_id = cursor.lastrowid
        await cursor.close()
        logger.info(f"Recorded {attempt.outcome} acquisition attempt #{attempt_id}")
        return attempt_id

    async def recent_attempts(self, limit: int = 20) -> list[AcquisitionAttempt]:
        """Most recent attempts, newest first."""
        async with self._db.execute(
            "SELECT * FROM acquisition_attempts ORDER BY id DESC LIMIT ?", (limit,)
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_attempt(row, cursor.description) for row in rows]

    async def get_attempt_stats(self) -> dict:
        """Aggregate counts of attempts by outcome and failure kind."""
        stats = {}

        async with self._db.execute("SELECT COUNT(*) FROM acquisition_attempts") as cursor:
            stats["total_attempts"] = (await cursor.fetchone())[0]

        async with self._db.execute(
            "SELECT COUNT(*) FROM acquisition_attempts WHERE outcome = 'succeeded'"
        ) as cursor:
            stats["succeeded"] = (await cursor.fetchone())[0]

        stats["failed"] = stats["total_attempts"] - stats["succeeded"]

        async with self._db.execute(
            "SELECT MAX(started_at) FROM acquisition_attempts WHERE outcome = 'succeeded'"
        ) as cursor:
            row = await cursor.fetchone()
            stats["last_success_time"] = row[0] if row[0] else None

        async with self._db.execute(
            "SELECT failure_kind, COUNT(*) FROM acquisition_attempts "
            "WHERE outcome = 'failed' GROUP BY failure_kind"
        ) as cursor:
            stats["failure_breakdown"] = {row[0]: row[1] async for row in cursor}

        return stats

    def _row_to_attempt(self, row: tuple, description) -> AcquisitionAttempt:
        """Convert a database row to an AcquisitionAttempt model."""
        col_names = [d[0] for d in description]
        return AcquisitionAttempt(**dict(zip(col_names, row)))
