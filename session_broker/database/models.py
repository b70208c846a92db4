"""SQLite database schema and initialization."""

from __future__ import annotations

import aiosqlite

SCHEMA = """
CREATE TABLE IF NOT EXISTS acquisition_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    outcome TEXT NOT NULL DEFAULT 'failed',
    failure_kind TEXT DEFAULT '',
    failure_detail TEXT DEFAULT '',
    cookie_count INTEGER DEFAULT 0,
    final_url TEXT DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_attempts_started ON acquisition_attempts(started_at);
CREATE INDEX IF NOT EXISTS idx_attempts_outcome ON acquisition_attempts(outcome);
"""


async def initialize_db(db: aiosqlite.Connection):
    """Create tables and indexes if they don't exist."""
    await db.executescript(SCHEMA)
    await db.commit()
