"""
SQLite database connection and initialization.
"""

import logging
from pathlib import Path

import aiosqlite

from threatlens.config import get_settings


logger = logging.getLogger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS uploads (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        file_name TEXT NOT NULL,
        file_size INTEGER NOT NULL,
        storage_path TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_uploads_status ON uploads (status, updated_at)",
    """
    CREATE TABLE IF NOT EXISTS analysis_results (
        id TEXT PRIMARY KEY,
        upload_id TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL DEFAULT 'IN_PROGRESS',
        rule_based_completed INTEGER NOT NULL DEFAULT 0,
        llm_available INTEGER NOT NULL DEFAULT 0,
        llm_completed INTEGER NOT NULL DEFAULT 0,
        total_lines_analyzed INTEGER NOT NULL DEFAULT 0,
        total_findings INTEGER NOT NULL DEFAULT 0,
        critical_count INTEGER NOT NULL DEFAULT 0,
        high_count INTEGER NOT NULL DEFAULT 0,
        medium_count INTEGER NOT NULL DEFAULT 0,
        low_count INTEGER NOT NULL DEFAULT 0,
        info_count INTEGER NOT NULL DEFAULT 0,
        warnings TEXT NOT NULL DEFAULT '[]',
        overall_summary TEXT,
        error_message TEXT,
        analysis_started_at TEXT,
        analysis_ended_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (upload_id) REFERENCES uploads(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS findings (
        id TEXT PRIMARY KEY,
        analysis_result_id TEXT NOT NULL,
        severity TEXT NOT NULL,
        severity_rank INTEGER NOT NULL,
        category TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        line_number INTEGER,
        line_content TEXT,
        matched_pattern TEXT,
        source TEXT NOT NULL,
        fingerprint TEXT NOT NULL,
        recommendation TEXT,
        confidence REAL,
        mitre_tactic TEXT,
        mitre_technique TEXT,
        event_timestamp TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (analysis_result_id, fingerprint),
        FOREIGN KEY (analysis_result_id) REFERENCES analysis_results(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_findings_result ON findings (analysis_result_id, source)",
]


def database_path() -> Path:
    return Path(get_settings().database_path)


async def init_database():
    """Initialize the database with required tables."""
    path = database_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(path) as db:
        for statement in SCHEMA:
            await db.execute(statement)
        await db.commit()

    logger.info("Database ready at %s", path)


async def get_db():
    """Get database connection as async context manager."""
    path = database_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return aiosqlite.connect(path)
