"""Database connection factory.

Provides a singleton async connection to the SQLite event journal with WAL mode.
"""
from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from claude_monitor import config

logger = logging.getLogger("claude_monitor.db")

_connection: aiosqlite.Connection | None = None


async def get_connection(db_path: Path | str | None = None) -> aiosqlite.Connection:
    """Return the singleton database connection, creating it if needed."""
    global _connection
    if _connection is not None:
        return _connection

    path = str(db_path or config.DB_PATH)
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row
    # Enable WAL mode for better concurrent read performance
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    logger.info(f"Database connection established: {path}")
    _connection = conn
    return _connection


async def close_connection() -> None:
    """Close the database connection."""
    global _connection
    if _connection is not None:
        await _connection.close()
        _connection = None
        logger.info("Database connection closed")
