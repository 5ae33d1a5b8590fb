"""SQLite schema creation and migrations."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

SCHEMA_VERSION = 1

# Decimals are stored as TEXT so that amounts and prices round-trip exactly.
TABLES: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS trades (
        trade_id        TEXT    PRIMARY KEY,
        order_id        TEXT    NOT NULL,
        side            TEXT    NOT NULL,
        currency_pair   TEXT    NOT NULL,
        amount          TEXT    NOT NULL,
        price           TEXT    NOT NULL,
        fee_amount      TEXT    NOT NULL DEFAULT '0',
        fee_currency    TEXT    NOT NULL,
        timestamp       TEXT    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS positions (
        id                      INTEGER PRIMARY KEY,
        status                  TEXT    NOT NULL,
        currency_pair           TEXT    NOT NULL,
        amount                  TEXT    NOT NULL,
        stop_gain_percentage    REAL,
        stop_loss_percentage    REAL,
        open_order_id           TEXT    NOT NULL,
        close_order_id          TEXT,
        trade_ids               TEXT    NOT NULL DEFAULT '[]',
        lowest_price            TEXT,
        highest_price           TEXT,
        version                 INTEGER NOT NULL DEFAULT 0
    )
    """,
]

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_trades_timestamp ON trades(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_trades_order ON trades(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_positions_status ON positions(status)",
]


async def run_migrations(db_path: str) -> None:
    """Create all tables and indexes if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        for ddl in TABLES:
            await db.execute(ddl)
        for idx in INDEXES:
            await db.execute(idx)
        await db.commit()
