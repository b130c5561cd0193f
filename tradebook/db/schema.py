"""SQLite database schema definition."""

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    account_type TEXT NOT NULL,
    balance_side TEXT NOT NULL CHECK (balance_side IN ('D', 'C')),
    settled_balance INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS journal_transactions (
    id TEXT PRIMARY KEY,
    transaction_date TEXT NOT NULL,
    description TEXT NOT NULL,
    external_ref TEXT,
    strategy TEXT,
    trade_num TEXT,
    amount INTEGER NOT NULL,
    posted_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id TEXT PRIMARY KEY,
    transaction_id TEXT NOT NULL REFERENCES journal_transactions(id),
    account_id TEXT NOT NULL REFERENCES accounts(id),
    amount INTEGER NOT NULL CHECK (amount > 0),
    side TEXT NOT NULL CHECK (side IN ('D', 'C'))
);

CREATE INDEX IF NOT EXISTS idx_ledger_entries_txn ON ledger_entries(transaction_id);
CREATE INDEX IF NOT EXISTS idx_ledger_entries_account ON ledger_entries(account_id);

CREATE TABLE IF NOT EXISTS stock_lots (
    id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    acquired_date TEXT NOT NULL,
    original_quantity TEXT NOT NULL,
    remaining_quantity TEXT NOT NULL,
    cost_per_share TEXT NOT NULL,
    total_cost_basis INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'OPEN',
    wash_sale_adjustment INTEGER NOT NULL DEFAULT 0,
    wash_sale_disallowed INTEGER NOT NULL DEFAULT 0,
    wash_sale_source_id TEXT,
    source_txn_id TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_stock_lots_user_symbol ON stock_lots(user_id, symbol);

CREATE TABLE IF NOT EXISTS lot_dispositions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    lot_id TEXT NOT NULL REFERENCES stock_lots(id),
    sale_txn_id TEXT NOT NULL,
    disposed_date TEXT NOT NULL,
    quantity_disposed TEXT NOT NULL,
    proceeds_per_share TEXT NOT NULL,
    total_proceeds INTEGER NOT NULL,
    fees_allocated INTEGER NOT NULL DEFAULT 0,
    cost_basis_disposed INTEGER NOT NULL,
    realized_gain_loss INTEGER NOT NULL,
    holding_period_days INTEGER NOT NULL,
    is_long_term INTEGER NOT NULL,
    matching_method TEXT NOT NULL,
    is_wash_sale INTEGER NOT NULL DEFAULT 0,
    wash_sale_loss INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_lot_dispositions_user ON lot_dispositions(user_id);

CREATE TABLE IF NOT EXISTS trading_positions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    underlying TEXT NOT NULL,
    option_type TEXT,
    strike TEXT,
    expiration TEXT,
    position_type TEXT NOT NULL,
    quantity TEXT NOT NULL,
    remaining_quantity TEXT NOT NULL,
    cost_basis INTEGER NOT NULL,
    open_price TEXT NOT NULL,
    open_fees TEXT NOT NULL DEFAULT '0',
    open_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'OPEN',
    close_price TEXT,
    close_fees TEXT,
    close_date TEXT,
    proceeds INTEGER,
    realized_pl INTEGER,
    strategy TEXT,
    trade_num TEXT,
    open_txn_id TEXT,
    close_txn_id TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_trading_positions_user ON trading_positions(user_id, underlying);

CREATE TABLE IF NOT EXISTS wash_sale_adjustments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    trigger_kind TEXT NOT NULL,
    trigger_id TEXT NOT NULL,
    replacement_kind TEXT NOT NULL,
    replacement_id TEXT NOT NULL,
    disallowed_loss INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (trigger_kind, trigger_id, replacement_kind, replacement_id)
);
"""


def create_schema(db_path: Path | str) -> sqlite3.Connection:
    """Create the database schema. Returns the connection.

    The connection runs in autocommit mode; multi-statement units of work
    go through ``TradeRepository.transaction()``.
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None)
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    return conn
