# Copyright (c) Syntropy Systems
"""SQLite connection, schema and transactions."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from simcopy.errors import SchemaMismatchError

SCHEMA_VERSION = 1

# SQL schema for simcopy database
SCHEMA = """
CREATE TABLE IF NOT EXISTS simcopy_version (
    id INTEGER PRIMARY KEY CHECK (id = 0),
    schema_version INTEGER NOT NULL
);

-- Models: definition (types, parameters, tables, entities) stored as JSON
CREATE TABLE IF NOT EXISTS model_dic (
    model_id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_name TEXT NOT NULL,
    model_digest TEXT NOT NULL UNIQUE,
    model_version TEXT,
    create_dt TEXT,
    definition TEXT NOT NULL
);

-- Model runs
CREATE TABLE IF NOT EXISTS run_lst (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id INTEGER NOT NULL REFERENCES model_dic(model_id),
    run_name TEXT NOT NULL,
    sub_count INTEGER NOT NULL DEFAULT 1,
    sub_started INTEGER NOT NULL DEFAULT 0,
    sub_completed INTEGER NOT NULL DEFAULT 0,
    create_dt TEXT,
    status TEXT NOT NULL,  -- running, success, error, exited
    update_dt TEXT,
    run_digest TEXT,
    value_digest TEXT,
    run_stamp TEXT,
    options TEXT,  -- JSON object
    txt TEXT       -- JSON array of descriptions and notes
);

CREATE TABLE IF NOT EXISTS run_parameter (
    run_id INTEGER NOT NULL REFERENCES run_lst(run_id),
    param_hid INTEGER NOT NULL,
    sub_count INTEGER NOT NULL DEFAULT 1,
    value_digest TEXT,
    txt TEXT,
    PRIMARY KEY (run_id, param_hid)
);

CREATE TABLE IF NOT EXISTS run_table (
    run_id INTEGER NOT NULL REFERENCES run_lst(run_id),
    table_hid INTEGER NOT NULL,
    value_digest TEXT,
    PRIMARY KEY (run_id, table_hid)
);

CREATE TABLE IF NOT EXISTS run_entity (
    run_id INTEGER NOT NULL REFERENCES run_lst(run_id),
    entity_name TEXT NOT NULL,
    gen_digest TEXT,
    row_count INTEGER NOT NULL DEFAULT 0,
    value_digest TEXT,
    attrs TEXT,  -- JSON array of attribute names
    PRIMARY KEY (run_id, entity_name)
);

-- Value rows: dims is JSON array of dimension item ids
CREATE TABLE IF NOT EXISTS run_parameter_value (
    run_id INTEGER NOT NULL,
    param_hid INTEGER NOT NULL,
    sub_id INTEGER NOT NULL,
    dims TEXT NOT NULL,
    value
);

CREATE TABLE IF NOT EXISTS run_table_acc (
    run_id INTEGER NOT NULL,
    table_hid INTEGER NOT NULL,
    acc_id INTEGER NOT NULL,
    sub_id INTEGER NOT NULL,
    dims TEXT NOT NULL,
    value REAL
);

CREATE TABLE IF NOT EXISTS run_table_expr (
    run_id INTEGER NOT NULL,
    table_hid INTEGER NOT NULL,
    expr_id INTEGER NOT NULL,
    dims TEXT NOT NULL,
    value REAL
);

CREATE TABLE IF NOT EXISTS run_microdata (
    run_id INTEGER NOT NULL,
    entity_name TEXT NOT NULL,
    entity_key INTEGER NOT NULL,
    attr_values TEXT NOT NULL  -- JSON array in attribute order
);

-- Worksets (sets of input parameters)
CREATE TABLE IF NOT EXISTS workset_lst (
    set_id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id INTEGER NOT NULL REFERENCES model_dic(model_id),
    set_name TEXT NOT NULL,
    is_readonly INTEGER NOT NULL DEFAULT 0,
    base_run_id INTEGER REFERENCES run_lst(run_id),
    update_dt TEXT,
    txt TEXT,
    UNIQUE (model_id, set_name)
);

CREATE TABLE IF NOT EXISTS workset_parameter (
    set_id INTEGER NOT NULL REFERENCES workset_lst(set_id),
    param_hid INTEGER NOT NULL,
    sub_count INTEGER NOT NULL DEFAULT 1,
    txt TEXT,
    PRIMARY KEY (set_id, param_hid)
);

CREATE TABLE IF NOT EXISTS workset_parameter_value (
    set_id INTEGER NOT NULL,
    param_hid INTEGER NOT NULL,
    sub_id INTEGER NOT NULL,
    dims TEXT NOT NULL,
    value
);

-- Modeling tasks
CREATE TABLE IF NOT EXISTS task_lst (
    task_id INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id INTEGER NOT NULL REFERENCES model_dic(model_id),
    task_name TEXT NOT NULL,
    txt TEXT,
    UNIQUE (model_id, task_name)
);

CREATE TABLE IF NOT EXISTS task_set (
    task_id INTEGER NOT NULL REFERENCES task_lst(task_id),
    set_id INTEGER NOT NULL REFERENCES workset_lst(set_id),
    PRIMARY KEY (task_id, set_id)
);

CREATE TABLE IF NOT EXISTS task_run_lst (
    task_run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id INTEGER NOT NULL REFERENCES task_lst(task_id),
    run_name TEXT NOT NULL,
    sub_count INTEGER NOT NULL DEFAULT 1,
    create_dt TEXT,
    status TEXT,
    update_dt TEXT
);

CREATE TABLE IF NOT EXISTS task_run_set (
    task_run_id INTEGER NOT NULL REFERENCES task_run_lst(task_run_id),
    task_id INTEGER NOT NULL,
    run_id INTEGER NOT NULL REFERENCES run_lst(run_id),
    set_id INTEGER NOT NULL REFERENCES workset_lst(set_id),
    PRIMARY KEY (task_run_id, set_id)
);

-- Indexes for natural key lookups and value reads
CREATE INDEX IF NOT EXISTS idx_model_name ON model_dic(model_name);
CREATE INDEX IF NOT EXISTS idx_run_digest ON run_lst(model_id, run_digest);
CREATE INDEX IF NOT EXISTS idx_run_name ON run_lst(model_id, run_name);
CREATE INDEX IF NOT EXISTS idx_run_param_value ON run_parameter_value(run_id, param_hid);
CREATE INDEX IF NOT EXISTS idx_run_acc ON run_table_acc(run_id, table_hid);
CREATE INDEX IF NOT EXISTS idx_run_expr ON run_table_expr(run_id, table_hid);
CREATE INDEX IF NOT EXISTS idx_run_micro ON run_microdata(run_id, entity_name);
CREATE INDEX IF NOT EXISTS idx_set_param_value ON workset_parameter_value(set_id, param_hid);
"""


def get_connection(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """
    Get a database connection.

    - isolation_level=None for explicit transaction control
    - WAL mode for concurrent readers
    - busy_timeout to wait for locks instead of failing immediately
    - Row factory for dict-like access
    """
    if must_exist and not db_path.exists():
        msg = f"database not found: {db_path}"
        raise FileNotFoundError(msg)

    conn = sqlite3.connect(str(db_path), timeout=5.0, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema and current schema version."""
    conn = get_connection(db_path, must_exist=False)
    try:
        conn.executescript(SCHEMA)
        conn.execute(
            "INSERT OR IGNORE INTO simcopy_version (id, schema_version) VALUES (0, ?)",
            (SCHEMA_VERSION,),
        )
    finally:
        conn.close()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return schema version or None if this is not a simcopy database."""
    try:
        row = conn.execute("SELECT schema_version FROM simcopy_version WHERE id = 0").fetchone()
    except sqlite3.DatabaseError:
        return None
    return row["schema_version"] if row else None


def check_schema_version(conn: sqlite3.Connection) -> None:
    """Raise SchemaMismatchError unless database schema version is supported."""
    version = get_schema_version(conn)
    if version is None:
        msg = "invalid database, likely not a simcopy database"
        raise SchemaMismatchError(msg)
    if version != SCHEMA_VERSION:
        msg = f"invalid database schema version: {version}, expected: {SCHEMA_VERSION}"
        raise SchemaMismatchError(msg)


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open existing database and check its schema version."""
    conn = get_connection(db_path)
    try:
        check_schema_version(conn)
    except Exception:
        conn.close()
        raise
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run statements inside BEGIN IMMEDIATE ... COMMIT, rollback on error.

    Nested use joins the outer transaction.
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except Exception:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def dump_json(value: object) -> str | None:
    """Serialize JSON column value, empty collections stored as NULL."""
    if value is None or value == [] or value == {}:
        return None
    return json.dumps(value, ensure_ascii=False)


def dims_json(dims: tuple[int, ...]) -> str:
    return json.dumps(list(dims))


def parse_dims(text: str) -> tuple[int, ...]:
    return tuple(json.loads(text))
