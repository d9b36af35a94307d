# Copyright (c) Syntropy Systems
"""SQLite storage layer for models, runs, worksets and tasks."""

from .schema import (
    SCHEMA,
    SCHEMA_VERSION,
    check_schema_version,
    get_connection,
    init_db,
    open_db,
    transaction,
    utcnow,
)

__all__ = [
    "SCHEMA",
    "SCHEMA_VERSION",
    "check_schema_version",
    "get_connection",
    "init_db",
    "open_db",
    "transaction",
    "utcnow",
]
