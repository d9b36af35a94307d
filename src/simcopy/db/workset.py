# Copyright (c) Syntropy Systems
"""Workset (set of input parameters) operations."""

from __future__ import annotations

import sqlite3
from typing import Optional

from simcopy.db.schema import dump_json, transaction, utcnow
from simcopy.db.values import delete_parameter_values
from simcopy.models.base import DescrNote, LangNote
from simcopy.models.db import ParamValueRecord, WorksetRecord


def create_workset(
    conn: sqlite3.Connection,
    model_id: int,
    name: str,
    is_readonly: bool = False,  # noqa: FBT001, FBT002
    base_run_id: Optional[int] = None,
    update_dt: Optional[str] = None,
    txt: Optional[list[DescrNote]] = None,
) -> int:
    """Create a new workset and return its ID."""
    cursor = conn.execute(
        """
        INSERT INTO workset_lst (model_id, set_name, is_readonly, base_run_id, update_dt, txt)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            model_id,
            name,
            1 if is_readonly else 0,
            base_run_id,
            update_dt or utcnow(),
            dump_json([t.model_dump() for t in txt] if txt else None),
        ),
    )
    return cursor.lastrowid


def update_workset(
    conn: sqlite3.Connection,
    set_id: int,
    base_run_id: Optional[int] = None,
    update_dt: Optional[str] = None,
    txt: Optional[list[DescrNote]] = None,
) -> None:
    """Replace workset metadata: base run, update time and descriptions."""
    conn.execute(
        "UPDATE workset_lst SET base_run_id = ?, update_dt = ?, txt = ? WHERE set_id = ?",
        (
            base_run_id,
            update_dt or utcnow(),
            dump_json([t.model_dump() for t in txt] if txt else None),
            set_id,
        ),
    )


def get_workset(conn: sqlite3.Connection, set_id: int) -> Optional[WorksetRecord]:
    """Get a workset by ID."""
    row = conn.execute(
        "SELECT * FROM workset_lst WHERE set_id = ?",
        (set_id,),
    ).fetchone()

    if row is None:
        return None

    return WorksetRecord.model_validate(dict(row))


def find_workset_by_name(
    conn: sqlite3.Connection,
    model_id: int,
    name: str,
) -> Optional[WorksetRecord]:
    """Get a workset by model and name, names are unique within the model."""
    row = conn.execute(
        "SELECT * FROM workset_lst WHERE model_id = ? AND set_name = ?",
        (model_id, name),
    ).fetchone()

    if row is None:
        return None

    return WorksetRecord.model_validate(dict(row))


def list_worksets(conn: sqlite3.Connection, model_id: int) -> list[WorksetRecord]:
    """Get model worksets ordered by set id."""
    rows = conn.execute(
        "SELECT * FROM workset_lst WHERE model_id = ? ORDER BY set_id", (model_id,)
    ).fetchall()
    return [WorksetRecord.model_validate(dict(row)) for row in rows]


def set_workset_readonly(
    conn: sqlite3.Connection,
    set_id: int,
    is_readonly: bool,  # noqa: FBT001
) -> None:
    """Update workset read-only status."""
    conn.execute(
        "UPDATE workset_lst SET is_readonly = ?, update_dt = ? WHERE set_id = ?",
        (1 if is_readonly else 0, utcnow(), set_id),
    )


def add_workset_parameter(
    conn: sqlite3.Connection,
    set_id: int,
    param_hid: int,
    sub_count: int = 1,
    txt: Optional[list[LangNote]] = None,
) -> None:
    """Add parameter header row to the workset."""
    conn.execute(
        "INSERT INTO workset_parameter (set_id, param_hid, sub_count, txt) VALUES (?, ?, ?, ?)",
        (set_id, param_hid, sub_count, dump_json([t.model_dump() for t in txt] if txt else None)),
    )


def get_workset_parameters(conn: sqlite3.Connection, set_id: int) -> list[ParamValueRecord]:
    """Get parameter header rows of the workset."""
    rows = conn.execute(
        """
        SELECT set_id AS owner_id, param_hid, sub_count, NULL AS value_digest, txt
        FROM workset_parameter WHERE set_id = ? ORDER BY rowid
        """,
        (set_id,),
    ).fetchall()
    return [ParamValueRecord.model_validate(dict(row)) for row in rows]


def clear_workset_parameters(conn: sqlite3.Connection, set_id: int) -> None:
    """Delete all parameters and parameter values from the workset."""
    with transaction(conn):
        delete_parameter_values(conn, "set", set_id)
        conn.execute("DELETE FROM workset_parameter WHERE set_id = ?", (set_id,))


def rename_workset(conn: sqlite3.Connection, set_id: int, name: str) -> None:
    """Set new workset name, read-only workset can be renamed too."""
    conn.execute(
        "UPDATE workset_lst SET set_name = ?, update_dt = ? WHERE set_id = ?",
        (name, utcnow(), set_id),
    )


def delete_workset(conn: sqlite3.Connection, set_id: int) -> None:
    """Delete workset with all its parameter values."""
    with transaction(conn):
        delete_parameter_values(conn, "set", set_id)
        conn.execute("DELETE FROM workset_parameter WHERE set_id = ?", (set_id,))
        conn.execute("DELETE FROM task_set WHERE set_id = ?", (set_id,))
        conn.execute("DELETE FROM task_run_set WHERE set_id = ?", (set_id,))
        conn.execute("DELETE FROM workset_lst WHERE set_id = ?", (set_id,))
