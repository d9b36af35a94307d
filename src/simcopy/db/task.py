# Copyright (c) Syntropy Systems
"""Modeling task operations: task body and task run history."""

from __future__ import annotations

import sqlite3
from typing import Optional

from simcopy.db.schema import dump_json, transaction, utcnow
from simcopy.models.base import DescrNote
from simcopy.models.db import TaskRecord, TaskRunRecord, TaskRunSetRecord


def create_task(
    conn: sqlite3.Connection,
    model_id: int,
    name: str,
    txt: Optional[list[DescrNote]] = None,
) -> int:
    """Create a new modeling task and return its ID."""
    cursor = conn.execute(
        "INSERT INTO task_lst (model_id, task_name, txt) VALUES (?, ?, ?)",
        (model_id, name, dump_json([t.model_dump() for t in txt] if txt else None)),
    )
    return cursor.lastrowid


def update_task_txt(
    conn: sqlite3.Connection,
    task_id: int,
    txt: Optional[list[DescrNote]] = None,
) -> None:
    """Replace task descriptions and notes."""
    conn.execute(
        "UPDATE task_lst SET txt = ? WHERE task_id = ?",
        (dump_json([t.model_dump() for t in txt] if txt else None), task_id),
    )


def find_task_by_name(conn: sqlite3.Connection, model_id: int, name: str) -> Optional[TaskRecord]:
    """Get a task by model and name."""
    row = conn.execute(
        "SELECT * FROM task_lst WHERE model_id = ? AND task_name = ?",
        (model_id, name),
    ).fetchone()

    if row is None:
        return None

    return TaskRecord.model_validate(dict(row))


def list_tasks(conn: sqlite3.Connection, model_id: int) -> list[TaskRecord]:
    """Get model tasks ordered by task id."""
    rows = conn.execute(
        "SELECT * FROM task_lst WHERE model_id = ? ORDER BY task_id",
        (model_id,),
    ).fetchall()
    return [TaskRecord.model_validate(dict(row)) for row in rows]


def set_task_sets(conn: sqlite3.Connection, task_id: int, set_ids: list[int]) -> None:
    """Replace task body with the list of worksets."""
    conn.execute("DELETE FROM task_set WHERE task_id = ?", (task_id,))
    conn.executemany(
        "INSERT OR IGNORE INTO task_set (task_id, set_id) VALUES (?, ?)",
        [(task_id, set_id) for set_id in set_ids],
    )


def get_task_set_ids(conn: sqlite3.Connection, task_id: int) -> list[int]:
    """Get task body: workset ids in insertion order."""
    rows = conn.execute(
        "SELECT set_id FROM task_set WHERE task_id = ? ORDER BY rowid",
        (task_id,),
    ).fetchall()
    return [row["set_id"] for row in rows]


def create_task_run(
    conn: sqlite3.Connection,
    task_id: int,
    name: str,
    sub_count: int = 1,
    create_dt: Optional[str] = None,
    status: str = "",
    update_dt: Optional[str] = None,
) -> int:
    """Add task run to task run history and return task run ID."""
    now = utcnow()
    cursor = conn.execute(
        """
        INSERT INTO task_run_lst (task_id, run_name, sub_count, create_dt, status, update_dt)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (task_id, name, sub_count, create_dt or now, status, update_dt or now),
    )
    return cursor.lastrowid


def list_task_runs(conn: sqlite3.Connection, task_id: int) -> list[TaskRunRecord]:
    """Get task run history headers ordered by task run id."""
    rows = conn.execute(
        "SELECT * FROM task_run_lst WHERE task_id = ? ORDER BY task_run_id",
        (task_id,),
    ).fetchall()
    return [TaskRunRecord.model_validate(dict(row)) for row in rows]


def add_task_run_set(
    conn: sqlite3.Connection,
    task_run_id: int,
    task_id: int,
    run_id: int,
    set_id: int,
) -> None:
    """Add (workset, run) pair to task run."""
    conn.execute(
        """
        INSERT OR IGNORE INTO task_run_set (task_run_id, task_id, run_id, set_id)
        VALUES (?, ?, ?, ?)
        """,
        (task_run_id, task_id, run_id, set_id),
    )


def list_task_run_sets(conn: sqlite3.Connection, task_id: int) -> list[TaskRunSetRecord]:
    """Get task run history body ordered by task run id."""
    rows = conn.execute(
        "SELECT * FROM task_run_set WHERE task_id = ? ORDER BY task_run_id, rowid",
        (task_id,),
    ).fetchall()
    return [TaskRunSetRecord.model_validate(dict(row)) for row in rows]


def rename_task(conn: sqlite3.Connection, task_id: int, name: str) -> None:
    conn.execute("UPDATE task_lst SET task_name = ? WHERE task_id = ?", (name, task_id))


def delete_task(conn: sqlite3.Connection, task_id: int) -> None:
    """Delete task with its body and run history, worksets and runs are kept."""
    with transaction(conn):
        conn.execute("DELETE FROM task_run_set WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_run_lst WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_set WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_lst WHERE task_id = ?", (task_id,))
