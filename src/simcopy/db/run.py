# Copyright (c) Syntropy Systems
"""Model run operations."""

from __future__ import annotations

import json
import sqlite3
from typing import Optional

from simcopy import digest
from simcopy.db.schema import dump_json, transaction, utcnow
from simcopy.db.values import (
    read_microdata,
    read_parameter_values,
    read_table_acc,
    read_table_expr,
)
from simcopy.models.base import DescrNote, LangNote
from simcopy.models.cell import ValueKind
from simcopy.models.db import ParamValueRecord, RunEntityRecord, RunRecord, RunTableRecord
from simcopy.models.meta import ModelDef


def create_run(
    conn: sqlite3.Connection,
    model_id: int,
    name: str,
    status: str,
    sub_count: int = 1,
    sub_started: int = 0,
    sub_completed: int = 0,
    create_dt: Optional[str] = None,
    update_dt: Optional[str] = None,
    run_digest: Optional[str] = None,
    value_digest: Optional[str] = None,
    run_stamp: Optional[str] = None,
    options: Optional[dict[str, str]] = None,
    txt: Optional[list[DescrNote]] = None,
) -> int:
    """Create a new run record and return its ID."""
    now = utcnow()
    cursor = conn.execute(
        """
        INSERT INTO run_lst (
            model_id, run_name, sub_count, sub_started, sub_completed, create_dt, status,
            update_dt, run_digest, value_digest, run_stamp, options, txt
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            model_id,
            name,
            sub_count,
            sub_started,
            sub_completed,
            create_dt or now,
            status,
            update_dt or now,
            run_digest or None,
            value_digest or None,
            run_stamp or None,
            dump_json(options),
            dump_json([t.model_dump() for t in txt] if txt else None),
        ),
    )
    return cursor.lastrowid


def get_run(conn: sqlite3.Connection, run_id: int) -> Optional[RunRecord]:
    """Get a run by ID."""
    row = conn.execute(
        "SELECT * FROM run_lst WHERE run_id = ?",
        (run_id,),
    ).fetchone()

    if row is None:
        return None

    return RunRecord.model_validate(dict(row))


def list_runs(conn: sqlite3.Connection, model_id: int) -> list[RunRecord]:
    """Get model runs ordered by run id."""
    rows = conn.execute(
        "SELECT * FROM run_lst WHERE model_id = ? ORDER BY run_id", (model_id,)
    ).fetchall()
    return [RunRecord.model_validate(dict(row)) for row in rows]


def find_runs_by_digest(conn: sqlite3.Connection, model_id: int, run_digest: str) -> list[RunRecord]:
    """Get model runs with that digest, ordered by run id."""
    rows = conn.execute(
        "SELECT * FROM run_lst WHERE model_id = ? AND run_digest = ? ORDER BY run_id",
        (model_id, run_digest),
    ).fetchall()
    return [RunRecord.model_validate(dict(row)) for row in rows]


def find_runs_by_name(conn: sqlite3.Connection, model_id: int, name: str) -> list[RunRecord]:
    """Get model runs with that name, ordered by run id."""
    rows = conn.execute(
        "SELECT * FROM run_lst WHERE model_id = ? AND run_name = ? ORDER BY run_id",
        (model_id, name),
    ).fetchall()
    return [RunRecord.model_validate(dict(row)) for row in rows]


def rename_run(conn: sqlite3.Connection, run_id: int, name: str) -> None:
    """Set new run name, run names are not unique."""
    conn.execute(
        "UPDATE run_lst SET run_name = ?, update_dt = ? WHERE run_id = ?",
        (name, utcnow(), run_id),
    )


def delete_run(conn: sqlite3.Connection, run_id: int) -> None:
    """Delete run with all its value rows."""
    with transaction(conn):
        for table in (
            "run_parameter_value",
            "run_table_acc",
            "run_table_expr",
            "run_microdata",
            "run_parameter",
            "run_table",
            "run_entity",
        ):
            conn.execute(f"DELETE FROM {table} WHERE run_id = ?", (run_id,))  # noqa: S608
        conn.execute("DELETE FROM task_run_set WHERE run_id = ?", (run_id,))
        conn.execute("UPDATE workset_lst SET base_run_id = NULL WHERE base_run_id = ?", (run_id,))
        conn.execute("DELETE FROM run_lst WHERE run_id = ?", (run_id,))


# --- Run Parameters, Tables and Entities ---

def add_run_parameter(
    conn: sqlite3.Connection,
    run_id: int,
    param_hid: int,
    sub_count: int = 1,
    value_digest: Optional[str] = None,
    txt: Optional[list[LangNote]] = None,
) -> None:
    """Add parameter header row to the run."""
    conn.execute(
        """
        INSERT INTO run_parameter (run_id, param_hid, sub_count, value_digest, txt)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            run_id,
            param_hid,
            sub_count,
            value_digest or None,
            dump_json([t.model_dump() for t in txt] if txt else None),
        ),
    )


def get_run_parameters(conn: sqlite3.Connection, run_id: int) -> list[ParamValueRecord]:
    """Get parameter header rows of the run."""
    rows = conn.execute(
        """
        SELECT run_id AS owner_id, param_hid, sub_count, value_digest, txt
        FROM run_parameter WHERE run_id = ? ORDER BY rowid
        """,
        (run_id,),
    ).fetchall()
    return [ParamValueRecord.model_validate(dict(row)) for row in rows]


def add_run_table(
    conn: sqlite3.Connection,
    run_id: int,
    table_hid: int,
    value_digest: Optional[str] = None,
) -> None:
    """Include output table into run results."""
    conn.execute(
        "INSERT INTO run_table (run_id, table_hid, value_digest) VALUES (?, ?, ?)",
        (run_id, table_hid, value_digest or None),
    )


def get_run_tables(conn: sqlite3.Connection, run_id: int) -> list[RunTableRecord]:
    """Get output tables included into run results."""
    rows = conn.execute(
        "SELECT * FROM run_table WHERE run_id = ? ORDER BY rowid",
        (run_id,),
    ).fetchall()
    return [RunTableRecord.model_validate(dict(row)) for row in rows]


def add_run_entity(
    conn: sqlite3.Connection,
    run_id: int,
    entity_name: str,
    attrs: list[str],
    gen_digest: Optional[str] = None,
    row_count: int = 0,
    value_digest: Optional[str] = None,
) -> None:
    """Add microdata entity generation to the run."""
    conn.execute(
        """
        INSERT INTO run_entity (run_id, entity_name, gen_digest, row_count, value_digest, attrs)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (run_id, entity_name, gen_digest or None, row_count, value_digest or None, json.dumps(attrs)),
    )


def get_run_entities(conn: sqlite3.Connection, run_id: int) -> list[RunEntityRecord]:
    """Get microdata entity generations of the run."""
    rows = conn.execute(
        "SELECT * FROM run_entity WHERE run_id = ? ORDER BY rowid",
        (run_id,),
    ).fetchall()
    return [RunEntityRecord.model_validate(dict(row)) for row in rows]


def param_value_digests(
    conn: sqlite3.Connection,
    run_id: int,
    model: ModelDef,
    double_format: str = digest.DIGEST_DOUBLE_FORMAT,
) -> dict[int, tuple[str, str]]:
    """Map parameter hid to (name, value digest), digests not stored yet are computed but not saved."""
    result: dict[int, tuple[str, str]] = {}
    for p in get_run_parameters(conn, run_id):
        param = model.param_by_hid(p.param_hid)
        if param is None:
            msg = f"run {run_id}: parameter hid {p.param_hid} not found in model {model.name}"
            raise ValueError(msg)
        d = p.value_digest
        if not d:
            cells = read_parameter_values(conn, "run", run_id, p.param_hid, model.type_of(param.type_name).kind)
            d = digest.value_digest(ValueKind.PARAMETER, model, param.name, cells, double_format)
        result[p.param_hid] = (param.name, d)
    return result


def compute_run_digest(
    conn: sqlite3.Connection,
    run_id: int,
    model: ModelDef,
    double_format: str = digest.DIGEST_DOUBLE_FORMAT,
) -> tuple[str, str]:
    """
    Compute value digests of run parameters, tables and microdata,
    store digests which are not known yet and return (run digest, run value digest).

    Digests already stored are kept as is.
    """
    by_hid = param_value_digests(conn, run_id, model, double_format)
    for p in get_run_parameters(conn, run_id):
        if not p.value_digest:
            conn.execute(
                "UPDATE run_parameter SET value_digest = ? WHERE run_id = ? AND param_hid = ?",
                (by_hid[p.param_hid][1], run_id, p.param_hid),
            )
    param_digests = dict(by_hid.values())

    table_digests: dict[str, str] = {}
    for t in get_run_tables(conn, run_id):
        table = model.table_by_hid(t.table_hid)
        if table is None:
            msg = f"run {run_id}: table hid {t.table_hid} not found in model {model.name}"
            raise ValueError(msg)
        if t.value_digest:
            table_digests[table.name] = t.value_digest
            continue
        d = digest.table_digest(
            model,
            table.name,
            read_table_acc(conn, run_id, t.table_hid),
            read_table_expr(conn, run_id, t.table_hid),
            double_format,
        )
        table_digests[table.name] = d
        conn.execute(
            "UPDATE run_table SET value_digest = ? WHERE run_id = ? AND table_hid = ?",
            (d, run_id, t.table_hid),
        )

    entity_digests: dict[str, str] = {}
    for e in get_run_entities(conn, run_id):
        entity = model.entity_by_name(e.entity_name)
        if entity is None:
            msg = f"run {run_id}: entity {e.entity_name} not found in model {model.name}"
            raise ValueError(msg)
        if e.value_digest:
            entity_digests[e.entity_name] = e.value_digest
            continue
        attr_types = {a.name: a.type_name for a in entity.attrs}
        kinds = [model.type_of(attr_types[a]).kind for a in e.attrs]
        cells = read_microdata(conn, run_id, e.entity_name, kinds)
        d = digest.value_digest(
            ValueKind.MICRODATA, model, e.entity_name, cells, double_format, attrs=e.attrs
        )
        entity_digests[e.entity_name] = d
        conn.execute(
            "UPDATE run_entity SET value_digest = ?, row_count = ? WHERE run_id = ? AND entity_name = ?",
            (d, len(cells), run_id, e.entity_name),
        )

    conn.execute(
        """
        UPDATE run_lst
        SET run_digest = COALESCE(run_digest, ?), value_digest = COALESCE(value_digest, ?)
        WHERE run_id = ?
        """,
        (
            digest.run_digest(model.digest, param_digests),
            digest.run_value_digest(table_digests, entity_digests),
            run_id,
        ),
    )
    row = conn.execute(
        "SELECT run_digest, value_digest FROM run_lst WHERE run_id = ?",
        (run_id,),
    ).fetchone()
    return row["run_digest"], row["value_digest"]
