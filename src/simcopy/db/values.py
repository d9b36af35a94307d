# Copyright (c) Syntropy Systems
"""Value rows: parameters of runs and worksets, output tables, microdata."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from typing import Literal, Optional

from simcopy.db.schema import dims_json, parse_dims
from simcopy.models.cell import AccCell, CellValue, ExprCell, MicroCell, ParamCell
from simcopy.models.meta import TypeKind

Owner = Literal["run", "set"]

# value table and owner id column for each parameter owner
_PARAM_VALUE_TABLE: dict[str, tuple[str, str]] = {
    "run": ("run_parameter_value", "run_id"),
    "set": ("workset_parameter_value", "set_id"),
}


def coerce_value(kind: TypeKind, value: object) -> CellValue:
    """Convert SQLite column value into python value of the model type kind."""
    if value is None:
        return None
    if kind == "float":
        return float(value)  # type: ignore[arg-type]
    if kind == "bool":
        return bool(value)
    if kind in ("int", "enum"):
        return int(value)  # type: ignore[arg-type]
    return str(value)


def write_parameter_values(
    conn: sqlite3.Connection,
    owner: Owner,
    owner_id: int,
    param_hid: int,
    cells: Iterable[ParamCell],
) -> int:
    """Insert parameter value rows, return number of rows inserted."""
    table, id_col = _PARAM_VALUE_TABLE[owner]
    rows = [(owner_id, param_hid, c.sub_id, dims_json(c.dims), c.value) for c in cells]
    conn.executemany(
        f"INSERT INTO {table} ({id_col}, param_hid, sub_id, dims, value) VALUES (?, ?, ?, ?, ?)",  # noqa: S608
        rows,
    )
    return len(rows)


def read_parameter_values(
    conn: sqlite3.Connection,
    owner: Owner,
    owner_id: int,
    param_hid: int,
    kind: TypeKind,
) -> list[ParamCell]:
    """Read parameter value rows in insertion order."""
    table, id_col = _PARAM_VALUE_TABLE[owner]
    rows = conn.execute(
        f"SELECT sub_id, dims, value FROM {table} WHERE {id_col} = ? AND param_hid = ? ORDER BY rowid",  # noqa: S608
        (owner_id, param_hid),
    ).fetchall()
    return [
        ParamCell(sub_id=row["sub_id"], dims=parse_dims(row["dims"]), value=coerce_value(kind, row["value"]))
        for row in rows
    ]


def count_parameter_values(
    conn: sqlite3.Connection,
    owner: Owner,
    owner_id: int,
    param_hid: int,
) -> int:
    """Count parameter value rows."""
    table, id_col = _PARAM_VALUE_TABLE[owner]
    row = conn.execute(
        f"SELECT COUNT(*) AS n FROM {table} WHERE {id_col} = ? AND param_hid = ?",  # noqa: S608
        (owner_id, param_hid),
    ).fetchone()
    return row["n"]


def delete_parameter_values(
    conn: sqlite3.Connection,
    owner: Owner,
    owner_id: int,
    param_hid: Optional[int] = None,
) -> int:
    """Delete value rows of one parameter or of all parameters of the owner."""
    table, id_col = _PARAM_VALUE_TABLE[owner]
    if param_hid is None:
        cursor = conn.execute(f"DELETE FROM {table} WHERE {id_col} = ?", (owner_id,))  # noqa: S608
    else:
        cursor = conn.execute(
            f"DELETE FROM {table} WHERE {id_col} = ? AND param_hid = ?",  # noqa: S608
            (owner_id, param_hid),
        )
    return cursor.rowcount


def write_table_acc(
    conn: sqlite3.Connection,
    run_id: int,
    table_hid: int,
    cells: Iterable[AccCell],
) -> int:
    """Insert output table accumulator rows."""
    rows = [(run_id, table_hid, c.acc_id, c.sub_id, dims_json(c.dims), c.value) for c in cells]
    conn.executemany(
        """
        INSERT INTO run_table_acc (run_id, table_hid, acc_id, sub_id, dims, value)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    return len(rows)


def read_table_acc(conn: sqlite3.Connection, run_id: int, table_hid: int) -> list[AccCell]:
    """Read output table accumulator rows."""
    rows = conn.execute(
        """
        SELECT acc_id, sub_id, dims, value FROM run_table_acc
        WHERE run_id = ? AND table_hid = ?
        ORDER BY rowid
        """,
        (run_id, table_hid),
    ).fetchall()
    return [
        AccCell(
            acc_id=row["acc_id"],
            sub_id=row["sub_id"],
            dims=parse_dims(row["dims"]),
            value=coerce_value("float", row["value"]),
        )
        for row in rows
    ]


def write_table_expr(
    conn: sqlite3.Connection,
    run_id: int,
    table_hid: int,
    cells: Iterable[ExprCell],
) -> int:
    """Insert output table expression rows."""
    rows = [(run_id, table_hid, c.expr_id, dims_json(c.dims), c.value) for c in cells]
    conn.executemany(
        """
        INSERT INTO run_table_expr (run_id, table_hid, expr_id, dims, value)
        VALUES (?, ?, ?, ?, ?)
        """,
        rows,
    )
    return len(rows)


def read_table_expr(conn: sqlite3.Connection, run_id: int, table_hid: int) -> list[ExprCell]:
    """Read output table expression rows."""
    rows = conn.execute(
        """
        SELECT expr_id, dims, value FROM run_table_expr
        WHERE run_id = ? AND table_hid = ?
        ORDER BY rowid
        """,
        (run_id, table_hid),
    ).fetchall()
    return [
        ExprCell(
            expr_id=row["expr_id"],
            dims=parse_dims(row["dims"]),
            value=coerce_value("float", row["value"]),
        )
        for row in rows
    ]


def write_microdata(
    conn: sqlite3.Connection,
    run_id: int,
    entity_name: str,
    cells: Iterable[MicroCell],
) -> int:
    """Insert microdata rows of one entity."""
    rows = [
        (run_id, entity_name, c.key, json.dumps(list(c.values), ensure_ascii=False))
        for c in cells
    ]
    conn.executemany(
        """
        INSERT INTO run_microdata (run_id, entity_name, entity_key, attr_values)
        VALUES (?, ?, ?, ?)
        """,
        rows,
    )
    return len(rows)


def read_microdata(
    conn: sqlite3.Connection,
    run_id: int,
    entity_name: str,
    kinds: list[TypeKind],
) -> list[MicroCell]:
    """Read microdata rows of one entity, attribute values coerced to kinds."""
    rows = conn.execute(
        """
        SELECT entity_key, attr_values FROM run_microdata
        WHERE run_id = ? AND entity_name = ?
        ORDER BY rowid
        """,
        (run_id, entity_name),
    ).fetchall()
    return [
        MicroCell(
            key=row["entity_key"],
            values=tuple(
                coerce_value(k, v) for k, v in zip(kinds, json.loads(row["attr_values"]))
            ),
        )
        for row in rows
    ]
