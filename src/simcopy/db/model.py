# Copyright (c) Syntropy Systems
"""Model metadata operations."""

from __future__ import annotations

import sqlite3
from typing import Optional

from simcopy.db.schema import utcnow
from simcopy.models.db import ModelRecord
from simcopy.models.meta import ModelDef


def create_model(conn: sqlite3.Connection, model: ModelDef) -> int:
    """Insert model definition and return new model id."""
    if not model.digest:
        msg = f"invalid (empty) model digest: {model.name}"
        raise ValueError(msg)

    cursor = conn.execute(
        """
        INSERT INTO model_dic (model_name, model_digest, model_version, create_dt, definition)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            model.name,
            model.digest,
            model.version,
            model.create_dt or utcnow(),
            model.model_dump_json(by_alias=True),
        ),
    )
    return cursor.lastrowid


def get_model(conn: sqlite3.Connection, model_id: int) -> Optional[ModelRecord]:
    """Get a model by ID."""
    row = conn.execute(
        "SELECT * FROM model_dic WHERE model_id = ?",
        (model_id,),
    ).fetchone()

    if row is None:
        return None

    return ModelRecord.model_validate(dict(row))


def find_model(
    conn: sqlite3.Connection,
    name: str = "",
    digest: str = "",
) -> Optional[ModelRecord]:
    """
    Find model by digest and/or name.

    Digest is unique. If only name is given then the first model with that
    name is returned, ordered by model id.
    """
    if not name and not digest:
        msg = "invalid (empty) model name and model digest"
        raise ValueError(msg)

    if digest:
        query = "SELECT * FROM model_dic WHERE model_digest = ?"
        params: tuple[str, ...] = (digest,)
        if name:
            query += " AND model_name = ?"
            params = (digest, name)
    else:
        query = "SELECT * FROM model_dic WHERE model_name = ? ORDER BY model_id LIMIT 1"
        params = (name,)

    row = conn.execute(query, params).fetchone()
    if row is None:
        return None

    return ModelRecord.model_validate(dict(row))


def list_models(conn: sqlite3.Connection) -> list[ModelRecord]:
    """Get all models ordered by id."""
    rows = conn.execute("SELECT * FROM model_dic ORDER BY model_id").fetchall()
    return [ModelRecord.model_validate(dict(row)) for row in rows]
