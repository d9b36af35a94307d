# Copyright (c) Syntropy Systems
"""Pytest fixtures for simcopy tests."""

import os
import sqlite3
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Optional

import pytest

from simcopy import digest
from simcopy.db import get_connection, init_db, transaction
from simcopy.db import model as db_model
from simcopy.db import run as db_run
from simcopy.db import task as db_task
from simcopy.db import values as db_values
from simcopy.db import workset as db_workset
from simcopy.models.base import DescrNote, LangNote
from simcopy.models.cell import AccCell, ExprCell, MicroCell, ParamCell
from simcopy.models.meta import (
    AccDef,
    AttrDef,
    DimDef,
    EntityDef,
    EnumItem,
    ExprDef,
    ModelDef,
    ParamDef,
    TableDef,
    TypeDef,
)

# Store original cwd at module load time
_original_cwd = Path.cwd()

AGE_GROUPS = (10, 20)
SEXES = (0, 1)


def make_model() -> ModelDef:
    """Small model: two enum types, three parameters, two output tables and one entity."""
    model = ModelDef(
        name="modelOne",
        version="1.0.0",
        create_dt="2024-01-01 00:00:00",
        default_lang="EN",
        txt=[DescrNote(lang_code="EN", descr="First model")],
        types=[
            TypeDef(
                name="ageGroup",
                kind="enum",
                items=[EnumItem(id=10, code="10-20"), EnumItem(id=20, code="20-30")],
            ),
            TypeDef(name="sex", kind="enum", items=[EnumItem(id=0, code="M"), EnumItem(id=1, code="F")]),
        ],
        params=[
            ParamDef(
                name="ageSex",
                hid=1,
                type_name="double",
                dims=[DimDef(name="dim0", type_name="ageGroup"), DimDef(name="dim1", type_name="sex")],
            ),
            ParamDef(name="startSeed", hid=2, type_name="int"),
            ParamDef(name="fullName", hid=3, type_name="string", is_extendable=True),
        ],
        tables=[
            TableDef(
                name="salarySex",
                hid=101,
                dims=[DimDef(name="dim0", type_name="sex")],
                accumulators=[AccDef(acc_id=0, name="acc0"), AccDef(acc_id=1, name="acc1")],
                expressions=[ExprDef(expr_id=0, name="expr0"), ExprDef(expr_id=1, name="expr1")],
            ),
            TableDef(
                name="ageSexIncome",
                hid=102,
                dims=[DimDef(name="dim0", type_name="ageGroup"), DimDef(name="dim1", type_name="sex")],
                accumulators=[AccDef(acc_id=0, name="acc0")],
                expressions=[ExprDef(expr_id=0, name="expr0"), ExprDef(expr_id=1, name="expr1")],
            ),
        ],
        entities=[
            EntityDef(
                name="Person",
                attrs=[
                    AttrDef(name="age", type_name="int"),
                    AttrDef(name="sex", type_name="sex"),
                    AttrDef(name="income", type_name="double"),
                ],
            ),
        ],
    )
    return model.model_copy(update={"digest": digest.model_digest(model)})


def age_sex_dims() -> list[tuple[int, int]]:
    return [(ag, s) for ag in AGE_GROUPS for s in SEXES]


def age_sex_cells(seed: int) -> list[ParamCell]:
    return [ParamCell(sub_id=0, dims=d, value=seed + 0.5 * n) for n, d in enumerate(age_sex_dims())]


def add_run(
    conn: sqlite3.Connection,
    model_id: int,
    model: ModelDef,
    name: str,
    seed: int,
    status: str = "success",
    create_dt: str = "2024-01-02 00:00:00",
) -> int:
    """Insert run with all parameters, output table values and microdata."""
    with transaction(conn):
        run_id = db_run.create_run(
            conn,
            model_id,
            name,
            status,
            sub_count=1,
            sub_started=1,
            sub_completed=1,
            create_dt=create_dt,
            run_stamp=f"stamp-{seed}",
            options={"Parameter.startSeed": str(seed)},
            txt=[DescrNote(lang_code="EN", descr=f"Run {name}")],
        )
        db_run.add_run_parameter(conn, run_id, 1, txt=[LangNote(lang_code="EN", note="age by sex")])
        db_values.write_parameter_values(conn, "run", run_id, 1, age_sex_cells(seed))
        db_run.add_run_parameter(conn, run_id, 2)
        db_values.write_parameter_values(conn, "run", run_id, 2, [ParamCell(0, (), seed)])
        db_run.add_run_parameter(conn, run_id, 3)
        db_values.write_parameter_values(conn, "run", run_id, 3, [ParamCell(0, (), None)])

        db_run.add_run_table(conn, run_id, 101)
        db_values.write_table_acc(
            conn,
            run_id,
            101,
            [
                AccCell(acc_id=a, sub_id=0, dims=(s,), value=seed * 10.0 + a + s)
                for a in (0, 1)
                for s in SEXES
            ],
        )
        db_values.write_table_expr(
            conn,
            run_id,
            101,
            [
                ExprCell(expr_id=e, dims=(s,), value=None if e == 1 and s == 1 else seed + e / 3)
                for e in (0, 1)
                for s in SEXES
            ],
        )

        db_run.add_run_table(conn, run_id, 102)
        db_values.write_table_acc(
            conn,
            run_id,
            102,
            [AccCell(acc_id=0, sub_id=0, dims=d, value=seed * 100.0 + n) for n, d in enumerate(age_sex_dims())],
        )
        db_values.write_table_expr(
            conn,
            run_id,
            102,
            [
                ExprCell(expr_id=e, dims=d, value=seed * 100.0 + n + e / 4)
                for e in (0, 1)
                for n, d in enumerate(age_sex_dims())
            ],
        )

        db_run.add_run_entity(conn, run_id, "Person", ["age", "sex", "income"], gen_digest="gen-1")
        db_values.write_microdata(
            conn,
            run_id,
            "Person",
            [MicroCell(key=1, values=(25, 0, 1000.5)), MicroCell(key=2, values=(31, 1, None))],
        )
        _ = db_run.compute_run_digest(conn, run_id, model)
    return run_id


def add_workset(
    conn: sqlite3.Connection,
    model_id: int,
    name: str,
    seed: int,
    is_readonly: bool = True,  # noqa: FBT001, FBT002
    base_run_id: Optional[int] = None,
) -> int:
    """Insert workset with two parameters."""
    with transaction(conn):
        set_id = db_workset.create_workset(
            conn,
            model_id,
            name,
            is_readonly=is_readonly,
            base_run_id=base_run_id,
            txt=[DescrNote(lang_code="EN", descr=f"Set {name}")],
        )
        db_workset.add_workset_parameter(conn, set_id, 1)
        db_values.write_parameter_values(conn, "set", set_id, 1, age_sex_cells(seed))
        db_workset.add_workset_parameter(conn, set_id, 2)
        db_values.write_parameter_values(conn, "set", set_id, 2, [ParamCell(0, (), seed)])
    return set_id


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def work_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Run test inside of temporary directory."""
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def sample_model() -> ModelDef:
    return make_model()


@pytest.fixture
def empty_db(temp_dir: Path) -> Path:
    """Path of an initialized database without models."""
    db_path = temp_dir / "empty.sqlite"
    init_db(db_path)
    return db_path


@pytest.fixture
def sample_db(temp_dir: Path, sample_model: ModelDef) -> Path:
    """Database with modelOne and its runs, worksets and a task.

    Runs: Default, Second (completed) and Running (not completed).
    Worksets: Default (read-only, based on Default run) and Draft (writable).
    Task taskOne: body Default workset, one task run of (Default, Default).
    """
    db_path = temp_dir / "model.sqlite"
    init_db(db_path)

    conn = get_connection(db_path)
    try:
        with transaction(conn):
            model_id = db_model.create_model(conn, sample_model)

        default_run = add_run(conn, model_id, sample_model, "Default", seed=1)
        _ = add_run(conn, model_id, sample_model, "Second", seed=2, create_dt="2024-01-03 00:00:00")
        _ = add_run(conn, model_id, sample_model, "Running", seed=3, status="running")

        default_set = add_workset(conn, model_id, "Default", seed=1, base_run_id=default_run)
        _ = add_workset(conn, model_id, "Draft", seed=5, is_readonly=False)

        with transaction(conn):
            task_id = db_task.create_task(
                conn, model_id, "taskOne", txt=[DescrNote(lang_code="EN", descr="Task one")]
            )
            db_task.set_task_sets(conn, task_id, [default_set])
            task_run_id = db_task.create_task_run(
                conn, task_id, "taskRun1", create_dt="2024-01-04 00:00:00", status="success"
            )
            db_task.add_task_run_set(conn, task_run_id, task_id, default_run, default_set)
    finally:
        conn.close()

    return db_path


@pytest.fixture
def sample_conn(sample_db: Path) -> Generator[sqlite3.Connection, None, None]:
    """Connection to the sample database."""
    conn = get_connection(sample_db)
    yield conn
    conn.close()


@pytest.fixture
def empty_conn(empty_db: Path) -> Generator[sqlite3.Connection, None, None]:
    """Connection to the empty database."""
    conn = get_connection(empty_db)
    yield conn
    conn.close()
