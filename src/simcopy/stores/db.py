# Copyright (c) Syntropy Systems
"""Database source and destination."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from typing import Optional

from simcopy import digest
from simcopy.db import model as db_model
from simcopy.db import run as db_run
from simcopy.db import task as db_task
from simcopy.db import values as db_values
from simcopy.db import workset as db_workset
from simcopy.db.schema import transaction
from simcopy.errors import NotFoundError
from simcopy.models.cell import AccCell, ExprCell, MicroCell, ParamCell
from simcopy.models.db import ParamValueRecord
from simcopy.models.meta import ModelDef, ParamDef, TableDef
from simcopy.models.public import (
    EntityRunPub,
    ParamValuePub,
    RunPub,
    TableRunPub,
    TaskPub,
    TaskRunPub,
    TaskRunRef,
    TaskRunSetPub,
    WorksetPub,
)
from simcopy.resolver import NaturalKeyResolver

from .base import Source, TaskLinks, Target, ValueOwner

logger = logging.getLogger(__name__)


def _param_def(model: ModelDef, name: str) -> ParamDef:
    param = model.param_by_name(name)
    if param is None:
        msg = f"model {model.name}: parameter not found: {name}"
        raise ValueError(msg)
    return param


def _table_def(model: ModelDef, name: str) -> TableDef:
    table = model.table_by_name(name)
    if table is None:
        msg = f"model {model.name}: output table not found: {name}"
        raise ValueError(msg)
    return table


class DbSource(Source):
    """Model runs, worksets and tasks read from a database."""

    kind = "db"

    def __init__(self, conn: sqlite3.Connection, model_name: str = "", model_digest: str = "") -> None:
        rec = db_model.find_model(conn, name=model_name, digest=model_digest)
        if rec is None:
            raise NotFoundError("model", model_digest or model_name)

        self.conn = conn
        self.model_id = rec.model_id
        self._model = rec.definition.model_copy(update={"digest": rec.model_digest})
        self._runs: Optional[list[RunPub]] = None
        self._worksets: Optional[list[WorksetPub]] = None
        self._tasks: Optional[list[TaskPub]] = None

    def model(self) -> ModelDef:
        return self._model

    def _param_pubs(self, headers: list[ParamValueRecord]) -> list[ParamValuePub]:
        pubs = []
        for h in headers:
            param = self._model.param_by_hid(h.param_hid)
            if param is None:
                msg = f"model {self._model.name}: parameter hid {h.param_hid} not found"
                raise ValueError(msg)
            pubs.append(
                ParamValuePub(
                    name=param.name,
                    sub_count=h.sub_count,
                    value_digest=h.value_digest or "",
                    txt=h.txt,
                )
            )
        return pubs

    def runs(self) -> list[RunPub]:
        if self._runs is not None:
            return self._runs

        m = self._model
        self._runs = []
        for rec in db_run.list_runs(self.conn, self.model_id):
            tables = []
            for t in db_run.get_run_tables(self.conn, rec.run_id):
                table = m.table_by_hid(t.table_hid)
                if table is None:
                    msg = f"model {m.name}: output table hid {t.table_hid} not found"
                    raise ValueError(msg)
                tables.append(TableRunPub(name=table.name, value_digest=t.value_digest or ""))

            entities = [
                EntityRunPub(
                    name=e.entity_name,
                    gen_digest=e.gen_digest or "",
                    row_count=e.row_count,
                    value_digest=e.value_digest or "",
                    attrs=e.attrs,
                )
                for e in db_run.get_run_entities(self.conn, rec.run_id)
            ]

            run_digest = rec.run_digest
            if not run_digest:
                by_hid = db_run.param_value_digests(self.conn, rec.run_id, m)
                run_digest = digest.run_digest(m.digest, dict(by_hid.values()))
                logger.debug("run %s digest not stored, computed: %s", rec.run_name, run_digest)

            self._runs.append(
                RunPub(
                    model_name=m.name,
                    model_digest=m.digest,
                    name=rec.run_name,
                    sub_count=rec.sub_count,
                    sub_started=rec.sub_started,
                    sub_completed=rec.sub_completed,
                    create_dt=rec.create_dt or "",
                    status=rec.status,
                    update_dt=rec.update_dt or "",
                    digest=run_digest,
                    value_digest=rec.value_digest or "",
                    run_stamp=rec.run_stamp or "",
                    opts=rec.options,
                    txt=rec.txt,
                    params=self._param_pubs(db_run.get_run_parameters(self.conn, rec.run_id)),
                    tables=tables,
                    entities=entities,
                    source_id=rec.run_id,
                )
            )
        return self._runs

    def worksets(self) -> list[WorksetPub]:
        if self._worksets is not None:
            return self._worksets

        m = self._model
        runs = {r.source_id: r for r in self.runs()}
        self._worksets = []
        for rec in db_workset.list_worksets(self.conn, self.model_id):
            base = runs.get(rec.base_run_id) if rec.base_run_id is not None else None
            if rec.base_run_id is not None and base is None:
                logger.warning(
                    "workset %s: base run id %d not found in model %s", rec.set_name, rec.base_run_id, m.name
                )
            self._worksets.append(
                WorksetPub(
                    model_name=m.name,
                    model_digest=m.digest,
                    name=rec.set_name,
                    is_readonly=rec.is_readonly,
                    base_run_digest=base.digest if base is not None else "",
                    base_run_name=base.name if base is not None else "",
                    update_dt=rec.update_dt or "",
                    txt=rec.txt,
                    params=self._param_pubs(db_workset.get_workset_parameters(self.conn, rec.set_id)),
                    source_id=rec.set_id,
                )
            )
        return self._worksets

    def tasks(self) -> list[TaskPub]:
        if self._tasks is not None:
            return self._tasks

        m = self._model
        set_names = {ws.source_id: ws.name for ws in self.worksets()}
        runs = {r.source_id: r for r in self.runs()}

        self._tasks = []
        for rec in db_task.list_tasks(self.conn, self.model_id):
            set_ids = db_task.get_task_set_ids(self.conn, rec.task_id)

            pairs_by_run: dict[int, list[TaskRunSetPub]] = {}
            for trs in db_task.list_task_run_sets(self.conn, rec.task_id):
                r = runs.get(trs.run_id)
                if r is None or trs.set_id not in set_names:
                    logger.warning("task %s: invalid task run history row, skipped", rec.task_name)
                    continue
                pairs_by_run.setdefault(trs.task_run_id, []).append(
                    TaskRunSetPub(
                        set_name=set_names[trs.set_id],
                        run=TaskRunRef(
                            name=r.name,
                            digest=r.digest,
                            sub_completed=r.sub_completed,
                            create_dt=r.create_dt,
                            status=r.status,
                            source_id=r.source_id,
                        ),
                        set_source_id=trs.set_id,
                    )
                )

            task_runs = [
                TaskRunPub(
                    name=tr.run_name,
                    sub_count=tr.sub_count,
                    create_dt=tr.create_dt or "",
                    status=tr.status,
                    update_dt=tr.update_dt or "",
                    pairs=pairs_by_run.get(tr.task_run_id, []),
                )
                for tr in db_task.list_task_runs(self.conn, rec.task_id)
            ]

            self._tasks.append(
                TaskPub(
                    model_name=m.name,
                    model_digest=m.digest,
                    name=rec.task_name,
                    txt=rec.txt,
                    sets=[set_names[i] for i in set_ids if i in set_names],
                    task_runs=task_runs,
                    source_id=rec.task_id,
                    set_source_ids={set_names[i]: i for i in set_ids if i in set_names},
                )
            )
        return self._tasks

    def param_values(self, owner: ValueOwner, param: ParamValuePub) -> Iterable[ParamCell]:
        p = _param_def(self._model, param.name)
        return db_values.read_parameter_values(
            self.conn,
            "run" if isinstance(owner, RunPub) else "set",
            owner.source_id,  # type: ignore[arg-type]
            p.hid,
            self._model.type_of(p.type_name).kind,
        )

    def table_acc(self, run: RunPub, table: TableRunPub) -> Optional[Iterable[AccCell]]:
        t = _table_def(self._model, table.name)
        return db_values.read_table_acc(self.conn, run.source_id, t.hid)  # type: ignore[arg-type]

    def table_expr(self, run: RunPub, table: TableRunPub) -> Iterable[ExprCell]:
        t = _table_def(self._model, table.name)
        return db_values.read_table_expr(self.conn, run.source_id, t.hid)  # type: ignore[arg-type]

    def microdata(self, run: RunPub, entity: EntityRunPub) -> Iterable[MicroCell]:
        ent = self._model.entity_by_name(entity.name)
        if ent is None:
            msg = f"model {self._model.name}: entity not found: {entity.name}"
            raise ValueError(msg)
        attr_types = {a.name: a.type_name for a in ent.attrs}
        kinds = [self._model.type_of(attr_types[a]).kind for a in entity.attrs]
        return db_values.read_microdata(self.conn, run.source_id, entity.name, kinds)  # type: ignore[arg-type]


class DbTarget(Target):
    """Destination database."""

    kind = "db"

    def __init__(self, conn: sqlite3.Connection, double_format: str = digest.DIGEST_DOUBLE_FORMAT) -> None:
        self.conn = conn
        self.double_format = double_format
        self.resolver = NaturalKeyResolver(conn)
        self._models: dict[int, ModelDef] = {}

    def _model(self, model_id: int) -> ModelDef:
        if model_id not in self._models:
            rec = db_model.get_model(self.conn, model_id)
            if rec is None:
                raise NotFoundError("model", f"id {model_id}")
            self._models[model_id] = rec.definition
        return self._models[model_id]

    def _run_model(self, run_id: int) -> ModelDef:
        rec = db_run.get_run(self.conn, run_id)
        if rec is None:
            raise NotFoundError("run", f"id {run_id}")
        return self._model(rec.model_id)

    def _set_model(self, set_id: int) -> ModelDef:
        rec = db_workset.get_workset(self.conn, set_id)
        if rec is None:
            raise NotFoundError("workset", f"id {set_id}")
        return self._model(rec.model_id)

    def create_model(self, model: ModelDef) -> int:
        with transaction(self.conn):
            model_id = db_model.create_model(self.conn, model)
        self._models[model_id] = model
        return model_id

    # --- runs ---

    def create_run(self, model_id: int, run: RunPub) -> int:
        _ = self._model(model_id)
        return db_run.create_run(
            self.conn,
            model_id,
            run.name,
            run.status,
            sub_count=run.sub_count,
            sub_started=run.sub_started,
            sub_completed=run.sub_completed,
            create_dt=run.create_dt or None,
            update_dt=run.update_dt or None,
            run_digest=run.digest,
            value_digest=run.value_digest,
            run_stamp=run.run_stamp,
            options=run.opts,
            txt=run.txt,
        )

    def write_run_param(self, run_id: int, run: RunPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        p = _param_def(self._run_model(run_id), param.name)
        with transaction(self.conn):
            db_run.add_run_parameter(
                self.conn, run_id, p.hid, param.sub_count, param.value_digest, param.txt
            )
            _ = db_values.write_parameter_values(self.conn, "run", run_id, p.hid, cells)

    def write_run_table(
        self,
        run_id: int,
        run: RunPub,
        table: TableRunPub,
        acc_cells: Optional[list[AccCell]],
        expr_cells: list[ExprCell],
    ) -> None:
        t = _table_def(self._run_model(run_id), table.name)
        with transaction(self.conn):
            db_run.add_run_table(self.conn, run_id, t.hid, table.value_digest)
            if acc_cells is not None:
                _ = db_values.write_table_acc(self.conn, run_id, t.hid, acc_cells)
            _ = db_values.write_table_expr(self.conn, run_id, t.hid, expr_cells)

    def write_run_microdata(
        self, run_id: int, run: RunPub, entity: EntityRunPub, cells: list[MicroCell]
    ) -> None:
        with transaction(self.conn):
            db_run.add_run_entity(
                self.conn,
                run_id,
                entity.name,
                entity.attrs,
                gen_digest=entity.gen_digest,
                row_count=len(cells),
                value_digest=entity.value_digest,
            )
            _ = db_values.write_microdata(self.conn, run_id, entity.name, cells)

    def finalize_run(self, run_id: int, run: RunPub) -> None:
        with transaction(self.conn):
            d, vd = db_run.compute_run_digest(
                self.conn, run_id, self._run_model(run_id), self.double_format
            )
        logger.debug("run %s digest %s value digest %s", run.name, d, vd)

    def delete_run(self, run_id: int) -> None:
        db_run.delete_run(self.conn, run_id)

    # --- worksets ---

    def create_workset(self, model_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> int:
        _ = self._model(model_id)
        return db_workset.create_workset(
            self.conn,
            model_id,
            ws.name,
            is_readonly=False,
            base_run_id=base_run_id,
            update_dt=ws.update_dt or None,
            txt=ws.txt,
        )

    def reset_workset(self, set_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> None:
        with transaction(self.conn):
            db_workset.set_workset_readonly(self.conn, set_id, False)
            db_workset.clear_workset_parameters(self.conn, set_id)
            db_workset.update_workset(
                self.conn, set_id, base_run_id=base_run_id, update_dt=ws.update_dt or None, txt=ws.txt
            )

    def write_workset_param(self, set_id: int, ws: WorksetPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        p = _param_def(self._set_model(set_id), param.name)
        with transaction(self.conn):
            db_workset.add_workset_parameter(self.conn, set_id, p.hid, param.sub_count, param.txt)
            _ = db_values.write_parameter_values(self.conn, "set", set_id, p.hid, cells)

    def finalize_workset(self, set_id: int, ws: WorksetPub) -> None:
        db_workset.set_workset_readonly(self.conn, set_id, ws.is_readonly)

    def delete_workset(self, set_id: int) -> None:
        db_workset.delete_workset(self.conn, set_id)

    # --- tasks ---

    def task_run_keys(self, task_id: int) -> set[tuple[str, str]]:
        return {(tr.run_name, tr.create_dt or "") for tr in db_task.list_task_runs(self.conn, task_id)}

    def write_task(self, model_id: int, task_id: Optional[int], task: TaskPub, links: TaskLinks) -> int:
        with transaction(self.conn):
            if task_id is None:
                task_id = db_task.create_task(self.conn, model_id, task.name, task.txt)
            else:
                db_task.update_task_txt(self.conn, task_id, task.txt)

            db_task.set_task_sets(self.conn, task_id, links.set_ids)

            for tr, pairs in links.task_runs:
                task_run_id = db_task.create_task_run(
                    self.conn,
                    task_id,
                    tr.name,
                    sub_count=tr.sub_count,
                    create_dt=tr.create_dt or None,
                    status=tr.status,
                    update_dt=tr.update_dt or None,
                )
                for set_id, run_id in pairs:
                    db_task.add_task_run_set(self.conn, task_run_id, task_id, run_id, set_id)

        return task_id
