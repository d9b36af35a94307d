# Copyright (c) Syntropy Systems
"""Delete and rename model runs, input sets and modeling tasks in a database.

Entities are selected the same way as for copy. Only completed runs can
be deleted or renamed, only read-only worksets can be deleted.
"""

from __future__ import annotations

import logging
from typing import Union

from simcopy.db import run as db_run
from simcopy.db import task as db_task
from simcopy.db import workset as db_workset
from simcopy.errors import CopyError, NotEligibleError, NotFoundError
from simcopy.models.public import RunPub, TaskPub, WorksetPub, is_run_completed
from simcopy.selector import Selector
from simcopy.stores import DbSource

logger = logging.getLogger(__name__)


def _db_id(kind: str, item: Union[RunPub, WorksetPub, TaskPub]) -> int:
    if item.source_id is None:
        raise NotFoundError(kind, item.name)
    return item.source_id


def _completed_run(source: DbSource, sel: Selector) -> RunPub:
    run = source.select_run(sel)
    if not is_run_completed(run.status):
        msg = f"run {run.name} is not completed, status: {run.status}"
        raise NotEligibleError(msg)
    return run


def _check_new_name(name: str) -> str:
    name = name.strip()
    if not name:
        msg = "new name required"
        raise CopyError(msg)
    return name


def delete_run(source: DbSource, sel: Selector) -> RunPub:
    """Delete completed run with all its values.

    Worksets based on the run are kept without base run, task run history
    rows which refer to the run are deleted.
    """
    run = _completed_run(source, sel)
    db_run.delete_run(source.conn, _db_id("run", run))
    logger.info("run %s deleted", run.name)
    return run


def delete_workset(source: DbSource, sel: Selector) -> WorksetPub:
    """Delete read-only workset and remove it from task bodies."""
    ws = source.select_workset(sel)
    if not ws.is_readonly:
        msg = f"workset {ws.name} is not read-only"
        raise NotEligibleError(msg)
    db_workset.delete_workset(source.conn, _db_id("workset", ws))
    logger.info("workset %s deleted", ws.name)
    return ws


def delete_task(source: DbSource, sel: Selector) -> TaskPub:
    task = source.select_task(sel)
    db_task.delete_task(source.conn, _db_id("task", task))
    logger.info("task %s deleted", task.name)
    return task


def rename_run(source: DbSource, sel: Selector, new_name: str) -> RunPub:
    """Rename completed run. Run names are not unique, digest is not changed."""
    new_name = _check_new_name(new_name)
    run = _completed_run(source, sel)
    db_run.rename_run(source.conn, _db_id("run", run), new_name)
    logger.info("run %s renamed into %s", run.name, new_name)
    return run


def rename_workset(source: DbSource, sel: Selector, new_name: str) -> WorksetPub:
    """Rename workset, read-only or not. Workset names are unique within model."""
    new_name = _check_new_name(new_name)
    ws = source.select_workset(sel)
    set_id = _db_id("workset", ws)

    other = db_workset.find_workset_by_name(source.conn, source.model_id, new_name)
    if other is not None and other.set_id != set_id:
        msg = f"workset already exists: {new_name}"
        raise CopyError(msg)

    db_workset.rename_workset(source.conn, set_id, new_name)
    logger.info("workset %s renamed into %s", ws.name, new_name)
    return ws


def rename_task(source: DbSource, sel: Selector, new_name: str) -> TaskPub:
    """Rename modeling task. Task names are unique within model."""
    new_name = _check_new_name(new_name)
    task = source.select_task(sel)
    task_id = _db_id("task", task)

    other = db_task.find_task_by_name(source.conn, source.model_id, new_name)
    if other is not None and other.task_id != task_id:
        msg = f"task already exists: {new_name}"
        raise CopyError(msg)

    db_task.rename_task(source.conn, task_id, new_name)
    logger.info("task %s renamed into %s", task.name, new_name)
    return task
