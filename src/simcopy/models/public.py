# Copyright (c) Syntropy Systems
"""Portable ("public") forms of runs, worksets and tasks.

A portable form contains only natural keys (names, digests) and nested
value metadata. It is the only form written to or read from text files and
the intermediate form of a database to database copy. ``source_id`` fields
keep the source-local numeric id in memory so that references inside one
copy batch can be translated through an id map; they are never serialized.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import DescrNote, LangNote, SimcopyBaseModel


class RunStatus(str, Enum):
    """Model run status."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    EXITED = "exited"


COMPLETED_STATUSES = frozenset(
    {RunStatus.SUCCESS.value, RunStatus.ERROR.value, RunStatus.EXITED.value}
)


def is_run_completed(status: str) -> bool:
    """Return True if run status is success, error or exited."""
    return status in COMPLETED_STATUSES


class ParamValuePub(SimcopyBaseModel):
    """Parameter of a run or workset and its value file."""

    name: str
    sub_count: int = 1
    value_digest: str = ""
    txt: list[LangNote] = Field(default_factory=list)
    file: Optional[str] = None


class TableRunPub(SimcopyBaseModel):
    """Output table included in run results and its value files."""

    name: str
    value_digest: str = ""
    acc_file: Optional[str] = None
    expr_file: Optional[str] = None


class EntityRunPub(SimcopyBaseModel):
    """Microdata snapshot of one entity generation."""

    name: str
    gen_digest: str = ""
    row_count: int = 0
    value_digest: str = ""
    attrs: list[str] = Field(default_factory=list)
    file: Optional[str] = None


class RunPub(SimcopyBaseModel):
    """Model run: identified by (name, digest) within a model."""

    model_name: str
    model_digest: str
    name: str
    sub_count: int = 1
    sub_started: int = 0
    sub_completed: int = 0
    create_dt: str = ""
    status: str = RunStatus.SUCCESS.value
    update_dt: str = ""
    digest: str = ""
    value_digest: str = ""
    run_stamp: str = ""
    opts: dict[str, str] = Field(default_factory=dict)
    txt: list[DescrNote] = Field(default_factory=list)
    params: list[ParamValuePub] = Field(default_factory=list)
    tables: list[TableRunPub] = Field(default_factory=list)
    entities: list[EntityRunPub] = Field(default_factory=list)
    source_id: Optional[int] = Field(default=None, exclude=True)


class WorksetPub(SimcopyBaseModel):
    """Set of input parameters, base run referenced by digest only."""

    model_name: str
    model_digest: str
    name: str
    is_readonly: bool = False
    base_run_digest: str = ""
    base_run_name: str = ""
    update_dt: str = ""
    txt: list[DescrNote] = Field(default_factory=list)
    params: list[ParamValuePub] = Field(default_factory=list)
    source_id: Optional[int] = Field(default=None, exclude=True)


class TaskRunRef(SimcopyBaseModel):
    """Model run referenced from task run history."""

    name: str
    digest: str = ""
    sub_completed: int = 0
    create_dt: str = ""
    status: str = ""
    source_id: Optional[int] = Field(default=None, exclude=True)


class TaskRunSetPub(SimcopyBaseModel):
    """Pair of (workset, model run) in task run history."""

    set_name: str
    run: TaskRunRef
    set_source_id: Optional[int] = Field(default=None, exclude=True)


class TaskRunPub(SimcopyBaseModel):
    """One task run: list of (workset, run) pairs."""

    name: str
    sub_count: int = 1
    create_dt: str = ""
    status: str = ""
    update_dt: str = ""
    pairs: list[TaskRunSetPub] = Field(default_factory=list)


class TaskPub(SimcopyBaseModel):
    """Modeling task: body (workset names) and run history."""

    model_name: str
    model_digest: str
    name: str
    txt: list[DescrNote] = Field(default_factory=list)
    sets: list[str] = Field(default_factory=list)
    task_runs: list[TaskRunPub] = Field(default_factory=list)
    source_id: Optional[int] = Field(default=None, exclude=True)
    set_source_ids: dict[str, int] = Field(default_factory=dict, exclude=True)


class DocumentIndex(SimcopyBaseModel):
    """Index of portable documents in a model text directory, in write order."""

    model_name: str
    model_digest: str = ""
    model_file: str
    runs: list[str] = Field(default_factory=list)
    worksets: list[str] = Field(default_factory=list)
    tasks: list[str] = Field(default_factory=list)
