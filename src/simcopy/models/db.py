# Copyright (c) Syntropy Systems
"""Pydantic models for database records."""

from __future__ import annotations

from typing import Optional, cast

from pydantic import Field, TypeAdapter, field_validator

from .base import DescrNote, LangNote, SimcopyBaseModel
from .meta import ModelDef

_LIST_STR_ADAPTER = TypeAdapter(list[str])
_DICT_STR_ADAPTER = TypeAdapter(dict[str, str])
_DESCR_NOTE_ADAPTER = TypeAdapter(list[DescrNote])
_LANG_NOTE_ADAPTER = TypeAdapter(list[LangNote])


def _parse_descr_notes(value: object) -> list[DescrNote]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return _DESCR_NOTE_ADAPTER.validate_json(value)
    return _DESCR_NOTE_ADAPTER.validate_python(value)


class ModelRecord(SimcopyBaseModel):
    """Database model record, definition stored as JSON."""

    model_id: int
    model_name: str
    model_digest: str
    model_version: str = ""
    create_dt: Optional[str] = None
    definition: ModelDef

    @field_validator("definition", mode="before")
    @classmethod
    def _parse_definition(cls, value: object) -> ModelDef:
        if isinstance(value, str):
            return ModelDef.model_validate_json(value)
        return ModelDef.model_validate(value)


class RunRecord(SimcopyBaseModel):
    """Database run record."""

    run_id: int
    model_id: int
    run_name: str
    sub_count: int = 1
    sub_started: int = 0
    sub_completed: int = 0
    create_dt: Optional[str] = None
    status: str
    update_dt: Optional[str] = None
    run_digest: Optional[str] = None
    value_digest: Optional[str] = None
    run_stamp: Optional[str] = None
    options: dict[str, str] = Field(default_factory=dict)
    txt: list[DescrNote] = Field(default_factory=list)

    @field_validator("options", mode="before")
    @classmethod
    def _parse_options(cls, value: object) -> dict[str, str]:
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            return _DICT_STR_ADAPTER.validate_json(value)
        return cast("dict[str, str]", value)

    @field_validator("txt", mode="before")
    @classmethod
    def _parse_txt(cls, value: object) -> list[DescrNote]:
        return _parse_descr_notes(value)


class ParamValueRecord(SimcopyBaseModel):
    """Parameter header row of a run or workset."""

    owner_id: int
    param_hid: int
    sub_count: int = 1
    value_digest: Optional[str] = None
    txt: list[LangNote] = Field(default_factory=list)

    @field_validator("txt", mode="before")
    @classmethod
    def _parse_txt(cls, value: object) -> list[LangNote]:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return _LANG_NOTE_ADAPTER.validate_json(value)
        return _LANG_NOTE_ADAPTER.validate_python(value)


class RunTableRecord(SimcopyBaseModel):
    """Output table included in run results."""

    run_id: int
    table_hid: int
    value_digest: Optional[str] = None


class RunEntityRecord(SimcopyBaseModel):
    """Microdata entity generation of a run."""

    run_id: int
    entity_name: str
    gen_digest: Optional[str] = None
    row_count: int = 0
    value_digest: Optional[str] = None
    attrs: list[str] = Field(default_factory=list)

    @field_validator("attrs", mode="before")
    @classmethod
    def _parse_attrs(cls, value: object) -> list[str]:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return _LIST_STR_ADAPTER.validate_json(value)
        return cast("list[str]", value)


class WorksetRecord(SimcopyBaseModel):
    """Database workset record."""

    set_id: int
    model_id: int
    set_name: str
    is_readonly: bool = False
    base_run_id: Optional[int] = None
    update_dt: Optional[str] = None
    txt: list[DescrNote] = Field(default_factory=list)

    @field_validator("txt", mode="before")
    @classmethod
    def _parse_txt(cls, value: object) -> list[DescrNote]:
        return _parse_descr_notes(value)


class TaskRecord(SimcopyBaseModel):
    """Database modeling task record."""

    task_id: int
    model_id: int
    task_name: str
    txt: list[DescrNote] = Field(default_factory=list)

    @field_validator("txt", mode="before")
    @classmethod
    def _parse_txt(cls, value: object) -> list[DescrNote]:
        return _parse_descr_notes(value)


class TaskRunRecord(SimcopyBaseModel):
    """Task run history header."""

    task_run_id: int
    task_id: int
    run_name: str
    sub_count: int = 1
    create_dt: Optional[str] = None
    status: str = ""
    update_dt: Optional[str] = None


class TaskRunSetRecord(SimcopyBaseModel):
    """Task run history body: (run, workset) pair."""

    task_run_id: int
    task_id: int
    run_id: int
    set_id: int
