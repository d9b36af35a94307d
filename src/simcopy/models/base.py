# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for simcopy."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class SimcopyBaseModel(BaseModel):
    """Base model with shared config for simcopy schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class DescrNote(SimcopyBaseModel):
    """Description and notes of an entity in one language."""

    lang_code: str
    descr: str = ""
    note: str = ""


class LangNote(SimcopyBaseModel):
    """Value notes of a parameter in one language."""

    lang_code: str
    note: str = ""
