# Copyright (c) Syntropy Systems
"""Pydantic models for model metadata: types, parameters, tables, entities.

The model definition is already store independent: it carries names,
harmonized ids (hid) and enum item ids defined by the model itself, but
never the store-local ``model_id``. It is written as ``<model>.model.json``
and stored as a JSON column of ``model_dic``.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from .base import DescrNote, SimcopyBaseModel

TypeKind = Literal["int", "float", "bool", "string", "enum"]

# built-in type names which do not have to be declared in the model types list
BUILTIN_TYPES: dict[str, TypeKind] = {
    "int": "int",
    "integer": "int",
    "long": "int",
    "short": "int",
    "float": "float",
    "double": "float",
    "real": "float",
    "bool": "bool",
    "string": "string",
    "file": "string",
}


class EnumItem(SimcopyBaseModel):
    """Enum item: model-defined id and code."""

    id: int
    code: str


class TypeDef(SimcopyBaseModel):
    """Model type: built-in kind or enum with items."""

    name: str
    kind: TypeKind
    items: list[EnumItem] = Field(default_factory=list)

    def code_by_id(self) -> dict[int, str]:
        """Map enum item id to code."""
        if self.kind == "bool":
            return {0: "false", 1: "true"}
        return {item.id: item.code for item in self.items}

    def id_by_code(self) -> dict[str, int]:
        """Map enum item code to id."""
        if self.kind == "bool":
            return {"false": 0, "true": 1}
        return {item.code: item.id for item in self.items}


class DimDef(SimcopyBaseModel):
    """Dimension of a parameter or output table."""

    name: str
    type_name: str = Field(alias="type")


class ParamDef(SimcopyBaseModel):
    """Model input parameter."""

    name: str
    hid: int
    type_name: str = Field(alias="type")
    dims: list[DimDef] = Field(default_factory=list)
    is_extendable: bool = False

    @property
    def rank(self) -> int:
        return len(self.dims)


class AccDef(SimcopyBaseModel):
    """Output table accumulator."""

    acc_id: int
    name: str


class ExprDef(SimcopyBaseModel):
    """Output table expression."""

    expr_id: int
    name: str


class TableDef(SimcopyBaseModel):
    """Model output table."""

    name: str
    hid: int
    dims: list[DimDef] = Field(default_factory=list)
    accumulators: list[AccDef] = Field(default_factory=list)
    expressions: list[ExprDef] = Field(default_factory=list)

    @property
    def rank(self) -> int:
        return len(self.dims)


class AttrDef(SimcopyBaseModel):
    """Entity attribute."""

    name: str
    type_name: str = Field(alias="type")


class EntityDef(SimcopyBaseModel):
    """Model entity, source of microdata."""

    name: str
    attrs: list[AttrDef] = Field(default_factory=list)


class ModelDef(SimcopyBaseModel):
    """Model definition, identified by (name, digest)."""

    name: str
    digest: str = ""
    version: str = ""
    create_dt: str = ""
    default_lang: str = ""
    txt: list[DescrNote] = Field(default_factory=list)
    types: list[TypeDef] = Field(default_factory=list)
    params: list[ParamDef] = Field(default_factory=list)
    tables: list[TableDef] = Field(default_factory=list)
    entities: list[EntityDef] = Field(default_factory=list)

    def type_of(self, type_name: str) -> TypeDef:
        """Find model type by name, built-in types do not have to be declared."""
        for t in self.types:
            if t.name == type_name:
                return t
        kind = BUILTIN_TYPES.get(type_name.lower())
        if kind is None:
            raise ValueError(f"model {self.name}: type not found: {type_name}")
        return TypeDef(name=type_name, kind=kind)

    def param_by_name(self, name: str) -> Optional[ParamDef]:
        return next((p for p in self.params if p.name == name), None)

    def param_by_hid(self, hid: int) -> Optional[ParamDef]:
        return next((p for p in self.params if p.hid == hid), None)

    def table_by_name(self, name: str) -> Optional[TableDef]:
        return next((t for t in self.tables if t.name == name), None)

    def table_by_hid(self, hid: int) -> Optional[TableDef]:
        return next((t for t in self.tables if t.hid == hid), None)

    def entity_by_name(self, name: str) -> Optional[EntityDef]:
        return next((e for e in self.entities if e.name == name), None)
