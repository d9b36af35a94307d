# Copyright (c) Syntropy Systems
"""Value cells: one row of a parameter, output table or microdata."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from typing_extensions import TypeAlias

CellValue: TypeAlias = Union[int, float, bool, str, None]


class ValueKind(str, Enum):
    """Kind of value table."""

    PARAMETER = "parameter"
    ACCUMULATOR = "accumulator"
    EXPRESSION = "expression"
    MICRODATA = "microdata"


@dataclass(frozen=True)
class ParamCell:
    """Parameter value: sub-value id, dimension item ids and value."""

    sub_id: int
    dims: tuple[int, ...]
    value: CellValue


@dataclass(frozen=True)
class AccCell:
    """Output table accumulator value."""

    acc_id: int
    sub_id: int
    dims: tuple[int, ...]
    value: CellValue


@dataclass(frozen=True)
class ExprCell:
    """Output table expression value."""

    expr_id: int
    dims: tuple[int, ...]
    value: CellValue


@dataclass(frozen=True)
class MicroCell:
    """Microdata row: entity key and attribute values in declared order."""

    key: int
    values: tuple[CellValue, ...]


Cell: TypeAlias = Union[ParamCell, AccCell, ExprCell, MicroCell]
