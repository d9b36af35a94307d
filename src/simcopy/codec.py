# Copyright (c) Syntropy Systems
"""CSV value codec for parameters, output tables and microdata.

Each value table has a fixed header derived from the model definition:

    parameter:    sub_id,<dims>,param_value
    accumulator:  acc_name,sub_id,<dims>,acc_value   (acc_id in id mode)
    expression:   expr_name,<dims>,expr_value        (expr_id in id mode)
    microdata:    key,<attributes>

Dimension items are written as enum codes or, in id mode, as enum ids.
NULL values are written as the literal token ``NULL``. A string value equal
to the token cannot be written.
"""

from __future__ import annotations

import codecs
import csv
import io
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generic, Optional, TypeVar, Union

from simcopy.errors import SchemaMismatchError, ValueDecodeError, ValueEncodeError
from simcopy.models.cell import (
    AccCell,
    Cell,
    CellValue,
    ExprCell,
    MicroCell,
    ParamCell,
    ValueKind,
)

if TYPE_CHECKING:
    from simcopy.models.meta import DimDef, ModelDef, TypeDef

NULL_TOKEN = "NULL"

_TRUE_TOKENS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_TOKENS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

C = TypeVar("C", ParamCell, AccCell, ExprCell, MicroCell)
CsvSource = Union[Path, str, bytes]


@dataclass(frozen=True)
class ValueFormat:
    """Explicit formatting options passed to every codec call."""

    # printf-style format for float values, None: shortest round-trip repr
    double_format: Optional[str] = None

    # write and expect enum ids instead of enum codes
    use_id_csv: bool = False

    # encoding of input csv files, a leading BOM is always dropped
    encoding: str = "utf-8"

    # write utf-8 BOM into output csv files
    utf8_bom: bool = False


def format_float(value: float, double_format: Optional[str] = None) -> str:
    """Format float value using printf-style format or round-trip repr."""
    if double_format:
        return double_format % value
    return repr(float(value))


def parse_bool(src: str) -> bool:
    if src in _TRUE_TOKENS:
        return True
    if src in _FALSE_TOKENS:
        return False
    raise ValueError(f"invalid boolean value: {src!r}")


def _value_writer(
    type_def: TypeDef, fmt: ValueFormat
) -> Callable[[CellValue], str]:
    kind = type_def.kind

    if kind == "float":
        return lambda v: format_float(float(v), fmt.double_format)  # type: ignore[arg-type]
    if kind == "bool":
        return lambda v: "true" if v else "false"
    if kind == "int":
        return lambda v: str(int(v))  # type: ignore[arg-type]
    if kind == "string":
        return lambda v: str(v)
    if fmt.use_id_csv:
        return lambda v: str(int(v))  # type: ignore[arg-type]

    codes = type_def.code_by_id()

    def enum_code(v: CellValue) -> str:
        try:
            return codes[int(v)]  # type: ignore[arg-type]
        except KeyError:
            msg = f"invalid enum id {v} of type {type_def.name}"
            raise ValueError(msg) from None

    return enum_code


def _value_reader(type_def: TypeDef, fmt: ValueFormat) -> Callable[[str], CellValue]:
    kind = type_def.kind

    if kind == "float":
        return float
    if kind == "bool":
        return parse_bool
    if kind == "int":
        return int
    if kind == "string":
        return str

    ids = type_def.id_by_code()
    if fmt.use_id_csv:
        valid = set(ids.values())

        def enum_id(src: str) -> int:
            v = int(src)
            if v not in valid:
                msg = f"invalid enum id {v} of type {type_def.name}"
                raise ValueError(msg)
            return v

        return enum_id

    def enum_by_code(src: str) -> int:
        try:
            return ids[src]
        except KeyError:
            msg = f"invalid enum code {src!r} of type {type_def.name}"
            raise ValueError(msg) from None

    return enum_by_code


def _nullable(
    write: Callable[[CellValue], str], read: Callable[[str], CellValue], *, allow_null: bool
) -> tuple[Callable[[CellValue], str], Callable[[str], CellValue]]:
    def write_null(v: CellValue) -> str:
        if v is None:
            return NULL_TOKEN
        if v == NULL_TOKEN:
            msg = f"string value {NULL_TOKEN!r} cannot be written, it is the NULL token"
            raise ValueError(msg)
        return write(v)

    def read_null(src: str) -> CellValue:
        if src == NULL_TOKEN:
            if not allow_null:
                msg = "value cannot be NULL"
                raise ValueError(msg)
            return None
        return read(src)

    return write_null, read_null


class _DimCodec:
    """Writes and reads dimension items of a parameter or output table."""

    def __init__(self, model: ModelDef, owner: str, dims: list[DimDef], fmt: ValueFormat) -> None:
        self.names = [d.name for d in dims]
        self._write: list[Callable[[int], str]] = []
        self._read: list[Callable[[str], int]] = []

        for dim in dims:
            type_def = model.type_of(dim.type_name)
            if type_def.kind == "int":
                self._write.append(str)
                self._read.append(int)
            elif type_def.kind in ("enum", "bool"):
                self._write.append(_value_writer(type_def, fmt))  # type: ignore[arg-type]
                self._read.append(_value_reader(type_def, fmt))  # type: ignore[arg-type]
            else:
                msg = f"{owner}: invalid type {type_def.name} of dimension {dim.name}"
                raise ValueError(msg)

    def to_row(self, dims: tuple[int, ...]) -> list[str]:
        if len(dims) != len(self._write):
            msg = f"invalid number of dimensions: {len(dims)}, expected: {len(self._write)}"
            raise ValueError(msg)
        return [f(d) for f, d in zip(self._write, dims)]

    def to_dims(self, cols: list[str]) -> tuple[int, ...]:
        return tuple(f(c) for f, c in zip(self._read, cols))


class CsvConverter(ABC, Generic[C]):
    """Converts cells of one value table to and from csv rows."""

    kind: ValueKind
    name: str

    @abstractmethod
    def header(self) -> list[str]:
        """Column names, first line of the csv file."""

    @abstractmethod
    def to_row(self, cell: C) -> list[str]:
        """Convert cell into csv row."""

    @abstractmethod
    def to_cell(self, row: list[str]) -> C:
        """Convert csv row into cell, raise ValueError if row is invalid."""


class ParamConverter(CsvConverter[ParamCell]):
    kind = ValueKind.PARAMETER

    def __init__(self, model: ModelDef, name: str, fmt: ValueFormat) -> None:
        param = model.param_by_name(name)
        if param is None:
            msg = f"parameter not found: {name}"
            raise ValueError(msg)
        self.name = name
        self._dims = _DimCodec(model, name, param.dims, fmt)
        self._write, self._read = _nullable(
            _value_writer(model.type_of(param.type_name), fmt),
            _value_reader(model.type_of(param.type_name), fmt),
            allow_null=param.is_extendable,
        )

    def header(self) -> list[str]:
        return ["sub_id", *self._dims.names, "param_value"]

    def to_row(self, cell: ParamCell) -> list[str]:
        return [str(cell.sub_id), *self._dims.to_row(cell.dims), self._write(cell.value)]

    def to_cell(self, row: list[str]) -> ParamCell:
        return ParamCell(
            sub_id=int(row[0]),
            dims=self._dims.to_dims(row[1:-1]),
            value=self._read(row[-1]),
        )


class _TableConverter:
    """Shared part of accumulator and expression converters."""

    def __init__(self, model: ModelDef, name: str, fmt: ValueFormat) -> None:
        table = model.table_by_name(name)
        if table is None:
            msg = f"output table not found: {name}"
            raise ValueError(msg)
        self.name = name
        self._table = table
        self._use_id = fmt.use_id_csv
        self._dims = _DimCodec(model, name, table.dims, fmt)
        self._write, self._read = _nullable(
            lambda v: format_float(float(v), fmt.double_format),  # type: ignore[arg-type]
            float,
            allow_null=True,
        )


class AccConverter(_TableConverter, CsvConverter[AccCell]):
    kind = ValueKind.ACCUMULATOR

    def __init__(self, model: ModelDef, name: str, fmt: ValueFormat) -> None:
        super().__init__(model, name, fmt)
        self._acc_name = {a.acc_id: a.name for a in self._table.accumulators}
        self._acc_id = {a.name: a.acc_id for a in self._table.accumulators}

    def header(self) -> list[str]:
        first = "acc_id" if self._use_id else "acc_name"
        return [first, "sub_id", *self._dims.names, "acc_value"]

    def to_row(self, cell: AccCell) -> list[str]:
        acc = str(cell.acc_id) if self._use_id else self._acc_name[cell.acc_id]
        return [acc, str(cell.sub_id), *self._dims.to_row(cell.dims), self._write(cell.value)]

    def to_cell(self, row: list[str]) -> AccCell:
        if self._use_id:
            acc_id = int(row[0])
            if acc_id not in self._acc_name:
                msg = f"invalid accumulator id: {acc_id}"
                raise ValueError(msg)
        else:
            if row[0] not in self._acc_id:
                msg = f"invalid accumulator name: {row[0]}"
                raise ValueError(msg)
            acc_id = self._acc_id[row[0]]
        return AccCell(
            acc_id=acc_id,
            sub_id=int(row[1]),
            dims=self._dims.to_dims(row[2:-1]),
            value=self._read(row[-1]),
        )


class ExprConverter(_TableConverter, CsvConverter[ExprCell]):
    kind = ValueKind.EXPRESSION

    def __init__(self, model: ModelDef, name: str, fmt: ValueFormat) -> None:
        super().__init__(model, name, fmt)
        self._expr_name = {e.expr_id: e.name for e in self._table.expressions}
        self._expr_id = {e.name: e.expr_id for e in self._table.expressions}

    def header(self) -> list[str]:
        first = "expr_id" if self._use_id else "expr_name"
        return [first, *self._dims.names, "expr_value"]

    def to_row(self, cell: ExprCell) -> list[str]:
        expr = str(cell.expr_id) if self._use_id else self._expr_name[cell.expr_id]
        return [expr, *self._dims.to_row(cell.dims), self._write(cell.value)]

    def to_cell(self, row: list[str]) -> ExprCell:
        if self._use_id:
            expr_id = int(row[0])
            if expr_id not in self._expr_name:
                msg = f"invalid expression id: {expr_id}"
                raise ValueError(msg)
        else:
            if row[0] not in self._expr_id:
                msg = f"invalid expression name: {row[0]}"
                raise ValueError(msg)
            expr_id = self._expr_id[row[0]]
        return ExprCell(
            expr_id=expr_id,
            dims=self._dims.to_dims(row[1:-1]),
            value=self._read(row[-1]),
        )


class MicroConverter(CsvConverter[MicroCell]):
    kind = ValueKind.MICRODATA

    def __init__(
        self,
        model: ModelDef,
        name: str,
        fmt: ValueFormat,
        attrs: Optional[list[str]] = None,
    ) -> None:
        entity = model.entity_by_name(name)
        if entity is None:
            msg = f"entity not found: {name}"
            raise ValueError(msg)
        self.name = name

        by_name = {a.name: a for a in entity.attrs}
        names = attrs if attrs is not None else [a.name for a in entity.attrs]
        missing = [n for n in names if n not in by_name]
        if missing:
            msg = f"entity {name}: attribute(s) not found: {', '.join(missing)}"
            raise ValueError(msg)

        self._attrs = names
        self._codecs = [
            _nullable(
                _value_writer(model.type_of(by_name[n].type_name), fmt),
                _value_reader(model.type_of(by_name[n].type_name), fmt),
                allow_null=True,
            )
            for n in names
        ]

    def header(self) -> list[str]:
        return ["key", *self._attrs]

    def to_row(self, cell: MicroCell) -> list[str]:
        if len(cell.values) != len(self._codecs):
            msg = f"invalid number of attributes: {len(cell.values)}, expected: {len(self._codecs)}"
            raise ValueError(msg)
        return [str(cell.key), *(w(v) for (w, _), v in zip(self._codecs, cell.values))]

    def to_cell(self, row: list[str]) -> MicroCell:
        return MicroCell(
            key=int(row[0]),
            values=tuple(r(src) for (_, r), src in zip(self._codecs, row[1:])),
        )


def make_converter(
    kind: ValueKind,
    model: ModelDef,
    name: str,
    fmt: ValueFormat,
    attrs: Optional[list[str]] = None,
) -> CsvConverter:
    """Create converter for a value table of the model."""
    if kind == ValueKind.PARAMETER:
        return ParamConverter(model, name, fmt)
    if kind == ValueKind.ACCUMULATOR:
        return AccConverter(model, name, fmt)
    if kind == ValueKind.EXPRESSION:
        return ExprConverter(model, name, fmt)
    return MicroConverter(model, name, fmt, attrs)


def _write_rows(out: io.TextIOBase, cvt: CsvConverter, cells: Iterable[Cell]) -> int:
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(cvt.header())
    n = 0
    for cell in cells:
        try:
            row = cvt.to_row(cell)
        except (ValueError, KeyError) as e:
            raise ValueEncodeError(cvt.name, n + 1, str(e)) from e
        writer.writerow(row)
        n += 1
    return n


def encode(
    kind: ValueKind,
    model: ModelDef,
    name: str,
    cells: Iterable[Cell],
    fmt: ValueFormat = ValueFormat(),
    attrs: Optional[list[str]] = None,
) -> str:
    """Encode cells of one value table into csv text."""
    out = io.StringIO()
    _ = _write_rows(out, make_converter(kind, model, name, fmt, attrs), cells)
    return out.getvalue()


def write_csv(
    path: Path,
    cvt: CsvConverter,
    cells: Iterable[Cell],
    fmt: ValueFormat = ValueFormat(),
) -> int:
    """Write cells into csv file and return number of rows written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    encoding = "utf-8-sig" if fmt.utf8_bom else "utf-8"
    with path.open("w", encoding=encoding, newline="") as f:
        return _write_rows(f, cvt, cells)


def _read_encoding(fmt: ValueFormat) -> str:
    name = codecs.lookup(fmt.encoding or "utf-8").name
    return "utf-8-sig" if name == "utf-8" else name


class CsvDecoder(Generic[C]):
    """Lazy, restartable sequence of cells decoded from csv.

    Every iteration reads the source again from the first line. The header
    must match exactly, otherwise ``SchemaMismatchError`` is raised; a bad
    row raises ``ValueDecodeError`` with its 1-based row index.
    """

    def __init__(self, cvt: CsvConverter[C], source: CsvSource, fmt: ValueFormat) -> None:
        self.converter = cvt
        self._source = source
        self._encoding = _read_encoding(fmt)

    def _open(self) -> io.TextIOBase:
        if isinstance(self._source, Path):
            return self._source.open("r", encoding=self._encoding, newline="")  # type: ignore[return-value]
        if isinstance(self._source, bytes):
            return io.StringIO(self._source.decode(self._encoding), newline="")
        return io.StringIO(self._source, newline="")

    def __iter__(self) -> Iterator[C]:
        cvt = self.converter
        expected = cvt.header()

        with self._open() as f:
            reader = csv.reader(f)
            header = next(reader, None)
            if header and header[0].startswith("\ufeff"):
                header[0] = header[0][1:]
            if header != expected:
                msg = (
                    f"{cvt.name}: invalid csv header {','.join(header or [])!r},"
                    f" expected: {','.join(expected)!r}"
                )
                raise SchemaMismatchError(msg)

            for idx, row in enumerate(reader, start=1):
                if not row:
                    continue
                if len(row) != len(expected):
                    raise ValueDecodeError(
                        cvt.name, idx, f"expected {len(expected)} columns, got {len(row)}"
                    )
                try:
                    yield cvt.to_cell(row)
                except (ValueError, KeyError) as e:
                    raise ValueDecodeError(cvt.name, idx, str(e)) from e


def decode(
    kind: ValueKind,
    model: ModelDef,
    name: str,
    source: CsvSource,
    fmt: ValueFormat = ValueFormat(),
    attrs: Optional[list[str]] = None,
) -> CsvDecoder:
    """Decode csv file, text or bytes of one value table into cells."""
    return CsvDecoder(make_converter(kind, model, name, fmt, attrs), source, fmt)
