# Copyright (c) Syntropy Systems
"""Content digests: store independent identity of models and runs.

All digests are MD5 hex strings over canonical text. Value digests are
computed over id-mode csv text of cells in key order, so they do not depend
on enum codes, row order or the store the values came from.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Optional

from simcopy.codec import ValueFormat, encode
from simcopy.models.cell import AccCell, Cell, ExprCell, MicroCell, ParamCell, ValueKind

if TYPE_CHECKING:
    from simcopy.models.meta import ModelDef

# float format used for value digests unless caller supplies one
DIGEST_DOUBLE_FORMAT = "%.15g"


def _md5(lines: Iterable[str]) -> str:
    h = hashlib.md5()  # noqa: S324
    for line in lines:
        h.update(line.encode("utf-8"))
        h.update(b"\n")
    return h.hexdigest()


def model_digest(model: ModelDef) -> str:
    """Digest of model structure: types, parameters, tables and entities."""
    lines = [f"model,{model.name}"]

    for t in model.types:
        lines.append(f"type,{t.name},{t.kind}")
        lines.extend(f"item,{i.id},{i.code}" for i in t.items)

    for p in model.params:
        dims = ",".join(f"{d.name}:{d.type_name}" for d in p.dims)
        lines.append(f"param,{p.hid},{p.name},{p.type_name},{int(p.is_extendable)},{dims}")

    for tbl in model.tables:
        dims = ",".join(f"{d.name}:{d.type_name}" for d in tbl.dims)
        lines.append(f"table,{tbl.hid},{tbl.name},{dims}")
        lines.extend(f"acc,{a.acc_id},{a.name}" for a in tbl.accumulators)
        lines.extend(f"expr,{e.expr_id},{e.name}" for e in tbl.expressions)

    for ent in model.entities:
        attrs = ",".join(f"{a.name}:{a.type_name}" for a in ent.attrs)
        lines.append(f"entity,{ent.name},{attrs}")

    return _md5(lines)


def _cell_key(cell: Cell) -> tuple:
    if isinstance(cell, ParamCell):
        return (cell.sub_id, cell.dims)
    if isinstance(cell, AccCell):
        return (cell.acc_id, cell.sub_id, cell.dims)
    if isinstance(cell, ExprCell):
        return (cell.expr_id, cell.dims)
    if isinstance(cell, MicroCell):
        return (cell.key,)
    msg = f"invalid cell type: {type(cell).__name__}"
    raise TypeError(msg)


def value_digest(
    kind: ValueKind,
    model: ModelDef,
    name: str,
    cells: Iterable[Cell],
    double_format: str = DIGEST_DOUBLE_FORMAT,
    attrs: Optional[list[str]] = None,
) -> str:
    """Digest of one value table."""
    fmt = ValueFormat(double_format=double_format or DIGEST_DOUBLE_FORMAT, use_id_csv=True)
    text = encode(kind, model, name, sorted(cells, key=_cell_key), fmt, attrs)
    return _md5([f"{kind.value},{name}", text])


def table_digest(
    model: ModelDef,
    name: str,
    acc_cells: Iterable[AccCell],
    expr_cells: Iterable[ExprCell],
    double_format: str = DIGEST_DOUBLE_FORMAT,
) -> str:
    """Digest of output table values: accumulators and expressions."""
    return _md5([
        value_digest(ValueKind.ACCUMULATOR, model, name, acc_cells, double_format),
        value_digest(ValueKind.EXPRESSION, model, name, expr_cells, double_format),
    ])


def run_digest(model_digest_: str, param_digests: Mapping[str, str]) -> str:
    """Run digest: model digest and value digests of all run parameters."""
    lines = [f"model,{model_digest_}"]
    lines.extend(f"param,{name},{param_digests[name]}" for name in sorted(param_digests))
    return _md5(lines)


def run_value_digest(
    table_digests: Mapping[str, str], entity_digests: Mapping[str, str]
) -> str:
    """Run value digest: output tables and microdata value digests."""
    lines = [f"table,{name},{table_digests[name]}" for name in sorted(table_digests)]
    lines.extend(f"entity,{name},{entity_digests[name]}" for name in sorted(entity_digests))
    return _md5(lines)
