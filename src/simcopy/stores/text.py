# Copyright (c) Syntropy Systems
"""Text source and destination: JSON documents and CSV value files.

Model directory layout::

    <model>.model.json                  model definition
    <model>.index.json                  documents in write order
    <model>.run.<run>.json              run metadata
    run.<run>/parameters/<param>.csv
    run.<run>/output-tables/<table>.acc.csv
    run.<run>/output-tables/<table>.csv
    run.<run>/microdata/<entity>.csv
    <model>.set.<set>.json              workset metadata
    set.<set>/<param>.csv
    <model>.task.<task>.json            task body and run history

Documents list the relative path of each value file they own, files are
never found by name pattern. Numeric ids are not written.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from simcopy import digest
from simcopy.archive import pack_zip, unpack_zip
from simcopy.codec import (
    AccConverter,
    ExprConverter,
    MicroConverter,
    ParamConverter,
    ValueFormat,
    decode,
    write_csv,
)
from simcopy.errors import CopyError, IncompleteDataError, NotFoundError
from simcopy.models.cell import AccCell, ExprCell, MicroCell, ParamCell, ValueKind
from simcopy.models.meta import ModelDef
from simcopy.models.public import (
    DocumentIndex,
    EntityRunPub,
    ParamValuePub,
    RunPub,
    TableRunPub,
    TaskPub,
    WorksetPub,
)

from .base import Source, TaskLinks, Target, ValueOwner

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_INVALID_FILE_CHARS = re.compile(r"[\x00-\x1f\"'`*:?<>|$}{@&^;/\\]")

# there is only one model in a model directory
TEXT_MODEL_ID = 1


def clean_file_name(name: str) -> str:
    """Replace characters which are not safe in a file name by underscore."""
    clean = _INVALID_FILE_CHARS.sub("_", name).strip()
    if clean in ("", ".", ".."):
        clean = clean.replace(".", "_") or "_"
    return clean


def _read_doc(path: Path, cls: type[M]) -> M:
    try:
        return cls.model_validate_json(path.read_bytes())
    except FileNotFoundError as e:
        raise NotFoundError("document", str(path)) from e
    except ValidationError as e:
        msg = f"invalid document {path}: {e}"
        raise CopyError(msg) from e


def _write_doc(path: Path, doc: BaseModel) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    _ = path.write_text(doc.model_dump_json(by_alias=True, indent=2), encoding="utf-8")


def _index_name(model_name: str) -> str:
    return f"{clean_file_name(model_name)}.index.json"


class TextSource(Source):
    """Model runs, worksets and tasks read from a text directory or a .zip."""

    kind = "text"

    def __init__(
        self,
        in_dir: Path,
        model_name: str,
        model_digest: str = "",
        fmt: ValueFormat = ValueFormat(),
        use_zip: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        if not model_name:
            msg = "model name required to read text directory"
            raise CopyError(msg)

        self.fmt = fmt
        self._tmp_dir: Optional[Path] = None
        try:
            self._open(in_dir, model_name, model_digest, use_zip)
        except Exception:
            self.close()
            raise

        self._runs: Optional[list[RunPub]] = None
        self._worksets: Optional[list[WorksetPub]] = None
        self._tasks: Optional[list[TaskPub]] = None

    def _open(self, in_dir: Path, model_name: str, model_digest: str, use_zip: bool) -> None:  # noqa: FBT001
        clean_name = clean_file_name(model_name)

        if use_zip:
            self._tmp_dir = Path(tempfile.mkdtemp(prefix="simcopy-"))
            model_dir = unpack_zip(in_dir / f"{clean_name}.zip", self._tmp_dir)
        elif (in_dir / clean_name / _index_name(model_name)).exists():
            model_dir = in_dir / clean_name
        else:
            model_dir = in_dir

        index_path = model_dir / _index_name(model_name)
        if not index_path.exists():
            raise NotFoundError("model", model_name)

        self.model_dir = model_dir
        self.index = _read_doc(index_path, DocumentIndex)
        self._model = _read_doc(model_dir / self.index.model_file, ModelDef)

        if self._model.name != model_name or (model_digest and self._model.digest != model_digest):
            raise NotFoundError("model", model_digest or model_name)

    def _check_model(self, kind: str, name: str, model_digest: str) -> None:
        if model_digest != self._model.digest:
            msg = (
                f"{kind} {name}: model digest {model_digest!r} does not match"
                f" model {self._model.name} digest {self._model.digest!r}"
            )
            raise CopyError(msg)

    def model(self) -> ModelDef:
        return self._model

    def runs(self) -> list[RunPub]:
        if self._runs is None:
            self._runs = []
            for n, rel in enumerate(self.index.runs, start=1):
                r = _read_doc(self.model_dir / rel, RunPub)
                self._check_model("run", r.name, r.model_digest)
                r.source_id = n
                self._runs.append(r)
        return self._runs

    def worksets(self) -> list[WorksetPub]:
        if self._worksets is None:
            self._worksets = []
            for n, rel in enumerate(self.index.worksets, start=1):
                ws = _read_doc(self.model_dir / rel, WorksetPub)
                self._check_model("workset", ws.name, ws.model_digest)
                ws.source_id = n
                self._worksets.append(ws)
        return self._worksets

    def tasks(self) -> list[TaskPub]:
        if self._tasks is not None:
            return self._tasks

        set_ids: dict[str, int] = {}
        for n, ws in enumerate(self.worksets(), start=1):
            set_ids.setdefault(ws.name, n)
        run_by_digest: dict[str, int] = {}
        run_by_name: dict[str, int] = {}
        for n, r in enumerate(self.runs(), start=1):
            if r.digest:
                run_by_digest.setdefault(r.digest, n)
            run_by_name.setdefault(r.name, n)

        self._tasks = []
        for n, rel in enumerate(self.index.tasks, start=1):
            task = _read_doc(self.model_dir / rel, TaskPub)
            self._check_model("task", task.name, task.model_digest)
            task.source_id = n
            task.set_source_ids = {s: set_ids[s] for s in task.sets if s in set_ids}
            for tr in task.task_runs:
                for pair in tr.pairs:
                    pair.set_source_id = set_ids.get(pair.set_name)
                    if pair.run.digest:
                        pair.run.source_id = run_by_digest.get(pair.run.digest)
                    else:
                        pair.run.source_id = run_by_name.get(pair.run.name)
            self._tasks.append(task)
        return self._tasks

    def _value_path(self, owner: str, rel: Optional[str]) -> Path:
        if not rel:
            msg = f"{owner}: value file not specified"
            raise IncompleteDataError(msg)
        path = (self.model_dir / rel).resolve()
        if self.model_dir.resolve() not in path.parents:
            msg = f"{owner}: invalid value file path: {rel}"
            raise CopyError(msg)
        return path

    def param_values(self, owner: ValueOwner, param: ParamValuePub) -> Iterable[ParamCell]:
        kind = "run" if isinstance(owner, RunPub) else "workset"
        path = self._value_path(f"{kind} {owner.name} parameter {param.name}", param.file)
        return decode(ValueKind.PARAMETER, self._model, param.name, path, self.fmt)

    def table_acc(self, run: RunPub, table: TableRunPub) -> Optional[Iterable[AccCell]]:
        if not table.acc_file:
            return None
        path = self._value_path(f"run {run.name} output table {table.name}", table.acc_file)
        return decode(ValueKind.ACCUMULATOR, self._model, table.name, path, self.fmt)

    def table_expr(self, run: RunPub, table: TableRunPub) -> Iterable[ExprCell]:
        path = self._value_path(f"run {run.name} output table {table.name}", table.expr_file)
        return decode(ValueKind.EXPRESSION, self._model, table.name, path, self.fmt)

    def microdata(self, run: RunPub, entity: EntityRunPub) -> Iterable[MicroCell]:
        path = self._value_path(f"run {run.name} microdata {entity.name}", entity.file)
        return decode(ValueKind.MICRODATA, self._model, entity.name, path, self.fmt, entity.attrs)

    def close(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None


class _TextResolver:
    """Natural-key lookup of documents already written into the output directory."""

    def __init__(self, target: TextTarget) -> None:
        self.target = target

    def resolve_model(self, digest: str, name: str = "") -> Optional[int]:
        if not name:
            return None
        model = self.target.open_model(name)
        if model is None:
            return None
        if digest and model.digest != digest:
            msg = (
                f"output directory {self.target.model_dir} contains model {name}"
                f" with different digest: {model.digest}"
            )
            raise CopyError(msg)
        return TEXT_MODEL_ID

    def resolve_run(
        self, model_id: int, digest: Optional[str] = None, name: Optional[str] = None
    ) -> Optional[int]:
        runs = self.target.run_docs
        if digest:
            return next((i for i, r in runs.items() if r.digest == digest), None)
        if not name:
            return None
        found = [i for i, r in runs.items() if r.name == name]
        if len(found) > 1:
            logger.warning("run name %r is ambiguous: %d runs found, using the first", name, len(found))
        return found[0] if found else None

    def resolve_workset(self, model_id: int, name: str) -> Optional[int]:
        return next((i for i, ws in self.target.set_docs.items() if ws.name == name), None)

    def resolve_task(self, model_id: int, name: str) -> Optional[int]:
        return next((i for i, t in self.target.task_docs.items() if t.name == name), None)


class TextTarget(Target):
    """Output text directory, one model sub-directory, optionally packed into .zip."""

    kind = "text"

    def __init__(
        self,
        out_dir: Path,
        fmt: ValueFormat = ValueFormat(),
        use_zip: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        self.out_dir = out_dir
        self.fmt = fmt
        self.use_zip = use_zip
        self.resolver = _TextResolver(self)

        self._model_dir: Optional[Path] = None
        self._index: Optional[DocumentIndex] = None
        self._model: Optional[ModelDef] = None

        # published documents by text-local id, in index order
        self.run_docs: dict[int, RunPub] = {}
        self.set_docs: dict[int, WorksetPub] = {}
        self.task_docs: dict[int, TaskPub] = {}

        # runs and worksets being written, keyed by text-local id
        self._pending_runs: dict[int, RunPub] = {}
        self._pending_sets: dict[int, WorksetPub] = {}
        self._stems: dict[int, str] = {}
        self._set_stems: dict[int, str] = {}
        self._task_stems: dict[int, str] = {}
        self._next_id = 0

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    @property
    def model_dir(self) -> Path:
        if self._model_dir is None:
            msg = "model must be written into output directory first"
            raise CopyError(msg)
        return self._model_dir

    @property
    def index(self) -> DocumentIndex:
        if self._index is None:
            msg = "model must be written into output directory first"
            raise CopyError(msg)
        return self._index

    def open_model(self, name: str) -> Optional[ModelDef]:
        """Load model definition and document index if model directory already exists."""
        if self._model is not None:
            return self._model

        self._model_dir = self.out_dir / clean_file_name(name)
        index_path = self._model_dir / _index_name(name)
        if not index_path.exists():
            return None

        self._index = _read_doc(index_path, DocumentIndex)
        self._model = _read_doc(self._model_dir / self._index.model_file, ModelDef)

        for rel in self._index.runs:
            i = self._new_id()
            self.run_docs[i] = _read_doc(self._model_dir / rel, RunPub)
            self._stems[i] = self._stem_of(rel, "run")
        for rel in self._index.worksets:
            i = self._new_id()
            self.set_docs[i] = _read_doc(self._model_dir / rel, WorksetPub)
            self._set_stems[i] = self._stem_of(rel, "set")
        for rel in self._index.tasks:
            i = self._new_id()
            self.task_docs[i] = _read_doc(self._model_dir / rel, TaskPub)
            self._task_stems[i] = self._stem_of(rel, "task")

        logger.info("Output directory already contains model %s", name)
        return self._model

    def _stem_of(self, rel: str, kind: str) -> str:
        # <model>.<kind>.<stem>.json
        prefix = f"{clean_file_name(self._require_model().name)}.{kind}."
        return rel[len(prefix):-len(".json")]

    def _require_model(self) -> ModelDef:
        if self._model is None or self._model_dir is None or self._index is None:
            msg = "model must be written into output directory first"
            raise CopyError(msg)
        return self._model

    def _doc_name(self, kind: str, stem: str) -> str:
        return f"{clean_file_name(self._require_model().name)}.{kind}.{stem}.json"

    def _save_index(self) -> None:
        _write_doc(self.model_dir / _index_name(self._require_model().name), self.index)

    def create_model(self, model: ModelDef) -> int:
        self._model_dir = self.out_dir / clean_file_name(model.name)
        self._model_dir.mkdir(parents=True, exist_ok=True)

        model_file = f"{clean_file_name(model.name)}.model.json"
        _write_doc(self._model_dir / model_file, model)

        self._model = model
        self._index = DocumentIndex(model_name=model.name, model_digest=model.digest, model_file=model_file)
        self._save_index()
        return TEXT_MODEL_ID

    # --- runs ---

    def _unique_stem(self, name: str, suffix: str, used: Iterable[str]) -> str:
        stem = clean_file_name(name)
        taken = set(used)
        if stem not in taken:
            return stem
        candidate = f"{stem}.{clean_file_name(suffix)}" if suffix else stem
        n = 1
        while candidate in taken:
            n += 1
            candidate = f"{stem}.{n}"
        return candidate

    def create_run(self, model_id: int, run: RunPub) -> int:
        self._require_model()
        run_id = self._new_id()
        self._stems[run_id] = self._unique_stem(run.name, run.digest, self._stems.values())
        self._pending_runs[run_id] = run.model_copy(
            update={"params": [], "tables": [], "entities": []}, deep=True
        )
        return run_id

    def _pending_run(self, run_id: int) -> RunPub:
        try:
            return self._pending_runs[run_id]
        except KeyError:
            raise NotFoundError("run", f"id {run_id}") from None

    def write_run_param(self, run_id: int, run: RunPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        model = self._require_model()
        pending = self._pending_run(run_id)
        rel = f"run.{self._stems[run_id]}/parameters/{clean_file_name(param.name)}.csv"

        _ = write_csv(self.model_dir / rel, ParamConverter(model, param.name, self.fmt), cells, self.fmt)

        d = param.value_digest or digest.value_digest(ValueKind.PARAMETER, model, param.name, cells)
        pending.params.append(param.model_copy(update={"value_digest": d, "file": rel}))

    def write_run_table(
        self,
        run_id: int,
        run: RunPub,
        table: TableRunPub,
        acc_cells: Optional[list[AccCell]],
        expr_cells: list[ExprCell],
    ) -> None:
        model = self._require_model()
        pending = self._pending_run(run_id)
        base = f"run.{self._stems[run_id]}/output-tables/{clean_file_name(table.name)}"

        acc_file = None
        if acc_cells is not None:
            acc_file = f"{base}.acc.csv"
            _ = write_csv(self.model_dir / acc_file, AccConverter(model, table.name, self.fmt), acc_cells, self.fmt)
        expr_file = f"{base}.csv"
        _ = write_csv(self.model_dir / expr_file, ExprConverter(model, table.name, self.fmt), expr_cells, self.fmt)

        d = table.value_digest
        if not d and acc_cells is not None:
            d = digest.table_digest(model, table.name, acc_cells, expr_cells)
        pending.tables.append(
            table.model_copy(update={"value_digest": d, "acc_file": acc_file, "expr_file": expr_file})
        )

    def write_run_microdata(
        self, run_id: int, run: RunPub, entity: EntityRunPub, cells: list[MicroCell]
    ) -> None:
        model = self._require_model()
        pending = self._pending_run(run_id)
        rel = f"run.{self._stems[run_id]}/microdata/{clean_file_name(entity.name)}.csv"

        cvt = MicroConverter(model, entity.name, self.fmt, entity.attrs)
        _ = write_csv(self.model_dir / rel, cvt, cells, self.fmt)

        d = entity.value_digest or digest.value_digest(
            ValueKind.MICRODATA, model, entity.name, cells, attrs=entity.attrs
        )
        pending.entities.append(
            entity.model_copy(update={"value_digest": d, "row_count": len(cells), "file": rel})
        )

    def finalize_run(self, run_id: int, run: RunPub) -> None:
        model = self._require_model()
        pending = self._pending_run(run_id)

        if not pending.digest:
            pending.digest = digest.run_digest(model.digest, {p.name: p.value_digest for p in pending.params})
        if not pending.value_digest and all(t.value_digest for t in pending.tables):
            pending.value_digest = digest.run_value_digest(
                {t.name: t.value_digest for t in pending.tables},
                {e.name: e.value_digest for e in pending.entities},
            )

        rel = self._doc_name("run", self._stems[run_id])
        _write_doc(self.model_dir / rel, pending)

        del self._pending_runs[run_id]
        self.run_docs[run_id] = pending
        self.index.runs.append(rel)
        self._save_index()

    def delete_run(self, run_id: int) -> None:
        self._require_model()
        stem = self._stems.pop(run_id, None)
        if stem is None:
            return
        shutil.rmtree(self.model_dir / f"run.{stem}", ignore_errors=True)
        self._pending_runs.pop(run_id, None)
        if self.run_docs.pop(run_id, None) is not None:
            rel = self._doc_name("run", stem)
            (self.model_dir / rel).unlink(missing_ok=True)
            self.index.runs.remove(rel)
            self._save_index()

    # --- worksets ---

    def _base_run_ref(self, base_run_id: Optional[int]) -> dict[str, str]:
        run = self.run_docs.get(base_run_id) if base_run_id is not None else None
        if run is None:
            return {"base_run_digest": "", "base_run_name": ""}
        return {"base_run_digest": run.digest, "base_run_name": run.name}

    def create_workset(self, model_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> int:
        self._require_model()
        set_id = self._new_id()
        self._set_stems[set_id] = self._unique_stem(ws.name, "", self._set_stems.values())
        self._pending_sets[set_id] = ws.model_copy(
            update={
                "is_readonly": False,
                **self._base_run_ref(base_run_id),
                "params": [],
            },
            deep=True,
        )
        return set_id

    def reset_workset(self, set_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> None:
        self._require_model()
        if set_id not in self.set_docs:
            raise NotFoundError("workset", f"id {set_id}")

        stem = self._set_stems[set_id]
        shutil.rmtree(self.model_dir / f"set.{stem}", ignore_errors=True)

        pending = ws.model_copy(
            update={
                "is_readonly": False,
                **self._base_run_ref(base_run_id),
                "params": [],
            },
            deep=True,
        )
        self.set_docs[set_id] = pending
        self._pending_sets[set_id] = pending
        _write_doc(self.model_dir / self._doc_name("set", stem), pending)

    def write_workset_param(self, set_id: int, ws: WorksetPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        model = self._require_model()
        pending = self._pending_sets.get(set_id)
        if pending is None:
            raise NotFoundError("workset", f"id {set_id}")
        rel = f"set.{self._set_stems[set_id]}/{clean_file_name(param.name)}.csv"

        _ = write_csv(self.model_dir / rel, ParamConverter(model, param.name, self.fmt), cells, self.fmt)
        pending.params.append(param.model_copy(update={"file": rel}))

    def finalize_workset(self, set_id: int, ws: WorksetPub) -> None:
        self._require_model()
        pending = self._pending_sets.pop(set_id, None)
        if pending is None:
            raise NotFoundError("workset", f"id {set_id}")
        pending.is_readonly = ws.is_readonly

        rel = self._doc_name("set", self._set_stems[set_id])
        _write_doc(self.model_dir / rel, pending)

        self.set_docs[set_id] = pending
        if rel not in self.index.worksets:
            self.index.worksets.append(rel)
            self._save_index()

    def delete_workset(self, set_id: int) -> None:
        self._require_model()
        stem = self._set_stems.pop(set_id, None)
        if stem is None:
            return
        shutil.rmtree(self.model_dir / f"set.{stem}", ignore_errors=True)
        self._pending_sets.pop(set_id, None)
        self.set_docs.pop(set_id, None)

        rel = self._doc_name("set", stem)
        (self.model_dir / rel).unlink(missing_ok=True)
        if rel in self.index.worksets:
            self.index.worksets.remove(rel)
            self._save_index()

    # --- tasks ---

    def task_run_keys(self, task_id: int) -> set[tuple[str, str]]:
        task = self.task_docs.get(task_id)
        if task is None:
            return set()
        return {(tr.name, tr.create_dt) for tr in task.task_runs}

    def write_task(self, model_id: int, task_id: Optional[int], task: TaskPub, links: TaskLinks) -> int:
        self._require_model()

        history = []
        if task_id is None:
            task_id = self._new_id()
            self._task_stems[task_id] = clean_file_name(task.name)
        else:
            history = list(self.task_docs[task_id].task_runs)
        history.extend(tr for tr, _ in links.task_runs)

        doc = task.model_copy(update={"task_runs": history}, deep=True)
        rel = self._doc_name("task", self._task_stems[task_id])
        _write_doc(self.model_dir / rel, doc)

        self.task_docs[task_id] = doc
        if rel not in self.index.tasks:
            self.index.tasks.append(rel)
            self._save_index()
        return task_id

    def close(self) -> None:
        if self.use_zip and self._model_dir is not None and self._model_dir.is_dir():
            _ = pack_zip(self._model_dir)
