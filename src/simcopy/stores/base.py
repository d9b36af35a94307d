# Copyright (c) Syntropy Systems
"""Source and destination store interfaces.

A source produces portable forms (``RunPub``, ``WorksetPub``, ``TaskPub``)
and value cells. A destination resolves natural keys, creates entities,
writes value cells and deletes an entity it has just created if copy fails.
Destination ids are local to the destination store.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional, Protocol, TypeVar, Union

from simcopy.errors import CopyError, NotFoundError
from simcopy.models.cell import AccCell, ExprCell, MicroCell, ParamCell
from simcopy.models.meta import ModelDef
from simcopy.models.public import (
    EntityRunPub,
    ParamValuePub,
    RunPub,
    TableRunPub,
    TaskPub,
    TaskRunPub,
    WorksetPub,
)
from simcopy.selector import Selector

logger = logging.getLogger(__name__)

ValueOwner = Union[RunPub, WorksetPub]
P = TypeVar("P", RunPub, WorksetPub, TaskPub)


class Resolver(Protocol):
    """Natural-key lookup of destination entities."""

    def resolve_model(self, digest: str, name: str = "") -> Optional[int]: ...

    def resolve_run(
        self, model_id: int, digest: Optional[str] = None, name: Optional[str] = None
    ) -> Optional[int]: ...

    def resolve_workset(self, model_id: int, name: str) -> Optional[int]: ...

    def resolve_task(self, model_id: int, name: str) -> Optional[int]: ...


@dataclass
class TaskLinks:
    """Task body and run history translated into destination ids."""

    set_ids: list[int] = field(default_factory=list)
    task_runs: list[tuple[TaskRunPub, list[tuple[int, int]]]] = field(default_factory=list)


def _select(kind: str, items: Sequence[P], sel: Selector, source_kind: str) -> P:
    if sel.kind == "first":
        if items:
            return items[0]
    elif sel.kind == "last":
        if items:
            return items[-1]
    elif sel.kind == "id":
        if source_kind != "db":
            msg = f"{kind} cannot be selected by id from {source_kind} source, use name or digest"
            raise CopyError(msg)
        for item in items:
            if item.source_id == sel.entity_id:
                return item
    elif sel.kind == "digest":
        if kind != "run":
            msg = f"{kind} cannot be selected by digest"
            raise CopyError(msg)
        for item in items:
            if item.digest == sel.value:
                return item
    else:
        found = [item for item in items if item.name == sel.value]
        if len(found) > 1:
            logger.warning(
                "%s name %r is ambiguous: %d found, using the first one", kind, sel.value, len(found)
            )
        if found:
            return found[0]

    raise NotFoundError(kind, str(sel))


class Source(ABC):
    """Read side of a copy: one model in a database or a text directory."""

    kind: str

    @abstractmethod
    def model(self) -> ModelDef:
        """Model definition."""

    @abstractmethod
    def runs(self) -> list[RunPub]:
        """All model runs, in source order, including not completed runs."""

    @abstractmethod
    def worksets(self) -> list[WorksetPub]:
        """All model worksets, in source order, including writable worksets."""

    @abstractmethod
    def tasks(self) -> list[TaskPub]:
        """All modeling tasks, in source order."""

    @abstractmethod
    def param_values(self, owner: ValueOwner, param: ParamValuePub) -> Iterable[ParamCell]:
        """Parameter values of a run or workset."""

    @abstractmethod
    def table_acc(self, run: RunPub, table: TableRunPub) -> Optional[Iterable[AccCell]]:
        """Output table accumulators of a run, None if source does not have it."""

    @abstractmethod
    def table_expr(self, run: RunPub, table: TableRunPub) -> Iterable[ExprCell]:
        """Output table expressions of a run."""

    @abstractmethod
    def microdata(self, run: RunPub, entity: EntityRunPub) -> Iterable[MicroCell]:
        """Microdata rows of a run entity."""

    def close(self) -> None:  # noqa: B027
        """Release source resources."""

    def select_run(self, sel: Selector) -> RunPub:
        return _select("run", self.runs(), sel, self.kind)

    def select_workset(self, sel: Selector) -> WorksetPub:
        return _select("workset", self.worksets(), sel, self.kind)

    def select_task(self, sel: Selector) -> TaskPub:
        return _select("task", self.tasks(), sel, self.kind)


class Target(ABC):
    """Write side of a copy: a database or an output text directory."""

    kind: str
    resolver: Resolver

    @abstractmethod
    def create_model(self, model: ModelDef) -> int:
        """Insert model definition, return destination model id."""

    # --- runs ---

    @abstractmethod
    def create_run(self, model_id: int, run: RunPub) -> int:
        """Create run metadata, return destination run id."""

    @abstractmethod
    def write_run_param(self, run_id: int, run: RunPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        """Write all values of one run parameter."""

    @abstractmethod
    def write_run_table(
        self,
        run_id: int,
        run: RunPub,
        table: TableRunPub,
        acc_cells: Optional[list[AccCell]],
        expr_cells: list[ExprCell],
    ) -> None:
        """Write output table values, accumulators are None if excluded."""

    @abstractmethod
    def write_run_microdata(
        self, run_id: int, run: RunPub, entity: EntityRunPub, cells: list[MicroCell]
    ) -> None:
        """Write microdata rows of one entity."""

    @abstractmethod
    def finalize_run(self, run_id: int, run: RunPub) -> None:
        """Assign digests which are not known yet and publish the run."""

    @abstractmethod
    def delete_run(self, run_id: int) -> None:
        """Delete run created by this copy, compensating a failed copy."""

    # --- worksets ---

    @abstractmethod
    def create_workset(self, model_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> int:
        """Create writable workset metadata, return destination set id."""

    @abstractmethod
    def reset_workset(self, set_id: int, ws: WorksetPub, base_run_id: Optional[int]) -> None:
        """Make existing workset writable, delete its values and replace its metadata."""

    @abstractmethod
    def write_workset_param(self, set_id: int, ws: WorksetPub, param: ParamValuePub, cells: list[ParamCell]) -> None:
        """Write all values of one workset parameter."""

    @abstractmethod
    def finalize_workset(self, set_id: int, ws: WorksetPub) -> None:
        """Set workset read-only status to its source value and publish it."""

    @abstractmethod
    def delete_workset(self, set_id: int) -> None:
        """Delete workset created by this copy, compensating a failed copy."""

    # --- tasks ---

    @abstractmethod
    def task_run_keys(self, task_id: int) -> set[tuple[str, str]]:
        """(name, create time) of task runs already in destination task history."""

    @abstractmethod
    def write_task(self, model_id: int, task_id: Optional[int], task: TaskPub, links: TaskLinks) -> int:
        """Create or update task, append new task runs, return destination task id."""

    def close(self) -> None:  # noqa: B027
        """Release destination resources."""
