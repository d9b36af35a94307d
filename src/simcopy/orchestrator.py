# Copyright (c) Syntropy Systems
"""Copy orchestrator: copy model, runs, worksets and tasks in dependency order.

States of one copy invocation::

    INIT -> COPY_MODEL -> COPY_RUNS -> COPY_WORKSETS -> COPY_TASKS -> DONE
                 any state -> ABORT

Worksets follow runs so that base runs can be found, tasks follow both.
States may be skipped but never revisited. A failed copy is not resumed:
it must be started again, entities already copied are found and reused.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from simcopy.copier import (
    CopyOptions,
    CopyOutcome,
    ModelCopier,
    RunCopier,
    TaskCopier,
    WorksetCopier,
)
from simcopy.idmap import CopySession
from simcopy.models.public import RunPub, TaskPub, WorksetPub, is_run_completed
from simcopy.progress import ProgressLog
from simcopy.selector import Selector
from simcopy.stores.base import Source, Target

logger = logging.getLogger(__name__)


class CopyState(str, Enum):
    """State of copy invocation."""

    INIT = "init"
    COPY_MODEL = "copy_model"
    COPY_RUNS = "copy_runs"
    COPY_WORKSETS = "copy_worksets"
    COPY_TASKS = "copy_tasks"
    DONE = "done"
    ABORT = "abort"


_ORDER = [
    CopyState.INIT,
    CopyState.COPY_MODEL,
    CopyState.COPY_RUNS,
    CopyState.COPY_WORKSETS,
    CopyState.COPY_TASKS,
    CopyState.DONE,
]


@dataclass
class CopyReport:
    """Result of one copy invocation."""

    state: CopyState = CopyState.INIT
    copied: Counter[str] = field(default_factory=Counter)
    existing: Counter[str] = field(default_factory=Counter)
    warnings: list[str] = field(default_factory=list)

    def add(self, outcome: CopyOutcome) -> None:
        if outcome.already_exists:
            self.existing[outcome.kind] += 1
        else:
            self.copied[outcome.kind] += 1

    def summary(self) -> str:
        parts = []
        for kind in ("model", "run", "workset", "task"):
            if self.copied[kind] or self.existing[kind]:
                parts.append(f"{kind}: {self.copied[kind]} copied, {self.existing[kind]} already exist")
        return "; ".join(parts) or "nothing copied"


class CopyOrchestrator:
    """Copy whole model or one entity with everything it depends on."""

    def __init__(self, source: Source, target: Target, options: Optional[CopyOptions] = None) -> None:
        self.source = source
        self.target = target
        self.options = options or CopyOptions()
        self.state = CopyState.INIT
        self._report = CopyReport()
        self._session = CopySession()

    def _transition(self, state: CopyState) -> None:
        if state != CopyState.ABORT and _ORDER.index(state) <= _ORDER.index(self.state):
            msg = f"invalid copy state transition: {self.state.value} -> {state.value}"
            raise RuntimeError(msg)
        logger.debug("copy state %s -> %s", self.state.value, state.value)
        self.state = state
        self._report.state = state

    @contextmanager
    def _invocation(self) -> Iterator[CopyReport]:
        """One top-level copy: new session and report, DONE or ABORT at the end."""
        self.state = CopyState.INIT
        self._session = CopySession()
        self._report = CopyReport(warnings=self._session.warnings)
        try:
            yield self._report
        except Exception as e:
            logger.error("copy aborted in state %s: %s", self.state.value, e)
            self._transition(CopyState.ABORT)
            raise
        self._transition(CopyState.DONE)
        logger.info("copy done: %s", self._report.summary())

    def _copy_model(self) -> int:
        self._transition(CopyState.COPY_MODEL)
        outcome = ModelCopier(self.source, self.target, self._session, self.options).copy()
        self._report.add(outcome)
        return outcome.dst_id

    def _copy_runs(self, model_id: int, runs: list[RunPub]) -> None:
        self._transition(CopyState.COPY_RUNS)
        copier = RunCopier(self.source, self.target, self._session, self.options)
        progress = ProgressLog(logger, "run", len(runs), self.options.log_period)
        for run in runs:
            self._report.add(copier.copy(model_id, run))
            progress.step(run.name)

    def _copy_worksets(self, model_id: int, worksets: list[WorksetPub]) -> None:
        self._transition(CopyState.COPY_WORKSETS)
        copier = WorksetCopier(self.source, self.target, self._session, self.options)
        progress = ProgressLog(logger, "workset", len(worksets), self.options.log_period)
        for ws in worksets:
            self._report.add(copier.copy(model_id, ws))
            progress.step(ws.name)

    def _copy_tasks(self, model_id: int, tasks: list[TaskPub]) -> None:
        self._transition(CopyState.COPY_TASKS)
        copier = TaskCopier(self.source, self.target, self._session, self.options)
        for task in tasks:
            self._report.add(copier.copy(model_id, task))

    def copy_model(self) -> CopyReport:
        """Copy model with all completed runs, all read-only worksets and all tasks."""
        with self._invocation() as report:
            model_id = self._copy_model()

            runs = []
            for r in self.source.runs():
                if is_run_completed(r.status):
                    runs.append(r)
                else:
                    logger.info("run %s skipped, status: %s", r.name, r.status)
            self._copy_runs(model_id, runs)

            worksets = []
            for ws in self.source.worksets():
                if ws.is_readonly:
                    worksets.append(ws)
                else:
                    logger.info("workset %s skipped, it is not read-only", ws.name)
            self._copy_worksets(model_id, worksets)

            self._copy_tasks(model_id, self.source.tasks())
        return report

    def copy_run(self, sel: Selector) -> CopyReport:
        """Copy model and one model run."""
        with self._invocation() as report:
            run = self.source.select_run(sel)
            model_id = self._copy_model()
            self._copy_runs(model_id, [run])
        return report

    def copy_workset(self, sel: Selector) -> CopyReport:
        """Copy model and one workset, base run is not copied."""
        with self._invocation() as report:
            ws = self.source.select_workset(sel)
            model_id = self._copy_model()
            self._copy_worksets(model_id, [ws])
        return report

    def copy_task(self, sel: Selector) -> CopyReport:
        """Copy model, task, runs of task run history and worksets of task body and history."""
        with self._invocation() as report:
            task = self.source.select_task(sel)
            model_id = self._copy_model()

            run_ids = {p.run.source_id for tr in task.task_runs for p in tr.pairs}
            runs = []
            for r in self.source.runs():
                if r.source_id not in run_ids:
                    continue
                if is_run_completed(r.status):
                    runs.append(r)
                else:
                    logger.info("run %s skipped, status: %s", r.name, r.status)
            self._copy_runs(model_id, runs)

            set_names = set(task.sets) | {p.set_name for tr in task.task_runs for p in tr.pairs}
            worksets = []
            for ws in self.source.worksets():
                if ws.name not in set_names:
                    continue
                if ws.is_readonly:
                    worksets.append(ws)
                else:
                    logger.info("workset %s skipped, it is not read-only", ws.name)
            self._copy_worksets(model_id, worksets)

            self._copy_tasks(model_id, [task])
        return report
