# Copyright (c) Syntropy Systems
"""Modeling task copier."""

from __future__ import annotations

import logging
from typing import Optional

from simcopy.copier.base import CopyOutcome, EntityCopier
from simcopy.models.public import TaskPub, TaskRunRef, TaskRunSetPub
from simcopy.stores.base import TaskLinks

logger = logging.getLogger(__name__)


class TaskCopier(EntityCopier):
    """Copy task body and run history.

    The task itself is always written. Worksets and runs which cannot be
    found in destination are dropped from the copy with a warning.
    """

    kind = "task"

    def copy(self, model_id: int, task: TaskPub) -> CopyOutcome:
        task_id = self.resolver.resolve_task(model_id, task.name)
        links = TaskLinks()

        body: list[str] = []
        for name in task.sets:
            set_id = self._set_id(model_id, name, task.set_source_ids.get(name))
            if set_id is None:
                self.warn(f"task copy incomplete: task {task.name}: workset not found: {name}")
                continue
            if set_id not in links.set_ids:
                body.append(name)
                links.set_ids.append(set_id)

        seen = self.target.task_run_keys(task_id) if task_id is not None else set()
        for tr in task.task_runs:
            key = (tr.name, tr.create_dt)
            if key in seen:
                logger.debug("task %s: task run %s %s already exists", task.name, tr.name, tr.create_dt)
                continue
            seen.add(key)

            pairs: list[TaskRunSetPub] = []
            ids: list[tuple[int, int]] = []
            for pair in tr.pairs:
                set_id = self._set_id(model_id, pair.set_name, pair.set_source_id)
                run_id = self._run_id(model_id, pair.run)
                if set_id is None or run_id is None:
                    missing = f"workset {pair.set_name}" if set_id is None else f"run {pair.run.name}"
                    self.warn(
                        f"task run history incomplete: task {task.name} task run {tr.name}:"
                        f" {missing} not found"
                    )
                    continue
                if any(s == set_id for s, _ in ids):
                    continue
                pairs.append(pair)
                ids.append((set_id, run_id))

            links.task_runs.append((tr.model_copy(update={"pairs": pairs}), ids))

        existed = task_id is not None and not links.task_runs
        task_id = self.target.write_task(
            model_id, task_id, task.model_copy(update={"sets": body, "task_runs": []}), links
        )

        if task.source_id is not None:
            self.session.tasks.put(task.source_id, task_id)
        logger.info("task %s copied", task.name)
        return CopyOutcome(self.kind, task.name, task_id, already_exists=existed)

    def _set_id(self, model_id: int, name: str, source_id: Optional[int]) -> Optional[int]:
        set_id = self.session.worksets.get(source_id)
        if set_id is None:
            set_id = self.resolver.resolve_workset(model_id, name)
        return set_id

    def _run_id(self, model_id: int, run: TaskRunRef) -> Optional[int]:
        run_id = self.session.runs.get(run.source_id)
        if run_id is None:
            run_id = self.resolver.resolve_run(model_id, run.digest, run.name)
        return run_id
