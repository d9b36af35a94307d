# Copyright (c) Syntropy Systems
"""Model run copier."""

from __future__ import annotations

import logging

from simcopy.copier.base import CopyOutcome, EntityCopier, check_param_values, compensating
from simcopy.errors import IncompleteDataError, NotEligibleError
from simcopy.models.public import RunPub, is_run_completed
from simcopy.progress import ProgressLog

logger = logging.getLogger(__name__)


class RunCopier(EntityCopier):
    """Copy completed model run with all parameters, output tables and microdata."""

    kind = "run"

    def check(self, run: RunPub) -> None:
        """Raise if run cannot be copied: not completed or parameter(s) missing."""
        if not is_run_completed(run.status):
            msg = f"run {run.name} is not completed, status: {run.status}"
            raise NotEligibleError(msg)

        listed = {p.name for p in run.params}
        missing = [p.name for p in self.source.model().params if p.name not in listed]
        if missing:
            msg = f"run {run.name}: parameter values not found: {', '.join(missing)}"
            raise IncompleteDataError(msg)

    def copy(self, model_id: int, run: RunPub) -> CopyOutcome:
        self.check(run)

        run_id = self.resolver.resolve_run(model_id, run.digest, run.name)
        if run_id is not None:
            logger.info("run %s %s already exists", run.name, run.digest)
            self._map(run, run_id)
            return CopyOutcome(self.kind, run.name, run_id, already_exists=True)

        run_id = self.target.create_run(model_id, run)
        with compensating(lambda: self.target.delete_run(run_id), f"run {run.name}"):
            self._hydrate(run_id, run)
            self.target.finalize_run(run_id, run)

        self._map(run, run_id)
        logger.info("run %s copied", run.name)
        return CopyOutcome(self.kind, run.name, run_id)

    def _map(self, run: RunPub, run_id: int) -> None:
        if run.source_id is not None:
            self.session.runs.put(run.source_id, run_id)

    def _hydrate(self, run_id: int, run: RunPub) -> None:
        progress = ProgressLog(
            logger,
            f"run {run.name}",
            len(run.params) + len(run.tables) + len(run.entities),
            self.options.log_period,
        )

        for param in run.params:
            cells = list(self.source.param_values(run, param))
            check_param_values(f"run {run.name}", param, {c.sub_id for c in cells})
            self.target.write_run_param(run_id, run, param, cells)
            progress.step(f"parameter {param.name}")

        for table in run.tables:
            expr_cells = list(self.source.table_expr(run, table))
            acc_cells = None
            if self.options.include_accumulators:
                acc = self.source.table_acc(run, table)
                acc_cells = list(acc) if acc is not None else None
            self.target.write_run_table(run_id, run, table, acc_cells, expr_cells)
            progress.step(f"output table {table.name}")

        for entity in run.entities:
            cells = list(self.source.microdata(run, entity))
            self.target.write_run_microdata(run_id, run, entity, cells)
            progress.step(f"microdata {entity.name}")

