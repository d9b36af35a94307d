# Copyright (c) Syntropy Systems
"""Workset copier."""

from __future__ import annotations

import logging
from typing import Optional

from simcopy.copier.base import CopyOutcome, EntityCopier, check_param_values, compensating
from simcopy.errors import NotEligibleError
from simcopy.models.public import WorksetPub
from simcopy.progress import ProgressLog

logger = logging.getLogger(__name__)


class WorksetCopier(EntityCopier):
    """Copy read-only workset, replacing values of a same-named destination workset.

    Workset is written as writable and becomes read-only only after all
    parameter values are written.
    """

    kind = "workset"

    def copy(self, model_id: int, ws: WorksetPub) -> CopyOutcome:
        if not ws.is_readonly:
            msg = f"workset {ws.name} is not read-only"
            raise NotEligibleError(msg)

        base_run_id = self._base_run(model_id, ws)

        set_id = self.resolver.resolve_workset(model_id, ws.name)
        if set_id is None:
            created = self.target.create_workset(model_id, ws, base_run_id)
            with compensating(lambda: self.target.delete_workset(created), f"workset {ws.name}"):
                self._hydrate(created, ws)
                self.target.finalize_workset(created, ws)
            set_id = created
        else:
            logger.info("workset %s already exists, replacing its values", ws.name)
            self.target.reset_workset(set_id, ws, base_run_id)
            try:
                self._hydrate(set_id, ws)
            except Exception:
                logger.warning("workset %s: copy failed, workset left writable", ws.name)
                raise
            self.target.finalize_workset(set_id, ws)

        if ws.source_id is not None:
            self.session.worksets.put(ws.source_id, set_id)
        logger.info("workset %s copied", ws.name)
        return CopyOutcome(self.kind, ws.name, set_id)

    def _base_run(self, model_id: int, ws: WorksetPub) -> Optional[int]:
        if not ws.base_run_digest and not ws.base_run_name:
            logger.debug("workset %s has no base run", ws.name)
            return None
        run_id = self.resolver.resolve_run(model_id, digest=ws.base_run_digest, name=ws.base_run_name)
        if run_id is None:
            self.warn(f"workset {ws.name}: base run not found: {ws.base_run_digest or ws.base_run_name}")
        return run_id

    def _hydrate(self, set_id: int, ws: WorksetPub) -> None:
        progress = ProgressLog(logger, f"workset {ws.name}", len(ws.params), self.options.log_period)

        for param in ws.params:
            cells = list(self.source.param_values(ws, param))
            check_param_values(f"workset {ws.name}", param, {c.sub_id for c in cells})
            self.target.write_workset_param(set_id, ws, param, cells)
            progress.step(f"parameter {param.name}")
