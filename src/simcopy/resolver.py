# Copyright (c) Syntropy Systems
"""Natural-key lookup of entities in the destination database.

Lookups are always by name and digest, never by numeric id: a numeric id
of the source database is meaningless at the destination.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from simcopy.db.model import find_model
from simcopy.db.run import find_runs_by_digest, find_runs_by_name
from simcopy.db.task import find_task_by_name
from simcopy.db.workset import find_workset_by_name

logger = logging.getLogger(__name__)


class NaturalKeyResolver:
    """Resolve model, run, workset and task natural keys to destination ids."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def resolve_model(self, digest: str, name: str = "") -> Optional[int]:
        """Find model by digest, by name only if digest is empty."""
        if not digest and not name:
            return None
        if digest:
            m = find_model(self.conn, digest=digest)
        else:
            m = find_model(self.conn, name=name)
        return m.model_id if m is not None else None

    def resolve_run(
        self,
        model_id: int,
        digest: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[int]:
        """Find run by digest or, if digest is empty, by name.

        Run names are not unique. If more than one run has the same name
        the first one, by run id, is returned and a warning is logged.
        """
        if digest:
            runs = find_runs_by_digest(self.conn, model_id, digest)
            return runs[0].run_id if runs else None

        if not name:
            return None

        runs = find_runs_by_name(self.conn, model_id, name)
        if not runs:
            return None
        if len(runs) > 1:
            logger.warning(
                "run name %r is ambiguous: %d runs found, using run id %d",
                name,
                len(runs),
                runs[0].run_id,
            )
        return runs[0].run_id

    def resolve_workset(self, model_id: int, name: str) -> Optional[int]:
        ws = find_workset_by_name(self.conn, model_id, name)
        return ws.set_id if ws is not None else None

    def resolve_task(self, model_id: int, name: str) -> Optional[int]:
        task = find_task_by_name(self.conn, model_id, name)
        return task.task_id if task is not None else None
