# Copyright (c) Syntropy Systems
"""Entity copiers: model, run, workset and task."""

from .base import CopyOptions, CopyOutcome, EntityCopier, compensating
from .model import ModelCopier
from .run import RunCopier
from .task import TaskCopier
from .workset import WorksetCopier

__all__ = [
    "CopyOptions",
    "CopyOutcome",
    "EntityCopier",
    "ModelCopier",
    "RunCopier",
    "TaskCopier",
    "WorksetCopier",
    "compensating",
]
