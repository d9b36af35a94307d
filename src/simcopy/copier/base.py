# Copyright (c) Syntropy Systems
"""Shared parts of entity copiers."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from simcopy.errors import IncompleteDataError
from simcopy.idmap import CopySession
from simcopy.models.public import ParamValuePub
from simcopy.stores.base import Resolver, Source, Target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CopyOptions:
    """Options of one copy invocation."""

    # copy output table accumulators, expressions are always copied
    include_accumulators: bool = True

    # seconds between progress log lines
    log_period: float = 5.0


@dataclass
class CopyOutcome:
    """Result of copying one entity."""

    kind: str
    name: str
    dst_id: int
    already_exists: bool = False


@contextmanager
def compensating(undo: Callable[[], None], what: str) -> Iterator[None]:
    """Undo a just created destination entity if anything inside the block fails.

    The original error is always re-raised, an error of the undo action is
    logged only.
    """
    try:
        yield
    except Exception:
        logger.warning("%s: copy failed, deleting partial copy", what)
        try:
            undo()
        except Exception:
            logger.exception("%s: unable to delete partial copy", what)
        raise


class EntityCopier:
    """Copy one entity kind from source to destination inside of a copy session."""

    kind = ""

    def __init__(
        self,
        source: Source,
        target: Target,
        session: CopySession,
        options: Optional[CopyOptions] = None,
    ) -> None:
        self.source = source
        self.target = target
        self.session = session
        self.options = options or CopyOptions()

    @property
    def resolver(self) -> Resolver:
        return self.target.resolver

    def warn(self, msg: str) -> None:
        """Report unresolved reference: log it and keep it for the copy report."""
        logger.warning(msg)
        self.session.warn(msg)


def check_param_values(owner: str, param: ParamValuePub, sub_ids: set[int]) -> None:
    """Raise IncompleteDataError if parameter has no values or not all sub-values."""
    if not sub_ids:
        msg = f"{owner}: parameter {param.name} values not found"
        raise IncompleteDataError(msg)
    if len(sub_ids) != param.sub_count:
        msg = (
            f"{owner}: parameter {param.name} must have {param.sub_count}"
            f" sub-value(s), found: {len(sub_ids)}"
        )
        raise IncompleteDataError(msg)
