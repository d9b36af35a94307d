# Copyright (c) Syntropy Systems
"""Throttled progress logging for long copy loops."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional


class ProgressLog:
    """Log "done of total" no more often than every ``period`` seconds.

    The first and last steps are always logged. A period of zero or less
    disables intermediate lines.
    """

    def __init__(
        self,
        logger: logging.Logger,
        what: str,
        total: int,
        period: float = 5.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.logger = logger
        self.what = what
        self.total = total
        self.period = period
        self._clock = clock or time.monotonic
        self._last = self._clock()
        self.done = 0

    def step(self, item: str = "") -> None:
        self.done += 1
        now = self._clock()
        is_edge = self.done in (1, self.total)
        if is_edge or (self.period > 0 and now - self._last >= self.period):
            self._last = now
            self.logger.info("%s %d of %d: %s", self.what, self.done, self.total, item)
