# Copyright (c) Syntropy Systems
"""Exceptions raised by simcopy.

Every fatal condition is a ``CopyError`` so the CLI can report it and exit
with a non-zero status. Unresolved optional references are not errors:
they are reported as warnings on the ``CopyReport``.
"""

from __future__ import annotations


class CopyError(RuntimeError):
    """Base class for fatal copy errors."""


class NotFoundError(CopyError):
    """Requested entity does not exist in the source."""

    def __init__(self, kind: str, selector: str) -> None:
        self.kind = kind
        self.selector = selector
        super().__init__(f"{kind} not found: {selector}")


class SchemaMismatchError(CopyError):
    """Storage schema version or CSV header does not match what is expected."""


class IncompleteDataError(CopyError):
    """A required value set is missing (parameter values of a run or workset)."""


class NotEligibleError(CopyError):
    """Entity exists but cannot be copied: run not completed or workset not readonly."""


class ValueDecodeError(CopyError):
    """Malformed CSV row: wrong column count or unparsable value."""

    def __init__(self, name: str, row_index: int, reason: str) -> None:
        self.name = name
        self.row_index = row_index
        self.reason = reason
        super().__init__(f"{name}: invalid row {row_index}: {reason}")


class ValueEncodeError(CopyError):
    """Cell value cannot be written as CSV: string value equal to the NULL token."""

    def __init__(self, name: str, row_index: int, reason: str) -> None:
        self.name = name
        self.row_index = row_index
        self.reason = reason
        super().__init__(f"{name}: cannot write row {row_index}: {reason}")
