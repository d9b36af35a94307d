# Copyright (c) Syntropy Systems
"""Entity selectors: how the caller names a run, workset or task."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

SelectorKind = Literal["name", "digest", "id", "first", "last"]


@dataclass(frozen=True)
class Selector:
    """Select one entity of the source model.

    ``id`` is a source-local numeric id, it is accepted only when the
    source is a database. ``first`` and ``last`` are by source order.
    """

    kind: SelectorKind
    value: str = ""

    @classmethod
    def by_name(cls, name: str) -> Selector:
        return cls("name", name)

    @classmethod
    def by_digest(cls, digest: str) -> Selector:
        return cls("digest", digest)

    @classmethod
    def by_id(cls, entity_id: int) -> Selector:
        return cls("id", str(entity_id))

    @classmethod
    def first(cls) -> Selector:
        return cls("first")

    @classmethod
    def last(cls) -> Selector:
        return cls("last")

    @property
    def entity_id(self) -> Optional[int]:
        if self.kind != "id":
            return None
        return int(self.value)

    def __str__(self) -> str:
        if self.kind in ("first", "last"):
            return self.kind
        return f"{self.kind} {self.value}"
