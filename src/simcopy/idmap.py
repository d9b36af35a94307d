# Copyright (c) Syntropy Systems
"""Source id to destination id maps of one copy session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


class IdMap:
    """Map source-local ids of one entity kind to destination-local ids."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._ids: dict[int, int] = {}

    def put(self, src_id: int, dst_id: int) -> None:
        prev = self._ids.get(src_id)
        if prev is not None and prev != dst_id:
            msg = f"{self.kind} id {src_id} already mapped to {prev}, cannot map to {dst_id}"
            raise ValueError(msg)
        self._ids[src_id] = dst_id

    def get(self, src_id: Optional[int]) -> Optional[int]:
        if src_id is None:
            return None
        return self._ids.get(src_id)

    def __contains__(self, src_id: object) -> bool:
        return src_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"IdMap({self.kind!r}, {len(self._ids)} ids)"


@dataclass
class CopySession:
    """State of one top-level copy invocation, never shared or persisted."""

    runs: IdMap = field(default_factory=lambda: IdMap("run"))
    worksets: IdMap = field(default_factory=lambda: IdMap("workset"))
    tasks: IdMap = field(default_factory=lambda: IdMap("task"))
    warnings: list[str] = field(default_factory=list)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)
