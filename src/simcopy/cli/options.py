# Copyright (c) Syntropy Systems
"""Helpers shared by simcopy commands: error exit, logging and entity selection."""
from __future__ import annotations

import logging
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from simcopy.selector import Selector

console = Console()


def fail(msg: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {msg}")
    raise typer.Exit(1)


def setup_logging(verbose: bool) -> None:  # noqa: FBT001
    """Configure logging for CLI usage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(show_path=False)],
    )


def selector(
    kind: str,
    name: Optional[str] = None,
    digest: Optional[str] = None,
    entity_id: Optional[int] = None,
    first: bool = False,  # noqa: FBT001, FBT002
    last: bool = False,  # noqa: FBT001, FBT002
) -> Optional[Selector]:
    """Build selector from command line options, at most one option may be used."""
    found: list[Selector] = []
    if name:
        found.append(Selector.by_name(name))
    if digest:
        found.append(Selector.by_digest(digest))
    if entity_id is not None:
        found.append(Selector.by_id(entity_id))
    if first:
        found.append(Selector.first())
    if last:
        found.append(Selector.last())

    if len(found) > 1:
        fail(f"{kind} selected more than once: {', '.join(str(s) for s in found)}")
    return found[0] if found else None
