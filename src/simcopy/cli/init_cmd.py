# Copyright (c) Syntropy Systems
"""simcopy init command."""

from pathlib import Path

import typer
from rich.console import Console

from simcopy.db import init_db

console = Console()


def init(
    db_path: Path = typer.Argument(
        ...,
        help="Path of the database file to create",
    ),
) -> None:
    """Create an empty model database."""
    if db_path.exists():
        console.print(f"[yellow]Already exists:[/yellow] {db_path}")
        return

    db_path.parent.mkdir(parents=True, exist_ok=True)
    init_db(db_path)

    console.print(f"[green]Initialized database:[/green] {db_path}")
