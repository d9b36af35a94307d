# Copyright (c) Syntropy Systems
"""simcopy list command."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from simcopy.db import open_db
from simcopy.db.model import find_model, list_models as db_list_models
from simcopy.db.run import list_runs
from simcopy.db.task import list_task_runs, list_tasks
from simcopy.db.workset import list_worksets
from simcopy.errors import CopyError

console = Console()

_STATUS_STYLE = {
    "running": "blue",
    "success": "green",
    "error": "red",
    "exited": "yellow",
}


def list_models(
    db_path: Path = typer.Argument(..., help="Model database"),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Show runs, input sets and tasks of this model",
    ),
) -> None:
    """List models of the database.

    With --model also lists model runs, input sets and modeling tasks.
    """
    try:
        conn = open_db(db_path)
    except (FileNotFoundError, CopyError, sqlite3.Error) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    try:
        if model is None:
            models = db_list_models(conn)
            if not models:
                console.print("[dim]No models found[/dim]")
                return

            table = Table(show_header=True, header_style="bold")
            table.add_column("ID", style="dim")
            table.add_column("Name")
            table.add_column("Digest")
            table.add_column("Version")
            table.add_column("Created")
            for m in models:
                table.add_row(
                    str(m.model_id), m.model_name, m.model_digest, m.model_version or "-", m.create_dt or "-"
                )
            console.print(table)
            return

        rec = find_model(conn, name=model)
        if rec is None:
            console.print(f"[red]Error:[/red] model not found: {model}")
            raise typer.Exit(1)

        runs = list_runs(conn, rec.model_id)
        run_table = Table(title="Model runs", show_header=True, header_style="bold")
        run_table.add_column("ID", style="dim")
        run_table.add_column("Name")
        run_table.add_column("Status")
        run_table.add_column("Sub-values")
        run_table.add_column("Digest")
        for r in runs:
            style = _STATUS_STYLE.get(r.status, "white")
            run_table.add_row(
                str(r.run_id),
                r.run_name,
                f"[{style}]{r.status}[/{style}]",
                f"{r.sub_completed}/{r.sub_count}",
                r.run_digest or "-",
            )

        sets = list_worksets(conn, rec.model_id)
        set_table = Table(title="Input sets", show_header=True, header_style="bold")
        set_table.add_column("ID", style="dim")
        set_table.add_column("Name")
        set_table.add_column("Read-only")
        set_table.add_column("Updated")
        for ws in sets:
            set_table.add_row(str(ws.set_id), ws.set_name, "yes" if ws.is_readonly else "no", ws.update_dt or "-")

        tasks = list_tasks(conn, rec.model_id)
        task_table = Table(title="Modeling tasks", show_header=True, header_style="bold")
        task_table.add_column("ID", style="dim")
        task_table.add_column("Name")
        task_table.add_column("Task runs")
        for t in tasks:
            task_table.add_row(str(t.task_id), t.task_name, str(len(list_task_runs(conn, t.task_id))))
    finally:
        conn.close()

    console.print(f"\n[bold]Model {rec.model_name}[/bold] [dim]{rec.model_digest}[/dim]")
    for table in (run_table, set_table, task_table):
        if table.row_count:
            console.print(table)
        else:
            console.print(f"[dim]No {str(table.title).lower()} found[/dim]")
