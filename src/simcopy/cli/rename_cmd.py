# Copyright (c) Syntropy Systems
"""simcopy rename command."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import typer

from simcopy import manage
from simcopy.cli.options import console, fail, selector, setup_logging
from simcopy.db import open_db
from simcopy.errors import CopyError
from simcopy.stores import DbSource


def rename(
    db_path: Path = typer.Argument(..., help="Model database"),
    new_name: str = typer.Option(..., "--new-name", "-n", help="New name"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    model_digest: Optional[str] = typer.Option(None, "--model-digest", help="Model digest"),
    run: Optional[str] = typer.Option(None, "--run", help="Model run name"),
    run_digest: Optional[str] = typer.Option(None, "--run-digest", help="Model run digest"),
    run_id: Optional[int] = typer.Option(None, "--run-id", help="Model run id"),
    first_run: bool = typer.Option(False, "--first-run", help="First model run"),
    last_run: bool = typer.Option(False, "--last-run", help="Last model run"),
    set_name: Optional[str] = typer.Option(None, "--set", "-s", help="Input set name"),
    set_id: Optional[int] = typer.Option(None, "--set-id", help="Input set id"),
    task: Optional[str] = typer.Option(None, "--task", help="Modeling task name"),
    task_id: Optional[int] = typer.Option(None, "--task-id", help="Modeling task id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages"),
) -> None:
    """Rename model run, input set or modeling task.

    Examples:
        simcopy rename m.sqlite -m modelOne --run Default --new-name Base
        simcopy rename m.sqlite -m modelOne --task taskOne -n scenarios

    """
    setup_logging(verbose)

    if not model and not model_digest:
        fail("model name or model digest required, use --model or --model-digest")

    run_sel = selector("run", run, run_digest, run_id, first_run, last_run)
    set_sel = selector("input set", set_name, entity_id=set_id)
    task_sel = selector("task", task, entity_id=task_id)
    selected = [s for s in (run_sel, set_sel, task_sel) if s is not None]
    if len(selected) != 1:
        fail("select one model run, input set or modeling task to rename")

    try:
        conn = open_db(db_path)
    except (FileNotFoundError, CopyError, sqlite3.Error) as e:
        fail(str(e))

    try:
        source = DbSource(conn, model or "", model_digest or "")
        if run_sel is not None:
            renamed = f"model run {manage.rename_run(source, run_sel, new_name).name}"
        elif set_sel is not None:
            renamed = f"input set {manage.rename_workset(source, set_sel, new_name).name}"
        else:
            renamed = f"modeling task {manage.rename_task(source, selected[0], new_name).name}"
    except (CopyError, ValueError, sqlite3.Error) as e:
        fail(str(e))
    finally:
        conn.close()

    console.print(f"[green]Renamed {renamed} into {new_name.strip()}[/green]")
