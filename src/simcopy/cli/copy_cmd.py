# Copyright (c) Syntropy Systems
"""simcopy copy command."""
from __future__ import annotations

import sqlite3
import zipfile
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

import typer
import yaml

from simcopy.cli.options import console, fail, selector, setup_logging
from simcopy.config import CopyConfig, load_config
from simcopy.copier import CopyOptions
from simcopy.db import open_db
from simcopy.errors import CopyError
from simcopy.orchestrator import CopyOrchestrator, CopyReport
from simcopy.stores import DbSource, DbTarget, Source, Target, TextSource, TextTarget


DIRECTIONS = ("text", "db", "db2db")


def _apply_overrides(
    cfg: CopyConfig,
    *,
    use_zip: bool,
    double_format: Optional[str],
    encoding: Optional[str],
    id_csv: bool,
    no_accumulators: bool,
    utf8_bom: bool,
) -> None:
    if use_zip:
        cfg.zip = True
    if double_format:
        cfg.double_format = double_format
    if encoding:
        cfg.encoding = encoding
    if id_csv:
        cfg.use_id_csv = True
    if no_accumulators:
        cfg.include_accumulators = False
    if utf8_bom:
        cfg.utf8_bom = True


def _open_stores(
    stack: ExitStack,
    cfg: CopyConfig,
    to: str,
    model: str,
    model_digest: str,
    db: Optional[Path],
    to_db: Optional[Path],
    input_dir: Optional[Path],
    output_dir: Optional[Path],
) -> tuple[Source, Target]:
    """Open source and destination of copy direction, register their cleanup on stack."""
    fmt = cfg.value_format()

    if db is None:
        fail("database path required, use --db")

    if to == "text":
        conn = open_db(db)
        stack.callback(conn.close)
        source: Source = DbSource(conn, model, model_digest)
        stack.callback(source.close)
        target: Target = TextTarget(output_dir or Path.cwd(), fmt, use_zip=cfg.zip)
        stack.callback(target.close)
        return source, target

    if to == "db":
        if not model:
            fail("model name required to read text directory, use --model")
        conn = open_db(to_db or db)
        stack.callback(conn.close)
        source = TextSource(input_dir or Path.cwd(), model, model_digest, fmt, use_zip=cfg.zip)
        stack.callback(source.close)
        target = DbTarget(conn)
        return source, target

    if to_db is None:
        fail("destination database path required, use --to-db")
    if db.resolve() == to_db.resolve():
        fail(f"source and destination must be different databases: {db}")

    src_conn = open_db(db)
    stack.callback(src_conn.close)
    dst_conn = open_db(to_db)
    stack.callback(dst_conn.close)
    source = DbSource(src_conn, model, model_digest)
    stack.callback(source.close)
    target = DbTarget(dst_conn)
    return source, target


def _print_report(report: CopyReport) -> None:
    for msg in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {msg}")
    console.print(f"[green]Copy {report.state.value}:[/green] {report.summary()}")


def copy(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    model_digest: Optional[str] = typer.Option(None, "--model-digest", help="Model digest"),
    to: str = typer.Option(
        "text",
        "--to",
        help="Copy direction: text (db to text), db (text to db), db2db (db to other db)",
    ),
    db: Optional[Path] = typer.Option(
        None, "--db", help="Model database: source, or destination of copy to db"
    ),
    to_db: Optional[Path] = typer.Option(None, "--to-db", help="Destination database"),
    run: Optional[str] = typer.Option(None, "--run", help="Model run name"),
    run_digest: Optional[str] = typer.Option(None, "--run-digest", help="Model run digest"),
    run_id: Optional[int] = typer.Option(None, "--run-id", help="Model run id, database source only"),
    first_run: bool = typer.Option(False, "--first-run", help="First model run"),
    last_run: bool = typer.Option(False, "--last-run", help="Last model run"),
    set_name: Optional[str] = typer.Option(None, "--set", "-s", help="Input set name"),
    set_id: Optional[int] = typer.Option(None, "--set-id", help="Input set id, database source only"),
    task: Optional[str] = typer.Option(None, "--task", help="Modeling task name"),
    task_id: Optional[int] = typer.Option(None, "--task-id", help="Modeling task id, database source only"),
    input_dir: Optional[Path] = typer.Option(None, "--input-dir", help="Input directory of text files"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Output directory of text files"),
    use_zip: bool = typer.Option(False, "--zip", help="Pack output into or unpack input from .zip"),
    double_format: Optional[str] = typer.Option(
        None, "--double-format", help="Format of float values in csv, e.g. %.15g"
    ),
    encoding: Optional[str] = typer.Option(None, "--encoding", help="Encoding of input csv files"),
    id_csv: bool = typer.Option(False, "--id-csv", help="Write enum ids instead of enum codes into csv"),
    no_accumulators: bool = typer.Option(
        False, "--no-accumulators", help="Do not copy output table accumulators"
    ),
    utf8_bom: bool = typer.Option(False, "--utf8-bom", help="Write utf-8 BOM into csv files"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages"),
) -> None:
    """Copy model, model run, input set or modeling task.

    Without a run, set or task selected the whole model is copied:
    all completed runs, all read-only input sets and all tasks.

    Examples:
        simcopy copy -m modelOne --db m.sqlite
        simcopy copy -m modelOne --db m.sqlite --run Default --zip
        simcopy copy -m modelOne --to db --db m.sqlite --input-dir out
        simcopy copy -m modelOne --to db2db --db m.sqlite --to-db copy.sqlite

    """
    setup_logging(verbose)

    if to not in DIRECTIONS:
        fail(f"invalid copy direction: {to}, expected one of: {', '.join(DIRECTIONS)}")
    if not model and not model_digest:
        fail("model name or model digest required, use --model or --model-digest")

    try:
        cfg = load_config(config)
    except (FileNotFoundError, yaml.YAMLError) as e:
        fail(f"unable to load config: {e}")
    _apply_overrides(
        cfg,
        use_zip=use_zip,
        double_format=double_format,
        encoding=encoding,
        id_csv=id_csv,
        no_accumulators=no_accumulators,
        utf8_bom=utf8_bom,
    )

    run_sel = selector("run", run, run_digest, run_id, first_run, last_run)
    set_sel = selector("input set", set_name, entity_id=set_id)
    task_sel = selector("task", task, entity_id=task_id)
    selected = [s for s in (run_sel, set_sel, task_sel) if s is not None]
    if len(selected) > 1:
        fail("only one of model run, input set or modeling task can be copied at a time")

    options = CopyOptions(include_accumulators=cfg.include_accumulators, log_period=cfg.log_period)

    with ExitStack() as stack:
        try:
            source, target = _open_stores(
                stack, cfg, to, model or "", model_digest or "", db, to_db, input_dir, output_dir
            )
            orchestrator = CopyOrchestrator(source, target, options)

            if run_sel is not None:
                report = orchestrator.copy_run(run_sel)
            elif set_sel is not None:
                report = orchestrator.copy_workset(set_sel)
            elif task_sel is not None:
                report = orchestrator.copy_task(task_sel)
            else:
                report = orchestrator.copy_model()
        except (CopyError, OSError, ValueError, sqlite3.Error, zipfile.BadZipFile) as e:
            fail(str(e))

    _print_report(report)
