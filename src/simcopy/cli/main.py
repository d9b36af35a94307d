# Copyright (c) Syntropy Systems
"""Main CLI entry point for simcopy."""

import typer

from simcopy.cli.copy_cmd import copy
from simcopy.cli.delete_cmd import delete
from simcopy.cli.init_cmd import init
from simcopy.cli.list_cmd import list_models
from simcopy.cli.rename_cmd import rename

app = typer.Typer(
    name="simcopy",
    help=(
        "Copy simulation models, model runs, input sets and modeling tasks "
        "between database and text files, delete or rename them in database."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(copy)
_ = app.command(name="list")(list_models)
_ = app.command()(delete)
_ = app.command()(rename)


if __name__ == "__main__":
    app()
