# Copyright (c) Syntropy Systems
"""Main CLI entry point for cdtbench."""

import typer

from cdtbench.cli.doctor import doctor
from cdtbench.cli.init_cmd import init
from cdtbench.cli.results_cmd import history, report
from cdtbench.cli.run_cmd import run
from cdtbench.cli.sweep import sweep

app = typer.Typer(
    name="cdtbench",
    help=(
        "Cache read benchmark for compression dictionary transport. "
        "Compare dictionary-compressed and plain brotli reads from the disk cache."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(run)
_ = app.command()(sweep)
_ = app.command()(report)
_ = app.command()(history)
_ = app.command()(doctor)


if __name__ == "__main__":
    app()
