# Copyright (c) Syntropy Systems
"""Main CLI entry point for stocksim."""
from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from stocksim.cli.run import run
from stocksim.cli.status import status

app = typer.Typer(
    name="stocksim",
    help=(
        "Monte-Carlo simulation experiments for stock-assessment models. "
        "Mutate operating models, sample observations, fit estimation models."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug logging",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(run)
_ = app.command()(status)


if __name__ == "__main__":
    app()
