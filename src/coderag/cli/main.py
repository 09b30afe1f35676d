"""coderag CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from coderag.cli.index import index_cmd
from coderag.cli.init import init_cmd
from coderag.cli.projects import metrics_cmd, projects_app
from coderag.cli.query import query_cmd, search_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("coderag")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"coderag {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )
    if not verbose:
        # quiet LiteLLM retry chatter
        logging.getLogger("LiteLLM").setLevel(logging.ERROR)


app = typer.Typer(
    name="coderag",
    help=(
        "coderag — semantic search and grounded answers over your source code.\n\n"
        "  coderag index PATH    Chunk, embed and store a source tree.\n"
        "  coderag query TEXT    Ask a question; answers cite file and line ranges."
    ),
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """coderag — semantic search and grounded answers over your source code."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("query")(query_cmd)
app.command("search")(search_cmd)
app.command("metrics")(metrics_cmd)
app.add_typer(projects_app, name="projects")


@app.command("version")
def version_cmd() -> None:
    """Show the installed coderag version."""
    typer.echo(f"coderag {_installed_version()}")


if __name__ == "__main__":
    app()
