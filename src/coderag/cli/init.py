"""coderag init — create the database and config files for a workspace.

Creates (each only if missing):
  .coderag.db              — empty database with schema
  coderag.yaml             — per-project config, every section commented out
  ~/.coderag/config.yaml   — global model defaults (mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from coderag.cli.errors import handle_errors
from coderag.config import DEFAULT_DB_PATH, ensure_global_config
from coderag.db.connection import open_database

console = Console()

_PROJECT_CONFIG_TEMPLATE = """\
# coderag per-project configuration. Uncomment to override a default.
# API keys belong in environment variables, never in this file.

# database:
#   path: .coderag.db

# embedding:
#   model: openai/text-embedding-3-small
#   dimensions: 1536
#   daily_limit: 7000

# generation:
#   model: openai/gpt-4o-mini
#   daily_limit: 3000

# chunking:
#   max_tokens: 512
#   overlap_lines: 3

# retrieval:
#   top_k: 10
"""


def init_cmd(
    directory: Annotated[
        Path,
        typer.Argument(help="Workspace directory. Defaults to current directory."),
    ] = Path("."),
) -> None:
    """Create .coderag.db, coderag.yaml and the global config if missing."""
    with handle_errors(console):
        directory = directory.resolve()
        directory.mkdir(parents=True, exist_ok=True)

        db_path = directory / DEFAULT_DB_PATH
        existed = db_path.exists()
        open_database(db_path).close()
        _report(db_path, existed)

        cfg_path = directory / "coderag.yaml"
        existed = cfg_path.exists()
        if not existed:
            cfg_path.write_text(_PROJECT_CONFIG_TEMPLATE, encoding="utf-8")
        _report(cfg_path, existed)

        global_path = ensure_global_config()
        console.print(f"  [green]✓[/] {global_path}")

    console.print("\nNext:  coderag index PATH")


def _report(path: Path, existed: bool) -> None:
    if existed:
        console.print(f"  [dim]↷ {path.name} already exists[/]")
    else:
        console.print(f"  [green]✓[/] {path.name}")
