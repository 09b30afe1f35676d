"""coderag index — discover files under PATH and index them.

File discovery lives here, not in the core: the Indexer only ever sees
(relative POSIX path, text) pairs.
  - excluded directories are pruned from the walk, never entered
  - lock files and unknown extensions are never read
  - files that are not valid UTF-8 are skipped with a warning
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from coderag.cli.errors import EXIT_USER_ERROR, handle_errors
from coderag.cli.services import open_services, require_api_keys
from coderag.config import load_config
from coderag.ingest.filetypes import EXCLUDED_DIRS, should_index
from coderag.ingest.indexer import IndexRequest, IndexResult, SourceFile

logger = logging.getLogger(__name__)

console = Console()

_STAGE_LABELS = {
    "chunking": "Chunking…",
    "embedding": "Embedding…",
    "upserting": "Writing vectors…",
}


def index_cmd(
    path: Annotated[
        Path,
        typer.Argument(help="Project directory to index.", exists=True, file_okay=False),
    ],
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Project name (default: directory name)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Delete and rebuild the project's index."),
    ] = False,
    append: Annotated[
        bool,
        typer.Option("--append", help="Only add files whose path is not indexed yet."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .coderag.db (created if missing)."),
    ] = None,
) -> None:
    """Index a source tree for search and question answering."""
    with handle_errors(console):
        cfg = load_config()
        root = path.resolve()
        files = discover_files(root)
        if not files:
            console.print(f"[yellow]No indexable files found in:[/] {root}")
            raise typer.Exit(EXIT_USER_ERROR)
        console.print(f"[bold]→ {root}[/]  ({len(files)} files)")

        require_api_keys(console, cfg.embedding.model)
        request = IndexRequest(
            project_path=root.as_posix(),
            files=files,
            project_name=name,
            force=force,
            append=append,
        )
        with open_services(console, db, must_exist=False, cfg=cfg) as svc:
            result = _run_with_progress(svc.indexer, request)

    _print_result(result)
    if result.status == "error":
        raise typer.Exit(EXIT_USER_ERROR)


def discover_files(root: Path) -> list[SourceFile]:
    """Read every indexable UTF-8 file under *root*, sorted by relative path."""
    files: list[SourceFile] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIRS]
        for name in filenames:
            entry = Path(dirpath) / name
            rel = entry.relative_to(root).as_posix()
            if not should_index(rel) or not entry.is_file():
                continue
            try:
                content = entry.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                logger.warning("Skipping non-UTF-8 file: %s", rel)
                continue
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", rel, exc)
                continue
            files.append(SourceFile(path=rel, content=content))
    files.sort(key=lambda f: f.path)
    return files


def _run_with_progress(indexer, request: IndexRequest) -> IndexResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        tasks: dict[str, int] = {}

        def _on_progress(stage: str, done: int, total: int) -> None:
            if stage not in tasks:
                tasks[stage] = prog.add_task(_STAGE_LABELS.get(stage, stage), total=total)
            prog.update(tasks[stage], completed=done, total=total)

        return indexer.index(request, on_progress=_on_progress)


def _print_result(result: IndexResult) -> None:
    if result.status == "skipped":
        console.print(f"  [dim]↷ {result.message}[/]")
        return

    mark = "[green]✓[/]" if result.status == "complete" else "[red]✗[/]"
    console.print(f"  {mark} {result.message}")
    console.print(
        f"  Vectors: {result.vectors_inserted} stored"
        + (f"  |  Skipped files: {result.skipped_files}" if result.skipped_files else "")
    )
    console.print(f"  [dim]Project id: {result.project_id}[/]")
    if result.error:
        console.print(f"  [red]Errors:[/] {result.error}")
        if result.quota_exceeded:
            console.print("  Re-run with --force once the daily quota resets.")
