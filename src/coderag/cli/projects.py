"""coderag projects / metrics — inspect and delete indexed projects."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from coderag.cli.errors import handle_errors
from coderag.cli.services import open_services

console = Console()

projects_app = typer.Typer(help="List, inspect and delete indexed projects.", no_args_is_help=True)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to .coderag.db.")]

_STATUS_STYLE = {
    "ready": "green",
    "indexing": "yellow",
    "error": "red",
    "pending": "dim",
}


def _fmt_time(ts: int | None) -> str:
    if ts is None:
        return "—"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _status(status: str) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status}[/]"


@projects_app.command("list")
def list_cmd(db: _DbOption = None) -> None:
    """List indexed projects, newest first."""
    with handle_errors(console), open_services(console, db) as svc:
        projects = svc.projects.list_projects()

    if not projects:
        console.print("[dim]No projects indexed yet.[/]  Run:  coderag index PATH")
        return

    table = Table("ID", "Name", "Status", "Files", "Last indexed")
    for p in projects:
        table.add_row(
            p.id, escape(p.name), _status(p.status), str(p.file_count), _fmt_time(p.last_indexed_at)
        )
    console.print(table)


@projects_app.command("show")
def show_cmd(
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    db: _DbOption = None,
) -> None:
    """Show one project with live file and chunk counts."""
    with handle_errors(console), open_services(console, db) as svc:
        details = svc.projects.get_project(project_id)
        progress = svc.projects.index_progress(project_id)

    p = details.project
    lines = [
        f"Name:          [bold]{escape(p.name)}[/]",
        f"Path:          {escape(p.path)}",
        f"Status:        {_status(p.status)}",
        f"Files:         {details.files} stored / {p.file_count} recorded",
        f"Chunks:        {details.chunks}",
        f"Last indexed:  {_fmt_time(p.last_indexed_at)}",
    ]
    if progress.in_progress:
        lines.append("[yellow]Indexing in progress.[/] If it crashed: coderag index PATH --force")
    console.print(Panel("\n".join(lines), title=f"[bold]Project {p.id}[/]", expand=False))


@projects_app.command("files")
def files_cmd(
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    db: _DbOption = None,
) -> None:
    """List a project's indexed files."""
    with handle_errors(console), open_services(console, db) as svc:
        files = svc.projects.list_files(project_id)

    if not files:
        console.print("[dim]No files indexed for this project.[/]")
        return
    table = Table("Path", "Chunks", "Hash")
    for f in files:
        table.add_row(escape(f.relative_path), str(f.chunk_count), f.content_hash[:12])
    console.print(table)


@projects_app.command("delete")
def delete_cmd(
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: _DbOption = None,
) -> None:
    """Delete a project, its files, chunks, vectors and conversations."""
    with handle_errors(console), open_services(console, db) as svc:
        details = svc.projects.get_project(project_id)
        console.print(f"\nDelete project: [bold]{escape(details.project.name)}[/]")
        console.print(f"  Files: {details.files}  |  Chunks: {details.chunks}")

        if not yes and not typer.confirm("Confirm deletion?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        removed = svc.projects.delete_project(project_id)

    console.print(f"\n[green]✓[/] Deleted: {escape(details.project.name)}")
    console.print(f"  {details.chunks} chunks, {removed} vectors removed")


def metrics_cmd(db: _DbOption = None) -> None:
    """Show index size and today's quota usage."""
    with handle_errors(console), open_services(console, db) as svc:
        m = svc.projects.metrics()

    console.print(
        Panel(
            f"Projects: [bold]{m['projects']}[/]  |  "
            f"Files: [bold]{m['files']:,}[/]  |  "
            f"Chunks: [bold]{m['chunks']:,}[/]  |  "
            f"Vectors: [bold]{m['vectors']:,}[/]  |  "
            f"Conversations: [bold]{m['conversations']}[/]",
            title="[bold]Index[/]",
            expand=False,
        )
    )
    table = Table("Capability", "Used today", "Limit", "Remaining", title="Daily quota")
    for capability, usage in m["usage"].items():
        table.add_row(
            capability, str(usage["used"]), str(usage["limit"]), str(usage["remaining"])
        )
    console.print(table)
