"""coderag query / search — ask questions about, or search, indexed code."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from coderag.cli.errors import handle_errors
from coderag.cli.services import open_services, require_api_keys
from coderag.config import load_config
from coderag.rag.retriever import NO_SEARCH_RESULTS

console = Console()


def query_cmd(
    text: Annotated[str, typer.Argument(help="Question about the indexed code.")],
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Restrict to one project id."),
    ] = None,
    conversation: Annotated[
        str | None,
        typer.Option("--conversation", "-c", help="Continue an existing conversation."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of chunks to retrieve."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .coderag.db.")] = None,
) -> None:
    """Answer a question using retrieved code as context."""
    with handle_errors(console):
        cfg = load_config()
        require_api_keys(console, cfg.embedding.model, cfg.generation.model)
        with open_services(console, db, cfg=cfg) as svc:
            result = svc.retriever.retrieve(
                text, project_id=project, top_k=top_k, conversation_id=conversation
            )

    console.print(Panel(Markdown(result.answer), title="[bold]Answer[/]", expand=False))
    if result.sources:
        table = Table("#", "Source", "Lines", "Score", title="Sources", title_justify="left")
        for i, src in enumerate(result.sources, start=1):
            table.add_row(
                str(i),
                escape(f"{src.project_name}/{src.file_path}"),
                f"{src.start_line}-{src.end_line}",
                f"{src.score:.3f}",
            )
        console.print(table)
    console.print(f"[dim]Conversation: {result.conversation_id}[/]")


def search_cmd(
    text: Annotated[str, typer.Argument(help="Search text.")],
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Restrict to one project id."),
    ] = None,
    file_type: Annotated[
        str | None,
        typer.Option("--file-type", "-t", help="code | markdown | config | text"),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .coderag.db.")] = None,
) -> None:
    """Semantic search over indexed chunks (no answer generation)."""
    with handle_errors(console):
        cfg = load_config()
        require_api_keys(console, cfg.embedding.model)
        with open_services(console, db, cfg=cfg) as svc:
            results = svc.retriever.search(
                text, project_id=project, file_type=file_type, top_k=top_k
            )

    if not results:
        console.print(f"[yellow]{NO_SEARCH_RESULTS}[/]")
        return

    for i, r in enumerate(results, start=1):
        console.print(
            f"[bold]{i}.[/] {escape(r.project_name)}/{escape(r.file_path)}"
            f":{r.start_line}-{r.end_line}  [dim]score {r.score:.3f}[/]"
        )
        console.print(escape(r.content), highlight=False)
        console.print()
