"""coderag rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from coderag.cli.errors import handle_errors
    with handle_errors(console):
        indexer.index(request)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.markup import escape

from coderag.config import ConfigError
from coderag.errors import (
    IndexingConflictError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)

logger = logging.getLogger(__name__)

EXIT_USER_ERROR = 1
EXIT_INTERNAL_ERROR = 2


def err_no_api_key(provider: str, env_var: str | None = None) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = env_var or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".coderag.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  coderag index PATH"
    )


def err_quota(exc: QuotaExceededError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        f"  The {exc.capability} counter resets at 00:00 UTC; "
        "raise the daily_limit in coderag.yaml to allow more."
    )


def err_not_found(exc: NotFoundError) -> str:
    hint = {
        "project": "  Run:  coderag projects list",
        "conversation": "  Omit --conversation to start a new one.",
    }.get(exc.kind, "  Check the identifier and try again.")
    return f"[yellow]{escape(str(exc))}[/]\n{hint}"


def err_conflict(exc: IndexingConflictError) -> str:
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        f"  If no other run is active:  coderag index PATH --force"
    )


def err_invalid(exc: Exception) -> str:
    return f"[red]Error:[/] {escape(str(exc))}"


def err_unexpected(exc: Exception) -> str:
    return (
        f"[red]Unexpected error:[/] {escape(type(exc).__name__)}: {escape(str(exc))}\n"
        "  Re-run with --verbose for details."
    )


@contextmanager
def handle_errors(console: Console) -> Iterator[None]:
    """Map coderag exceptions to a printed message and an exit code."""
    try:
        yield
    except typer.Exit:
        raise
    except QuotaExceededError as exc:
        console.print(err_quota(exc))
        raise typer.Exit(EXIT_USER_ERROR) from exc
    except NotFoundError as exc:
        console.print(err_not_found(exc))
        raise typer.Exit(EXIT_USER_ERROR) from exc
    except IndexingConflictError as exc:
        console.print(err_conflict(exc))
        raise typer.Exit(EXIT_USER_ERROR) from exc
    except (ValidationError, ConfigError) as exc:
        console.print(err_invalid(exc))
        raise typer.Exit(EXIT_USER_ERROR) from exc
    except Exception as exc:
        logger.debug("Unhandled error", exc_info=True)
        console.print(err_unexpected(exc))
        raise typer.Exit(EXIT_INTERNAL_ERROR) from exc
