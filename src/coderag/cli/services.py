"""Wire the database, quota counters and pipeline objects for one CLI command."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from coderag.cli.errors import EXIT_USER_ERROR, err_no_api_key, err_no_db
from coderag.config import CodeRagConfig, load_config
from coderag.db.cache import KeyValueCache, QuotaCounter
from coderag.db.connection import open_database
from coderag.db.repository import Repository
from coderag.db.vectors import VectorStore
from coderag.ingest.embeddings import EMBEDDING_CAPABILITY, EmbeddingClient
from coderag.ingest.indexer import Indexer
from coderag.projects import ProjectService
from coderag.rag import llm_client
from coderag.rag.answer import QUERY_CAPABILITY, AnswerGenerator
from coderag.rag.retriever import Retriever

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: CodeRagConfig
    conn: sqlite3.Connection
    repo: Repository
    cache: KeyValueCache
    vectors: VectorStore
    embedder: EmbeddingClient
    generator: AnswerGenerator
    indexer: Indexer
    retriever: Retriever
    projects: ProjectService


def resolve_db(db: Path | None, cfg: CodeRagConfig) -> Path:
    """--db wins over config/env."""
    return db if db is not None else Path(cfg.database.path)


def build_services(conn: sqlite3.Connection, cfg: CodeRagConfig) -> Services:
    repo = Repository(conn)
    cache = KeyValueCache(conn)
    embedding_quota = QuotaCounter(cache, EMBEDDING_CAPABILITY, cfg.embedding.daily_limit)
    query_quota = QuotaCounter(cache, QUERY_CAPABILITY, cfg.generation.daily_limit)

    vectors = VectorStore.for_model(
        repo,
        cfg.embedding.model,
        cfg.embedding.dimensions,
        batch_size=cfg.indexing.vector_batch_size,
    )
    embedder = EmbeddingClient(
        embedding_quota, model=cfg.embedding.model, dimensions=cfg.embedding.dimensions
    )
    generator = AnswerGenerator(
        query_quota,
        model=cfg.generation.model,
        title_model=cfg.generation.title_model,
        max_tokens=cfg.generation.max_tokens,
        history_messages=cfg.generation.history_messages,
    )
    return Services(
        config=cfg,
        conn=conn,
        repo=repo,
        cache=cache,
        vectors=vectors,
        embedder=embedder,
        generator=generator,
        indexer=Indexer(repo, embedder, vectors, cfg),
        retriever=Retriever(repo, embedder, vectors, generator, cache, cfg),
        projects=ProjectService(repo, vectors, embedding_quota, query_quota),
    )


def require_api_keys(console: Console, *models: str) -> None:
    """Exit with an actionable message if a provider key is missing."""
    for model in models:
        try:
            llm_client.validate_api_key(model)
        except EnvironmentError:
            provider = llm_client.provider_of(model)
            console.print(err_no_api_key(provider, llm_client.env_var_for(model)))
            raise typer.Exit(EXIT_USER_ERROR)


@contextmanager
def open_services(
    console: Console,
    db: Path | None = None,
    *,
    must_exist: bool = True,
    cfg: CodeRagConfig | None = None,
) -> Iterator[Services]:
    """Open the database (creating it only when *must_exist* is False)."""
    cfg = cfg or load_config()
    db_path = resolve_db(db, cfg)
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(EXIT_USER_ERROR)

    conn = open_database(db_path)
    try:
        services = build_services(conn, cfg)
        purged = services.cache.purge_expired()
        if purged:
            logger.debug("Purged %d expired cache entries", purged)
        yield services
    finally:
        conn.close()
