"""coderag database layer: relational store, vector index, key-value cache."""

from coderag.db.cache import KeyValueCache, QuotaCounter
from coderag.db.connection import Database, open_database
from coderag.db.migrations import MIGRATIONS, run_migrations
from coderag.db.repository import Repository
from coderag.db.schema import initialize
from coderag.db.vectors import (
    VectorMatch,
    VectorMetadata,
    VectorRecord,
    VectorStore,
    ensure_vec_table,
    model_to_slug,
    vec_table_name,
)

__all__ = [
    "Database",
    "open_database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
    "KeyValueCache",
    "QuotaCounter",
    "VectorStore",
    "VectorRecord",
    "VectorMatch",
    "VectorMetadata",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
