"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
from unittest.mock import MagicMock

import pytest
import yaml

from coderag.db.cache import KeyValueCache
from coderag.db.connection import Database
from coderag.db.repository import Repository
from coderag.db.schema import initialize
from coderag.db.vectors import VectorStore

DIMS = 4
START_TIME = 1_700_000_000.0


class FakeClock:
    """Settable Unix clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_vector(text: str, dims: int = DIMS) -> list[float]:
    """Deterministic, strictly positive embedding derived from *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i] + 1) / 256 for i in range(dims)]


class FakeEmbedder:
    """Stands in for EmbeddingClient; records every batch it is asked to embed."""

    def __init__(self, dims: int = DIMS, fail_on_call: int | None = None) -> None:
        self.dims = dims
        self.calls: list[list[str]] = []
        self.fail_on_call = fail_on_call

    def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("provider unavailable")
        return [fake_vector(t, self.dims) for t in texts]

    def embed_query(self, text):
        return self.embed([text])[0]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".coderag.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_db, clock):
    return KeyValueCache(tmp_db, clock=clock)


@pytest.fixture
def vectors(repo):
    return VectorStore.for_model(repo, "test/fake-embedder", DIMS)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def no_global_config(tmp_path, monkeypatch):
    """Point the global config at a missing file and clear CODERAG_* env vars."""
    monkeypatch.setattr("coderag.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("CODERAG_EMBEDDING_MODEL", "CODERAG_GENERATION_MODEL", "CODERAG_DB"):
        monkeypatch.delenv(var, raising=False)


def fake_embedding_response(model, input, **kwargs):
    """Stand-in for litellm.embedding(): one fake_vector per input, indexed."""
    response = MagicMock()
    response.data = [
        {"index": i, "embedding": fake_vector(text)} for i, text in enumerate(input)
    ]
    return response


def fake_completion(content: str, total_tokens: int | None = 42):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage.total_tokens = total_tokens
    return response


@pytest.fixture
def workspace(tmp_path, monkeypatch, no_global_config):
    """CWD with a coderag.yaml for 4-dim embeddings, an API key, and litellm stubbed.

    Returns the directory; the project to index lives in ``<workspace>/shop``.
    """
    (tmp_path / "coderag.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": DIMS}}), encoding="utf-8"
    )
    shop = tmp_path / "shop"
    (shop / "src").mkdir(parents=True)
    (shop / "src" / "cart.py").write_text(
        "class Cart:\n    def add(self, item):\n        self.items.append(item)\n",
        encoding="utf-8",
    )
    (shop / "README.md").write_text("# Shop\n\nA tiny shop.\n", encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.setattr("litellm.embedding", fake_embedding_response)
    return tmp_path
