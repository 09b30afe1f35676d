"""Retriever: query embedding, vector search, hydration, conversation upkeep.

retrieve():
  1. Reject blank queries before any embedding call.
  2. Embed the query and fetch the top-K matches (optional project filter).
  3. Zero matches: fixed "not found" answer, no LLM call, no messages.
  4. Hydrate every matched chunk in one batched lookup and assemble the
     context in vector-rank order.
  5. Load recent history (or open a new titled conversation), generate the
     answer, then persist both messages and the count bump atomically.

search() is the same pipeline without generation, cached in the KV store.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from typing import Protocol

from coderag.config import CodeRagConfig
from coderag.db.cache import KeyValueCache
from coderag.db.models import Conversation, HydratedChunk, Message, SourceReference
from coderag.db.repository import Repository
from coderag.db.vectors import VectorMatch, VectorStore
from coderag.errors import NotFoundError, ValidationError
from coderag.rag.answer import Answer, fallback_title
from coderag.rag.assembler import ContextItem, assemble

logger = logging.getLogger(__name__)

NOT_FOUND_ANSWER = (
    "I couldn't find any relevant code in the indexed projects for your query. "
    "Try indexing more files or rephrasing your question."
)
NO_SEARCH_RESULTS = "No matching code found"


class QueryEmbedder(Protocol):
    def embed_query(self, text: str) -> list[float]: ...


class Generator(Protocol):
    def generate(
        self, query: str, context: Sequence[ContextItem], history: Sequence[Message] = ()
    ) -> Answer: ...

    def title(self, query: str) -> str: ...


@dataclass
class RetrievalResult:
    answer: str
    conversation_id: str
    sources: list[SourceReference] = field(default_factory=list)
    context: list[ContextItem] = field(default_factory=list)
    tokens_used: int | None = None

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "conversation_id": self.conversation_id,
            "sources": [s.to_dict() for s in self.sources],
            "tokens_used": self.tokens_used,
        }


@dataclass
class SearchResult:
    chunk_id: str
    content: str
    file_path: str
    project_name: str
    start_line: int
    end_line: int
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


class Retriever:
    """Serve grounded answers and plain semantic search over indexed chunks.

    Args:
        repo: Relational store.
        embedder: Anything with ``embed_query`` (normally EmbeddingClient).
        vectors: Vector index for the configured embedding model.
        generator: Answer/title generator (normally AnswerGenerator).
        cache: KV cache for search results; ``None`` disables caching.
        config: Retrieval defaults (top_k, history_limit, search_cache_ttl).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: QueryEmbedder,
        vectors: VectorStore,
        generator: Generator | None = None,
        cache: KeyValueCache | None = None,
        config: CodeRagConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._vectors = vectors
        self._generator = generator
        self._cache = cache
        self._cfg = (config or CodeRagConfig()).retrieval
        self._clock = clock

    # ------------------------------------------------------------------
    # Retrieve (RAG answer)
    # ------------------------------------------------------------------

    def retrieve(
        self,
        query: str,
        project_id: str | None = None,
        top_k: int | None = None,
        conversation_id: str | None = None,
    ) -> RetrievalResult:
        """Answer *query* from the indexed code.

        Raises:
            ValidationError: Blank query or non-positive top_k.
            NotFoundError: Unknown project or conversation.
            QuotaExceededError: Embedding or LLM quota is used up.
        """
        query = _require_query(query)
        k = self._top_k(top_k)
        if self._generator is None:
            raise ValidationError("retrieve() needs an answer generator; use search() instead")
        self._require_project(project_id)

        conversation = None
        if conversation_id is not None:
            conversation = self._repo.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError("conversation", conversation_id)

        matches = self._vectors.query(
            self._embedder.embed_query(query), top_k=k, filters={"project_id": project_id}
        )

        if not matches:
            logger.info("No vector matches for query (project=%s)", project_id or "all")
            if conversation is None:
                conversation = self._open_conversation(project_id, fallback_title(query))
            return RetrievalResult(answer=NOT_FOUND_ANSWER, conversation_id=conversation.id)

        hydrated = self._repo.hydrate_chunks([m.id for m in matches])
        context = assemble(matches, hydrated)
        sources = _sources(matches, hydrated)

        if conversation is None:
            history: list[Message] = []
            conversation = self._open_conversation(project_id, self._generator.title(query))
        else:
            history = self._repo.recent_messages(conversation.id, self._cfg.history_limit)

        answer = self._generator.generate(query, context, history)

        now = int(self._clock())
        self._repo.record_exchange(
            Message(
                id=str(uuid.uuid4()),
                conversation_id=conversation.id,
                role="user",
                content=query,
                created_at=now,
            ),
            Message(
                id=str(uuid.uuid4()),
                conversation_id=conversation.id,
                role="assistant",
                content=answer.text,
                sources=sources,
                created_at=now,
            ),
        )
        return RetrievalResult(
            answer=answer.text,
            conversation_id=conversation.id,
            sources=sources,
            context=context,
            tokens_used=answer.tokens_used,
        )

    # ------------------------------------------------------------------
    # Search (no generation)
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        project_id: str | None = None,
        file_type: str | None = None,
        top_k: int | None = None,
    ) -> list[SearchResult]:
        """Return the closest chunks, best first. Cache hits skip embedding."""
        query = _require_query(query)
        k = self._top_k(top_k)
        self._require_project(project_id)

        key = f"search:{query}:{project_id or 'all'}:{file_type or 'any'}:{k}"
        if self._cache is not None:
            cached = self._cache.get_json(key)
            if cached is not None:
                logger.debug("Search cache hit: %s", key)
                return [SearchResult(**r) for r in cached]

        matches = self._vectors.query(
            self._embedder.embed_query(query),
            top_k=k,
            filters={"project_id": project_id, "file_type": file_type},
        )
        if not matches:
            return []

        hydrated = self._repo.hydrate_chunks([m.id for m in matches])
        results = [
            SearchResult(
                chunk_id=item.chunk_id,
                content=item.content,
                file_path=item.file_path,
                project_name=item.project_name,
                start_line=item.start_line,
                end_line=item.end_line,
                score=item.score,
            )
            for item in assemble(matches, hydrated)
        ]
        if self._cache is not None and results:
            self._cache.put_json(key, [r.to_dict() for r in results], ttl=self._cfg.search_cache_ttl)
        return results

    # ------------------------------------------------------------------
    # Conversations + read-back
    # ------------------------------------------------------------------

    def history(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Last *limit* messages of a conversation, oldest first."""
        if self._repo.get_conversation(conversation_id) is None:
            raise NotFoundError("conversation", conversation_id)
        return self._repo.recent_messages(conversation_id, limit or self._cfg.history_limit)

    def file_content(self, project_id: str, relative_path: str) -> str:
        """Rebuild a file's text from its stored chunks.

        Chunks are joined in start-line order; lines already emitted by the
        previous chunk's overlap are skipped. Whitespace-only spans are never
        stored, so their lines come back empty.
        """
        record = self._repo.get_file_by_path(project_id, relative_path)
        if record is None:
            raise NotFoundError("file", relative_path)

        lines: list[str] = []
        for chunk in self._repo.list_file_chunks(record.id):
            next_line = len(lines) + 1
            if chunk.start_line > next_line:
                lines.extend([""] * (chunk.start_line - next_line))
            chunk_lines = chunk.content.split("\n")
            lines.extend(chunk_lines[max(0, next_line - chunk.start_line) :])
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _top_k(self, top_k: int | None) -> int:
        k = self._cfg.top_k if top_k is None else top_k
        if k < 1:
            raise ValidationError(f"top_k must be >= 1, got {k}")
        return k

    def _require_project(self, project_id: str | None) -> None:
        if project_id is not None and self._repo.get_project(project_id) is None:
            raise NotFoundError("project", project_id)

    def _open_conversation(self, project_id: str | None, title: str) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            project_id=project_id,
            title=title,
            created_at=int(self._clock()),
        )
        self._repo.add_conversation(conversation)
        return conversation


def _require_query(query: str) -> str:
    if not query or not query.strip():
        raise ValidationError("Query must not be empty")
    return query.strip()


def _sources(
    matches: Sequence[VectorMatch], hydrated: dict[str, HydratedChunk]
) -> list[SourceReference]:
    """One reference per match in rank order; unhydrated matches use index metadata."""
    sources = []
    for match in matches:
        chunk = hydrated.get(match.id)
        meta = match.metadata
        sources.append(
            SourceReference(
                chunk_id=match.id,
                file_path=chunk.relative_path if chunk else meta.file_path,
                project_name=chunk.project_name if chunk else "",
                start_line=meta.start_line,
                end_line=meta.end_line,
                score=match.score,
            )
        )
    return sources
