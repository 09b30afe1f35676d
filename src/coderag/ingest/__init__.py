"""coderag ingest pipeline — chunkers, embedding client, indexer."""

from coderag.ingest.base import BaseChunker, ChunkSpan
from coderag.ingest.chunking import FileChunker, chunk_file
from coderag.ingest.code import CodeChunker, register_boundary_patterns
from coderag.ingest.config_chunker import ConfigChunker
from coderag.ingest.embeddings import EmbeddingClient
from coderag.ingest.filetypes import file_type, should_index
from coderag.ingest.hashing import hash_content
from coderag.ingest.indexer import IndexRequest, IndexResult, Indexer, SourceFile
from coderag.ingest.markdown import MarkdownChunker
from coderag.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "ChunkSpan",
    "CodeChunker",
    "ConfigChunker",
    "EmbeddingClient",
    "FileChunker",
    "IndexRequest",
    "IndexResult",
    "Indexer",
    "MarkdownChunker",
    "PlainTextChunker",
    "SourceFile",
    "chunk_file",
    "file_type",
    "hash_content",
    "register_boundary_patterns",
    "should_index",
]
