"""Data models for the knowledge engine."""

from knowledge_engine.models.chunk import Chunk, ChunkMetadata, EmbeddedChunk, make_chunk_id
from knowledge_engine.models.document import (
    IngestResult,
    MarkdownStructure,
    Section,
    SourceDocument,
)
from knowledge_engine.models.research import ResearchResult, SubQuery
from knowledge_engine.models.search import (
    RankedItem,
    RetrievalResponse,
    RetrievalResult,
    Thoroughness,
)
from knowledge_engine.models.tool import ToolDefinition, ToolResult

__all__ = [
    # Document models
    "Section",
    "MarkdownStructure",
    "SourceDocument",
    "IngestResult",
    # Chunk models
    "Chunk",
    "ChunkMetadata",
    "EmbeddedChunk",
    "make_chunk_id",
    # Search models
    "Thoroughness",
    "RetrievalResult",
    "RankedItem",
    "RetrievalResponse",
    # Research models
    "SubQuery",
    "ResearchResult",
    # Tool models
    "ToolDefinition",
    "ToolResult",
]
