"""Search result models shared by the storage and retrieval layers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from knowledge_engine.exceptions import UnknownThoroughnessError
from knowledge_engine.models.chunk import ChunkMetadata


class Thoroughness(str, Enum):
    """Retrieval tiers, in increasing latency and quality."""

    FAST = "fast"
    BALANCED = "balanced"
    THOROUGH = "thorough"

    @classmethod
    def parse(cls, value: "Thoroughness | str") -> "Thoroughness":
        """Coerce a tier name into the enum.

        Raises:
            UnknownThoroughnessError: If the value names no known tier
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnknownThoroughnessError(value) from None


@dataclass
class RetrievalResult:
    """Unified search result from vector search, keyword search, fusion and reranking.

    ``score`` depends on the stage that produced the result (cosine
    similarity, RRF score or normalized LLM relevance) and is not
    comparable across tiers.

    Attributes:
        id: Unique chunk identifier
        content: Raw chunk text
        score: Relevance/ranking score (higher is better)
        content_with_context: Chunk text with title and section prefix
        document_title: Title of the source document
        section_path: Heading path locating the chunk
        metadata: Chunk metadata (source file, chunk index, ...)
    """

    id: str
    content: str
    score: float
    content_with_context: str | None = None
    document_title: str | None = None
    section_path: list[str] | None = None
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)

    @property
    def source_file(self) -> str:
        return self.metadata.source_file

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "content": self.content,
            "score": self.score,
            "content_with_context": self.content_with_context,
            "document_title": self.document_title,
            "section_path": self.section_path,
            "metadata": self.metadata.model_dump(),
        }


@dataclass
class RankedItem:
    """Generic rank-fusion input: an id, a score and an arbitrary payload.

    Only the position of the item in its list is used as its rank.
    """

    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievalResponse:
    """Result of a single retrieve() call."""

    results: list[RetrievalResult]
    thoroughness: Thoroughness
    latency_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "thoroughness": self.thoroughness.value,
            "latency_ms": self.latency_ms,
        }
