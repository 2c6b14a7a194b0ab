"""Chunk-related Pydantic models for contextual chunking."""

from typing import Any

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Metadata stored with every chunk.

    Known fields are typed; anything else goes into ``extra`` so callers
    can attach their own attributes without losing the schema.
    """

    source_file: str = Field(default="unknown", description="Path of the source document")
    chunk_index: int = Field(default=0, ge=0, description="Chunk index within the document")
    total_chunks: int = Field(default=1, ge=0, description="Number of chunks in the document")
    document_title: str | None = Field(default=None, description="Title of the source document")
    section_path: list[str] | None = Field(
        default=None, description="Heading path locating the chunk, root first"
    )
    extra: dict[str, Any] = Field(default_factory=dict)


class Chunk(BaseModel):
    """A contextual text chunk produced by the chunker."""

    content: str
    content_with_context: str = Field(
        description="Content prefixed with document title and section path (markdown only)"
    )
    index: int = Field(ge=0, description="Chunk index (non-negative)")
    metadata: ChunkMetadata


class EmbeddedChunk(BaseModel):
    """Chunk with embedding vector."""

    chunk: Chunk
    embedding: list[float]


def make_chunk_id(version: str | int, chunk: Chunk) -> str:
    """Deterministic chunk id shared by the vector and keyword stores.

    Re-ingesting the same file at the same version yields the same ids, so
    inserts are idempotent and both stores agree on identity for fusion.
    """
    return f"{version}::{chunk.metadata.source_file}::{chunk.metadata.chunk_index}"
