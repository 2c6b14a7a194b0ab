"""Contextual text chunking for document ingestion."""

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from knowledge_engine.logging_config import get_logger
from knowledge_engine.models.chunk import Chunk, ChunkMetadata
from knowledge_engine.models.document import MarkdownStructure, SourceDocument
from knowledge_engine.processing.markdown import (
    HEADING_PATTERN,
    build_contextual_prefix,
    extract_markdown_structure,
    get_section_path,
)

logger = get_logger(__name__)

DEFAULT_MARKDOWN_EXTENSIONS = (".md", ".markdown", ".mdx")

SENTENCE_TERMINATORS = ".!?"


class ContextualChunker:
    """Splits documents into overlapping fixed-size chunks with structural context.

    Chunk boundaries snap to paragraph, sentence or line breaks when one
    exists in the second half of the window. Chunks from markdown sources
    carry the document title and heading path, and a context-prefixed
    variant of their content used for embedding.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        min_chunk_size: int = 50,
        markdown_extensions: Sequence[str] = DEFAULT_MARKDOWN_EXTENSIONS,
    ):
        """Initialize the contextual chunker.

        ``overlap`` is a soft target: break-point snapping can make the
        actual overlap larger or smaller, and overlap >= chunk_size is
        tolerated (the window always advances by at least one character).

        Args:
            chunk_size: Target chunk size in characters
            overlap: Characters shared by consecutive chunks
            min_chunk_size: Chunks shorter than this are discarded
            markdown_extensions: Extensions that enable contextual metadata

        Raises:
            ValueError: If chunk_size is not positive or a size is negative
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0:
            raise ValueError("overlap must be non-negative")
        if min_chunk_size < 0:
            raise ValueError("min_chunk_size must be non-negative")

        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_chunk_size = min_chunk_size
        self.markdown_extensions = tuple(ext.lower() for ext in markdown_extensions)

    def is_markdown(self, source_file: str) -> bool:
        return source_file.lower().endswith(self.markdown_extensions)

    def chunk_text(self, text: str, source_file: str) -> list[Chunk]:
        """Split one document into contextual chunks.

        Args:
            text: Raw document text
            source_file: Source path, stored as ``metadata.source_file``

        Returns:
            Chunks in document order; ``total_chunks`` is the same on all
            of them and ``chunk_index`` runs from 0 without gaps
        """
        if not text.strip():
            return []

        structure = (
            extract_markdown_structure(text, source_file)
            if self.is_markdown(source_file)
            else None
        )

        if len(text) <= self.chunk_size:
            pieces = [(0, len(text), text.strip())]
        else:
            pieces = self._split_with_overlap(text)

        total_chunks = len(pieces)
        chunks = [
            self._build_chunk(text, start, end, content, idx, total_chunks, source_file, structure)
            for idx, (start, end, content) in enumerate(pieces)
        ]

        logger.debug(
            f"Chunked '{source_file}' ({len(text)} chars) into {total_chunks} chunks "
            f"(chunk_size={self.chunk_size}, overlap={self.overlap})"
        )
        return chunks

    def chunk_files(
        self,
        files: Iterable[SourceDocument | Mapping[str, Any]],
    ) -> list[Chunk]:
        """Chunk several documents; each keeps its own chunk numbering.

        Args:
            files: Documents (or ``{"path", "content"}`` mappings)

        Returns:
            All chunks, grouped by file in input order
        """
        all_chunks: list[Chunk] = []
        for file in files:
            doc = file if isinstance(file, SourceDocument) else SourceDocument.model_validate(file)
            all_chunks.extend(self.chunk_text(doc.content, doc.path))
        return all_chunks

    def _split_with_overlap(self, text: str) -> list[tuple[int, int, str]]:
        """Slide a window over text, snapping each end to a natural break.

        Returns:
            (start, end, trimmed content) for every kept slice
        """
        pieces: list[tuple[int, int, str]] = []
        first_slice: tuple[int, int, str] | None = None
        text_length = len(text)
        start = 0

        while start < text_length:
            end = start + self.chunk_size
            if end < text_length:
                end = self._find_break_point(text, start, end)
            else:
                end = text_length

            content = text[start:end].strip()
            if first_slice is None and content:
                first_slice = (start, end, content)
            if content and len(content) >= self.min_chunk_size:
                pieces.append((start, end, content))

            if end >= text_length:
                break

            # Always advance, even when overlap >= the slice length
            start = max(start + 1, end - self.overlap)

        if not pieces and first_slice is not None:
            pieces.append(first_slice)

        return pieces

    def _find_break_point(self, text: str, start: int, end: int) -> int:
        """Pick a chunk end in priority: paragraph, sentence, line, raw end."""
        midpoint = start + self.chunk_size / 2

        paragraph_break = text.rfind("\n\n", start, end)
        if paragraph_break != -1 and paragraph_break >= midpoint:
            return paragraph_break + 2

        sentence_break = self._find_sentence_break(text, math.ceil(midpoint), end)
        if sentence_break != -1:
            return sentence_break

        line_break = text.rfind("\n", start, end)
        if line_break != -1 and line_break > midpoint:
            return line_break + 1

        return end

    def _find_sentence_break(self, text: str, min_pos: int, max_pos: int) -> int:
        """Find the last sentence end in [min_pos, max_pos], scanning backwards.

        Returns:
            Offset just past the terminator, or -1 if none was found
        """
        for i in range(min(max_pos, len(text) - 1) - 1, min_pos - 1, -1):
            if text[i] in SENTENCE_TERMINATORS and text[i + 1].isspace():
                return i + 1
        return -1

    def _context_position(self, text: str, start: int, end: int) -> int:
        """Offset of the first body line of a slice.

        A slice that opens with headings belongs to the section those
        headings introduce, so leading heading and blank lines are skipped.
        """
        position = start
        for line in text[start:end].splitlines(keepends=True):
            stripped = line.strip()
            if stripped and not HEADING_PATTERN.match(stripped):
                return position
            position += len(line)
        return start

    def _build_chunk(
        self,
        text: str,
        start: int,
        end: int,
        content: str,
        index: int,
        total_chunks: int,
        source_file: str,
        structure: MarkdownStructure | None,
    ) -> Chunk:
        metadata = ChunkMetadata(
            source_file=source_file,
            chunk_index=index,
            total_chunks=total_chunks,
        )

        if structure is None:
            return Chunk(
                content=content,
                content_with_context=content,
                index=index,
                metadata=metadata,
            )

        position = self._context_position(text, start, end)
        section_path = get_section_path(structure.sections, position)
        metadata.document_title = structure.title
        metadata.section_path = section_path

        return Chunk(
            content=content,
            content_with_context=build_contextual_prefix(structure.title, section_path) + content,
            index=index,
            metadata=metadata,
        )


def chunk_text(
    text: str,
    source_file: str,
    chunk_size: int = 1000,
    overlap: int = 200,
    min_chunk_size: int = 50,
) -> list[Chunk]:
    """Chunk a single document with a throwaway ContextualChunker."""
    chunker = ContextualChunker(
        chunk_size=chunk_size,
        overlap=overlap,
        min_chunk_size=min_chunk_size,
    )
    return chunker.chunk_text(text, source_file)


def chunk_files(
    files: Iterable[SourceDocument | Mapping[str, Any]],
    chunk_size: int = 1000,
    overlap: int = 200,
    min_chunk_size: int = 50,
) -> list[Chunk]:
    """Chunk several documents with the same options."""
    chunker = ContextualChunker(
        chunk_size=chunk_size,
        overlap=overlap,
        min_chunk_size=min_chunk_size,
    )
    return chunker.chunk_files(files)
