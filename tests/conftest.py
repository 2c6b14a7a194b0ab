"""Pytest configuration and shared fixtures."""

import re
import zlib

import pytest

from knowledge_engine.models.chunk import ChunkMetadata
from knowledge_engine.models.search import RetrievalResult


GUIDE_MARKDOWN = """# Guide

Welcome to the guide.

## Setup

Prepare your machine before installing anything.

### Installation

Run the installer and follow the prompts on screen.

## Usage

Start the service and open the dashboard.
"""


class BagOfWordsEmbedder:
    """Deterministic stand-in for the embedding API.

    Words are hashed into a fixed number of buckets, so texts sharing
    words get a high cosine similarity.
    """

    def __init__(self, dimensions: int = 1024):
        self.dimensions = dimensions
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for word in re.findall(r"\w+", text.lower()):
            vector[zlib.crc32(word.encode("utf-8")) % self.dimensions] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    async def embed_text(self, text: str) -> list[float]:
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    async def close(self):
        pass


@pytest.fixture
def guide_markdown():
    """Small markdown document with a three-level heading hierarchy."""
    return GUIDE_MARKDOWN


@pytest.fixture
def embedder():
    return BagOfWordsEmbedder()


@pytest.fixture
def make_result():
    """Factory for RetrievalResult objects."""

    def _make(
        result_id: str,
        score: float = 0.5,
        content: str | None = None,
        source_file: str = "docs/guide.md",
        section_path: list[str] | None = None,
        document_title: str | None = None,
    ) -> RetrievalResult:
        content = content if content is not None else f"Content of {result_id}"
        return RetrievalResult(
            id=result_id,
            content=content,
            score=score,
            content_with_context=f"# {document_title or 'Doc'}\n\n{content}",
            document_title=document_title,
            section_path=section_path,
            metadata=ChunkMetadata(source_file=source_file),
        )

    return _make
