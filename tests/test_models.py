"""Tests for data models."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

from knowledge_engine.exceptions import (
    ConfigurationError,
    KnowledgeBaseNotFoundError,
    UnknownThoroughnessError,
)
from knowledge_engine.models import (
    Chunk,
    ChunkMetadata,
    EmbeddedChunk,
    IngestResult,
    RankedItem,
    ResearchResult,
    RetrievalResult,
    Section,
    SourceDocument,
    SubQuery,
    Thoroughness,
    ToolDefinition,
    ToolResult,
    make_chunk_id,
)


class TestThoroughness:
    """Test tier parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("fast", Thoroughness.FAST),
            ("BALANCED", Thoroughness.BALANCED),
            ("Thorough", Thoroughness.THOROUGH),
            (Thoroughness.FAST, Thoroughness.FAST),
        ],
    )
    def test_parse(self, value, expected):
        assert Thoroughness.parse(value) is expected

    def test_unknown_tier(self):
        with pytest.raises(UnknownThoroughnessError, match="Unknown thoroughness level") as exc_info:
            Thoroughness.parse("exhaustive")

        assert exc_info.value.value == "exhaustive"
        assert isinstance(exc_info.value, ConfigurationError)
        assert isinstance(exc_info.value, ValueError)

    @settings(deadline=None, max_examples=100)
    @given(st.text(max_size=20).filter(lambda s: s.lower() not in {"fast", "balanced", "thorough"}))
    def test_anything_else_is_rejected(self, value):
        with pytest.raises(UnknownThoroughnessError):
            Thoroughness.parse(value)


class TestChunkModels:
    """Test chunk models and ids."""

    def test_metadata_defaults(self):
        metadata = ChunkMetadata()

        assert metadata.source_file == "unknown"
        assert metadata.chunk_index == 0
        assert metadata.section_path is None
        assert metadata.extra == {}

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError):
            ChunkMetadata(chunk_index=-1)
        with pytest.raises(ValidationError):
            Chunk(content="x", content_with_context="x", index=-1, metadata=ChunkMetadata())

    def test_chunk_id_is_deterministic(self):
        chunk = Chunk(
            content="x",
            content_with_context="x",
            index=2,
            metadata=ChunkMetadata(source_file="docs/a.md", chunk_index=2),
        )

        assert make_chunk_id(3, chunk) == "3::docs/a.md::2"
        assert make_chunk_id("3", chunk) == make_chunk_id(3, chunk)

    def test_embedded_chunk(self):
        chunk = Chunk(content="x", content_with_context="x", index=0, metadata=ChunkMetadata())

        embedded = EmbeddedChunk(chunk=chunk, embedding=[0.1, 0.2])

        assert embedded.embedding == [0.1, 0.2]


class TestDocumentModels:
    def test_section_is_frozen(self):
        section = Section(heading="Setup", level=2, start_pos=0, end_pos=10)

        with pytest.raises(ValidationError):
            section.heading = "Other"

    def test_section_level_bounds(self):
        with pytest.raises(ValidationError):
            Section(heading="Too deep", level=7, start_pos=0, end_pos=1)

    def test_source_document_requires_path(self):
        with pytest.raises(ValidationError):
            SourceDocument(path="", content="text")

    def test_ingest_result_counts_non_negative(self):
        with pytest.raises(ValidationError):
            IngestResult(documents_processed=-1, chunks_created=0)


class TestResultModels:
    def test_retrieval_result_to_dict(self):
        result = RetrievalResult(
            id="1::a.md::0",
            content="text",
            score=0.7,
            section_path=["A"],
            metadata=ChunkMetadata(source_file="a.md"),
        )

        data = result.to_dict()

        assert result.source_file == "a.md"
        assert data["id"] == "1::a.md::0"
        assert data["section_path"] == ["A"]
        assert data["metadata"]["source_file"] == "a.md"

    def test_ranked_item_defaults(self):
        assert RankedItem("a", 1.0).payload == {}

    def test_research_result_to_dict(self, make_result):
        result = ResearchResult(
            topic="auth", searches_performed=3, iterations=1, findings=[make_result("a")]
        )

        data = result.to_dict()

        assert data["searches_performed"] == 3
        assert data["findings"][0]["id"] == "a"

    def test_sub_query_requires_text(self):
        with pytest.raises(ValidationError):
            SubQuery(query="")


class TestToolModels:
    @pytest.mark.asyncio
    async def test_tool_definition_holds_handler(self):
        async def execute(args):
            return ToolResult(success=True, output=args)

        tool = ToolDefinition(name="echo", description="Echo", execute=execute)

        assert (await tool.execute({"a": 1})).output == {"a": 1}
        assert tool.model_dump() == {"name": "echo", "description": "Echo", "parameters": {}}


def test_knowledge_base_not_found_message():
    error = KnowledgeBaseNotFoundError("docs")

    assert error.knowledge_base_id == "docs"
    assert "docs" in str(error)
    assert isinstance(error, LookupError)
