"""Tests for the ingestion pipeline."""

from unittest.mock import AsyncMock, Mock

import pytest

from knowledge_engine.exceptions import IngestionError
from knowledge_engine.models.document import SourceDocument
from knowledge_engine.processing.chunker import ContextualChunker
from knowledge_engine.retrieval.bm25_index import KeywordStore
from knowledge_engine.services.ingestion_service import IngestionService
from knowledge_engine.storage.vector_store import VectorStore


@pytest.fixture
def vector_store():
    store = Mock(spec=VectorStore)
    store.insert = AsyncMock(side_effect=lambda kb, version, chunks: len(chunks))
    store.delete_by_knowledge_base = AsyncMock(return_value=0)
    store.delete_by_source_file = AsyncMock(return_value=2)
    store.delete_chunks = AsyncMock(side_effect=lambda kb, ids: len(ids))
    return store


@pytest.fixture
def keyword_store():
    store = Mock(spec=KeywordStore)
    store.add_chunks = AsyncMock(side_effect=lambda kb, version, chunks: len(chunks))
    store.delete_by_knowledge_base = AsyncMock(return_value=0)
    store.delete_by_source_file = AsyncMock(return_value=2)
    return store


@pytest.fixture
def service(embedder, vector_store, keyword_store):
    chunker = ContextualChunker(chunk_size=100, overlap=20, min_chunk_size=10)
    return IngestionService(
        chunker=chunker,
        embedder=embedder,
        vector_store=vector_store,
        keyword_store=keyword_store,
        embedding_batch_size=2,
    )


LONG_TEXT = "First paragraph about setup.\n\n" * 8


class TestIngestDocuments:
    """Test document ingestion."""

    @pytest.mark.asyncio
    async def test_counts_and_store_calls(self, service, vector_store, keyword_store):
        result = await service.ingest_documents(
            "docs",
            1,
            [
                SourceDocument(path="long.txt", content=LONG_TEXT),
                {"path": "short.md", "content": "# Short\n\nA short markdown note."},
            ],
        )

        chunks_per_file = [len(c.args[2]) for c in vector_store.insert.await_args_list]
        assert result.documents_processed == 2
        assert result.chunks_created == sum(chunks_per_file)
        assert chunks_per_file[1] == 1
        assert keyword_store.add_chunks.await_count == 2

    @pytest.mark.asyncio
    async def test_replace_existing_clears_version_first(self, service, vector_store, keyword_store):
        await service.ingest_documents("docs", "v3", [SourceDocument(path="a.txt", content="Text.")])

        vector_store.delete_by_knowledge_base.assert_awaited_once_with("docs", "v3")
        keyword_store.delete_by_knowledge_base.assert_awaited_once_with("docs", "v3")

    @pytest.mark.asyncio
    async def test_keep_existing(self, service, vector_store):
        await service.ingest_documents(
            "docs", 1, [SourceDocument(path="a.txt", content="Text.")], replace_existing=False
        )

        vector_store.delete_by_knowledge_base.assert_not_called()

    @pytest.mark.asyncio
    async def test_embeds_contextual_content_in_batches(self, service, embedder, vector_store):
        await service.ingest_documents(
            "docs", 1, [SourceDocument(path="guide.md", content="# Guide\n\n" + LONG_TEXT)]
        )

        embedded = vector_store.insert.await_args.args[2]
        assert len(embedded) > 2
        assert all(len(batch) <= 2 for batch in embedder.calls)
        assert sum(len(batch) for batch in embedder.calls) == len(embedded)
        assert embedder.calls[0][0].startswith("# Guide\n")
        assert all(e.embedding for e in embedded)

    @pytest.mark.asyncio
    async def test_blank_document_is_skipped(self, service, vector_store, keyword_store):
        result = await service.ingest_documents(
            "docs", 1, [SourceDocument(path="empty.md", content="   \n")]
        )

        assert result.documents_processed == 1
        assert result.chunks_created == 0
        vector_store.insert.assert_not_called()
        keyword_store.add_chunks.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedding_failure_names_stage(self, service, embedder, vector_store):
        embedder.embed_batch = AsyncMock(side_effect=RuntimeError("rate limited"))

        with pytest.raises(IngestionError, match="stage 'embedding'") as exc_info:
            await service.ingest_documents("docs", 1, [SourceDocument(path="a.txt", content="Text.")])

        assert "a.txt" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        vector_store.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_indexing_failure_names_stage(self, service, keyword_store):
        keyword_store.add_chunks.side_effect = OSError("disk full")

        with pytest.raises(IngestionError, match="stage 'indexing'") as exc_info:
            await service.ingest_documents("docs", 1, [SourceDocument(path="a.txt", content="Text.")])

        assert exc_info.value.stage == "indexing"
        assert exc_info.value.source_file == "a.txt"

    @pytest.mark.asyncio
    async def test_indexing_failure_rolls_back_vectors(self, service, vector_store, keyword_store):
        keyword_store.add_chunks.side_effect = OSError("disk full")

        with pytest.raises(IngestionError):
            await service.ingest_documents(
                "docs", 2, [SourceDocument(path="a.txt", content="Text.")], replace_existing=False
            )

        vector_store.delete_chunks.assert_awaited_once_with("docs", ["2::a.txt::0"])

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_original_error(self, service, vector_store, keyword_store):
        keyword_store.add_chunks.side_effect = OSError("disk full")
        vector_store.delete_chunks.side_effect = RuntimeError("store offline")

        with pytest.raises(IngestionError, match="disk full") as exc_info:
            await service.ingest_documents("docs", 1, [SourceDocument(path="a.txt", content="Text.")])

        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_storing_failure_does_not_roll_back(self, service, vector_store):
        vector_store.insert.side_effect = RuntimeError("collection locked")

        with pytest.raises(IngestionError) as exc_info:
            await service.ingest_documents("docs", 1, [SourceDocument(path="a.txt", content="Text.")])

        assert exc_info.value.stage == "storing"
        vector_store.delete_chunks.assert_not_called()


class TestIngestDirectory:
    """Test ingestion of a local directory tree."""

    @pytest.mark.asyncio
    async def test_reads_matching_files_recursively(self, service, vector_store, tmp_path):
        (tmp_path / "guide.md").write_text("# Guide\n\nWelcome text.", encoding="utf-8")
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "notes.TXT").write_text("Some notes here.", encoding="utf-8")
        (tmp_path / "script.py").write_text("print('skip me')", encoding="utf-8")

        result = await service.ingest_directory("docs", 1, tmp_path)

        sources = [
            c.args[2][0].chunk.metadata.source_file for c in vector_store.insert.await_args_list
        ]
        assert result.documents_processed == 2
        assert sources == ["guide.md", "nested/notes.TXT"]

    @pytest.mark.asyncio
    async def test_custom_extensions(self, service, tmp_path):
        (tmp_path / "guide.md").write_text("# Guide\n\nWelcome text.", encoding="utf-8")
        (tmp_path / "page.mdx").write_text("# Page\n\nComponent docs.", encoding="utf-8")

        result = await service.ingest_directory("docs", 1, tmp_path, extensions=[".mdx"])

        assert result.documents_processed == 1

    @pytest.mark.asyncio
    async def test_missing_directory(self, service, tmp_path):
        with pytest.raises(IngestionError, match="Not a directory") as exc_info:
            await service.ingest_directory("docs", 1, tmp_path / "missing")

        assert exc_info.value.stage is None


@pytest.mark.asyncio
async def test_remove_source_file(service, vector_store, keyword_store):
    deleted = await service.remove_source_file("docs", "guide.md")

    assert deleted == 2
    vector_store.delete_by_source_file.assert_awaited_once_with("docs", "guide.md")
    keyword_store.delete_by_source_file.assert_awaited_once_with("docs", "guide.md")
