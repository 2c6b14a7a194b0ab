"""Tests for BM25 keyword indexing and the per-knowledge-base keyword store."""

import pytest

from knowledge_engine.exceptions import KnowledgeBaseNotFoundError
from knowledge_engine.models.chunk import Chunk, ChunkMetadata
from knowledge_engine.retrieval.bm25_index import BM25Index, KeywordStore, tokenize


def make_chunk(content: str, source_file: str, index: int = 0) -> Chunk:
    return Chunk(
        content=content,
        content_with_context=f"# Ops Handbook\n\n{content}",
        index=index,
        metadata=ChunkMetadata(
            source_file=source_file,
            chunk_index=index,
            total_chunks=1,
            document_title="Ops Handbook",
            section_path=[],
        ),
    )


@pytest.fixture
def handbook_chunks():
    return [
        make_chunk("Deploying with kubernetes clusters", "deploy.md"),
        make_chunk("Configuring the python runtime", "runtime.md"),
        make_chunk("Monitoring dashboards and alerts", "monitoring.md"),
        make_chunk("Backup and restore procedures", "backup.md"),
    ]


class TestTokenize:
    def test_lowercases_and_drops_punctuation(self):
        assert tokenize("Hello, World! OAuth2-flow") == ["hello", "world", "oauth2", "flow"]

    def test_empty(self):
        assert tokenize("  ...  ") == []


class TestBM25Index:
    """Test the in-memory BM25 index."""

    @pytest.fixture
    def index(self):
        index = BM25Index()
        index.add_documents(
            ["a", "b", "c"],
            ["the quick brown fox", "lazy dog sleeps", "python programming language"],
            [{"n": 1}, {"n": 2}, {"n": 3}],
        )
        return index

    def test_search_finds_matching_document(self, index):
        hits = index.search("fox", top_k=3)

        assert [doc_id for doc_id, _ in hits] == ["a"]
        assert hits[0][1] > 0

    def test_no_match_returns_nothing(self, index):
        assert index.search("kubernetes") == []
        assert index.search("!!!") == []

    def test_unique_term_found_in_two_document_corpus(self):
        index = BM25Index()
        index.add_documents(
            ["hooks", "commands"],
            ["module hooks fire on events", "module commands run on demand"],
            [{}, {}],
        )

        hits = index.search("hooks")

        assert [doc_id for doc_id, _ in hits] == ["hooks"]
        assert hits[0][1] > 0

    def test_term_in_every_document_still_matches(self):
        index = BM25Index()
        index.add_documents(
            ["a", "b"],
            ["module hooks", "module commands"],
            [{}, {}],
        )

        hits = index.search("module")

        assert sorted(doc_id for doc_id, _ in hits) == ["a", "b"]
        assert all(score > 0 for _, score in hits)

    def test_only_matching_documents_ranked(self, index):
        hits = index.search("quick python", top_k=3)

        assert sorted(doc_id for doc_id, _ in hits) == ["a", "c"]

    def test_empty_index(self):
        assert BM25Index().search("anything") == []

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ValueError, match="same length"):
            BM25Index().add_documents(["a"], ["text", "more"], [{}])

    def test_existing_id_is_replaced(self, index):
        index.add_documents(["a"], ["a red panda"], [{"n": 10}])

        assert len(index) == 3
        assert index.search("fox") == []
        assert index.search("panda")[0][0] == "a"
        assert index.payloads["a"] == {"n": 10}

    def test_remove_where(self, index):
        removed = index.remove_where(n=2)

        assert removed == 1
        assert len(index) == 2
        assert "b" not in index.payloads

    def test_save_and_load(self, index, tmp_path):
        index.persist_path = tmp_path / "index.pkl"
        index.save()

        loaded = BM25Index(tmp_path / "index.pkl")

        assert loaded.load()
        assert len(loaded) == 3
        assert loaded.search("fox")[0][0] == "a"

    def test_load_missing_file(self, tmp_path):
        assert not BM25Index(tmp_path / "missing.pkl").load()

    def test_load_corrupt_file_resets_index(self, tmp_path):
        path = tmp_path / "corrupt.pkl"
        path.write_bytes(b"\x00garbage")

        index = BM25Index(path)

        assert not index.load()
        assert len(index) == 0
        assert index.search("anything") == []


class TestKeywordStore:
    """Test knowledge-base scoped keyword search."""

    @pytest.fixture
    def store(self, tmp_path):
        return KeywordStore(index_directory=tmp_path / "keyword")

    @pytest.mark.asyncio
    async def test_add_and_search(self, store, handbook_chunks):
        indexed = await store.add_chunks("ops", 1, handbook_chunks)

        results = await store.search("ops", "kubernetes", limit=5)

        assert indexed == 4
        assert len(results) == 1
        result = results[0]
        assert result.id == "1::deploy.md::0"
        assert result.content == "Deploying with kubernetes clusters"
        assert result.content_with_context.startswith("# Ops Handbook")
        assert result.document_title == "Ops Handbook"
        assert result.section_path == []
        assert result.metadata.source_file == "deploy.md"
        assert result.score > 0

    @pytest.mark.asyncio
    async def test_failed_save_leaves_index_unchanged(self, store, handbook_chunks, monkeypatch):
        await store.add_chunks("ops", 1, handbook_chunks[:2])

        def failing_save(self):
            raise OSError("disk full")

        monkeypatch.setattr(BM25Index, "save", failing_save)

        with pytest.raises(OSError, match="disk full"):
            await store.add_chunks("ops", 1, handbook_chunks[2:])

        assert await store.search("ops", "monitoring dashboards") == []
        assert (await store.search("ops", "kubernetes"))[0].metadata.source_file == "deploy.md"

    @pytest.mark.asyncio
    async def test_add_empty_chunk_list(self, store):
        assert await store.add_chunks("ops", 1, []) == 0
        assert not store.has_knowledge_base("ops")

    @pytest.mark.asyncio
    async def test_unknown_knowledge_base(self, store):
        with pytest.raises(KnowledgeBaseNotFoundError):
            await store.search("missing", "anything")

    @pytest.mark.asyncio
    async def test_index_persists_across_instances(self, store, handbook_chunks):
        await store.add_chunks("ops", 1, handbook_chunks)

        reopened = KeywordStore(index_directory=store.index_directory)
        results = await reopened.search("ops", "python runtime")

        assert reopened.has_knowledge_base("ops")
        assert results[0].metadata.source_file == "runtime.md"

    @pytest.mark.asyncio
    async def test_delete_by_source_file(self, store, handbook_chunks):
        await store.add_chunks("ops", 1, handbook_chunks)

        removed = await store.delete_by_source_file("ops", "deploy.md")

        assert removed == 1
        assert await store.search("ops", "kubernetes") == []
        assert (await store.search("ops", "python"))[0].metadata.source_file == "runtime.md"

    @pytest.mark.asyncio
    async def test_delete_version(self, store, handbook_chunks):
        await store.add_chunks("ops", 1, handbook_chunks)
        await store.add_chunks("ops", 2, handbook_chunks)

        removed = await store.delete_by_knowledge_base("ops", version=1)

        assert removed == 4
        results = await store.search("ops", "kubernetes")
        assert [r.id for r in results] == ["2::deploy.md::0"]
        assert await store.delete_by_knowledge_base("ops", version=1) == 0

    @pytest.mark.asyncio
    async def test_delete_whole_knowledge_base(self, store, handbook_chunks):
        await store.add_chunks("ops", 1, handbook_chunks)

        removed = await store.delete_by_knowledge_base("ops")

        assert removed == 4
        assert not store.has_knowledge_base("ops")
        assert not KeywordStore(index_directory=store.index_directory).has_knowledge_base("ops")

    @pytest.mark.asyncio
    async def test_delete_missing_knowledge_base(self, store):
        assert await store.delete_by_knowledge_base("missing") == 0
        assert await store.delete_by_source_file("missing", "a.md") == 0
