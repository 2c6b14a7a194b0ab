"""Ingestion service: chunk, embed and index documents into a knowledge base."""

from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

from knowledge_engine.clients.openai_client import OpenAIClient
from knowledge_engine.exceptions import IngestionError
from knowledge_engine.logging_config import get_logger, log_progress
from knowledge_engine.models.chunk import Chunk, EmbeddedChunk, make_chunk_id
from knowledge_engine.models.document import IngestResult, SourceDocument
from knowledge_engine.processing.chunker import ContextualChunker
from knowledge_engine.retrieval.bm25_index import KeywordStore
from knowledge_engine.storage.vector_store import VectorStore

logger = get_logger(__name__)

DEFAULT_INGEST_EXTENSIONS = (".md", ".txt")


class IngestionStage(str, Enum):
    """Pipeline stage a document is in, reported when ingestion fails."""

    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORING = "storing"
    INDEXING = "indexing"


class IngestionService:
    """Service orchestrating the ingestion pipeline.

    For every document:
    1. Chunk with contextual metadata
    2. Embed ``content_with_context`` in batches
    3. Store embeddings in the vector store
    4. Index chunks for keyword search

    Documents are processed one at a time so that large corpora never
    have to be held in memory at once.
    """

    def __init__(
        self,
        chunker: ContextualChunker,
        embedder: OpenAIClient,
        vector_store: VectorStore,
        keyword_store: KeywordStore,
        embedding_batch_size: int = 100,
    ):
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.keyword_store = keyword_store
        self.embedding_batch_size = embedding_batch_size

    async def ingest_documents(
        self,
        knowledge_base_id: str,
        version: str | int,
        files: Iterable[SourceDocument | Mapping[str, Any]],
        replace_existing: bool = True,
    ) -> IngestResult:
        """Ingest documents into a knowledge base version.

        Args:
            knowledge_base_id: Target knowledge base
            version: Corpus version label
            files: Documents (or ``{"path", "content"}`` mappings)
            replace_existing: Delete this version's chunks first

        Returns:
            IngestResult with document and chunk counts

        Raises:
            IngestionError: If any stage fails for any document
        """
        if replace_existing:
            await self.vector_store.delete_by_knowledge_base(knowledge_base_id, version)
            await self.keyword_store.delete_by_knowledge_base(knowledge_base_id, version)

        documents_processed = 0
        chunks_created = 0

        for file in files:
            doc = file if isinstance(file, SourceDocument) else SourceDocument.model_validate(file)
            chunks_created += await self._ingest_document(knowledge_base_id, version, doc)
            documents_processed += 1

        logger.info(
            f"✓ Ingestion COMPLETE for '{knowledge_base_id}' (version {version}): "
            f"{documents_processed} documents, {chunks_created} chunks"
        )
        return IngestResult(documents_processed=documents_processed, chunks_created=chunks_created)

    async def _ingest_document(
        self,
        knowledge_base_id: str,
        version: str | int,
        doc: SourceDocument,
    ) -> int:
        stage = IngestionStage.CHUNKING
        try:
            chunks = self.chunker.chunk_text(doc.content, doc.path)
            if not chunks:
                logger.info(f"Skipping '{doc.path}': no content to index")
                return 0

            stage = IngestionStage.EMBEDDING
            embedded_chunks = await self._embed_chunks(chunks)

            stage = IngestionStage.STORING
            await self.vector_store.insert(knowledge_base_id, version, embedded_chunks)

            stage = IngestionStage.INDEXING
            await self.keyword_store.add_chunks(knowledge_base_id, version, chunks)
        except Exception as e:
            error_msg = f"Ingestion of '{doc.path}' failed at stage '{stage.value}': {e}"
            logger.error(
                error_msg,
                exc_info=True,
                extra={"source_file": doc.path, "stage": stage.value},
            )
            if stage is IngestionStage.INDEXING:
                await self._rollback_vectors(knowledge_base_id, version, chunks)
            raise IngestionError(error_msg, stage=stage.value, source_file=doc.path) from e

        logger.info(f"Ingested '{doc.path}' ({len(chunks)} chunks)")
        return len(chunks)

    async def _rollback_vectors(
        self,
        knowledge_base_id: str,
        version: str | int,
        chunks: list[Chunk],
    ) -> None:
        """Remove a document's freshly stored vectors after keyword indexing failed."""
        chunk_ids = [make_chunk_id(version, chunk) for chunk in chunks]
        try:
            await self.vector_store.delete_chunks(knowledge_base_id, chunk_ids)
        except Exception as e:
            logger.error(
                f"✗ Rollback FAILED for {len(chunk_ids)} chunks in '{knowledge_base_id}': {e}"
            )
        else:
            logger.warning(
                f"⚠ Rolled back {len(chunk_ids)} vector chunks in '{knowledge_base_id}' "
                "after keyword indexing failed"
            )

    async def _embed_chunks(self, chunks: list[Chunk]) -> list[EmbeddedChunk]:
        """Embed chunks with their contextual prefix, batch by batch."""
        texts = [chunk.content_with_context for chunk in chunks]
        embeddings: list[list[float]] = []

        for batch_start in range(0, len(texts), self.embedding_batch_size):
            batch = texts[batch_start : batch_start + self.embedding_batch_size]
            embeddings.extend(await self.embedder.embed_batch(batch))
            if len(texts) > self.embedding_batch_size:
                log_progress(
                    logger,
                    "Generating embeddings",
                    len(embeddings),
                    len(texts),
                    batch_size=self.embedding_batch_size,
                )

        return [
            EmbeddedChunk(chunk=chunk, embedding=embedding)
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]

    async def remove_source_file(self, knowledge_base_id: str, source_file: str) -> int:
        """Remove one source file from both stores (incremental sync).

        Returns:
            Number of vector store chunks deleted
        """
        deleted = await self.vector_store.delete_by_source_file(knowledge_base_id, source_file)
        await self.keyword_store.delete_by_source_file(knowledge_base_id, source_file)
        return deleted

    async def ingest_directory(
        self,
        knowledge_base_id: str,
        version: str | int,
        directory: str | Path,
        extensions: Sequence[str] = DEFAULT_INGEST_EXTENSIONS,
        replace_existing: bool = True,
    ) -> IngestResult:
        """Ingest every matching file below a local directory.

        Source paths are stored relative to ``directory`` with forward slashes.

        Raises:
            IngestionError: If the directory does not exist or ingestion fails
        """
        root = Path(directory)
        if not root.is_dir():
            raise IngestionError(f"Not a directory: {root}")

        wanted = {ext.lower() for ext in extensions}
        paths = sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in wanted)
        logger.info(f"Found {len(paths)} files to ingest under '{root}'")

        def _documents():
            for path in paths:
                yield SourceDocument(
                    path=path.relative_to(root).as_posix(),
                    content=path.read_text(encoding="utf-8", errors="replace"),
                )

        return await self.ingest_documents(
            knowledge_base_id,
            version,
            _documents(),
            replace_existing=replace_existing,
        )
