"""Vector database storage using ChromaDB."""

import asyncio
import hashlib
import json
import logging
import re
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from knowledge_engine.exceptions import KnowledgeBaseNotFoundError
from knowledge_engine.models.chunk import ChunkMetadata, EmbeddedChunk, make_chunk_id
from knowledge_engine.models.search import RetrievalResult

logger = logging.getLogger(__name__)

# ChromaDB collection names: 3-63 chars of [A-Za-z0-9._-], alphanumeric at both ends
_VALID_COLLECTION_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]$")


class VectorStore:
    """Chunk embedding storage in ChromaDB, one collection per knowledge base.

    Similarity uses cosine distance; scores returned by
    ``similarity_search`` are cosine similarities clamped to [0, 1].
    Blocking ChromaDB calls are moved to a worker thread so that they can
    overlap with other retrieval work on the event loop.
    """

    def __init__(
        self,
        persist_directory: str = "./data/vectordb",
        collection_prefix: str = "kb_",
        client: Any | None = None,
    ):
        """Initialize vector store.

        Args:
            persist_directory: Directory for persistent storage
            collection_prefix: Prefix of every knowledge base collection
            client: Pre-built ChromaDB client (tests use an ephemeral one)
        """
        self.persist_directory = persist_directory
        self.collection_prefix = collection_prefix

        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=ChromaSettings(
                anonymized_telemetry=False,
                allow_reset=True,
            ),
        )

        logger.info(
            f"Initialized VectorStore at '{persist_directory}' (prefix '{collection_prefix}')"
        )

    def collection_name(self, knowledge_base_id: str) -> str:
        """Map a knowledge base id to a valid ChromaDB collection name."""
        if not knowledge_base_id:
            raise ValueError("knowledge_base_id cannot be empty")
        name = f"{self.collection_prefix}{knowledge_base_id}"
        if _VALID_COLLECTION_NAME.match(name) and ".." not in name:
            return name
        digest = hashlib.sha1(knowledge_base_id.encode("utf-8")).hexdigest()[:24]
        return f"{self.collection_prefix}{digest}"

    def _collection_names(self) -> list[str]:
        # Older chromadb releases return Collection objects, newer ones names
        return [c if isinstance(c, str) else c.name for c in self._client.list_collections()]

    def _get_or_create_collection(self, knowledge_base_id: str):
        # Embeddings are always supplied by the caller, so no embedding function
        return self._client.get_or_create_collection(
            name=self.collection_name(knowledge_base_id),
            metadata={"hnsw:space": "cosine", "knowledge_base_id": knowledge_base_id},
            embedding_function=None,
        )

    def _get_collection(self, knowledge_base_id: str):
        if not self.has_knowledge_base(knowledge_base_id):
            raise KnowledgeBaseNotFoundError(knowledge_base_id)
        return self._client.get_collection(
            name=self.collection_name(knowledge_base_id),
            embedding_function=None,
        )

    def has_knowledge_base(self, knowledge_base_id: str) -> bool:
        return self.collection_name(knowledge_base_id) in self._collection_names()

    def list_knowledge_bases(self) -> list[str]:
        """List ids of every knowledge base with a collection."""
        knowledge_bases = []
        for name in self._collection_names():
            if not name.startswith(self.collection_prefix):
                continue
            collection = self._client.get_collection(name=name, embedding_function=None)
            metadata = collection.metadata or {}
            knowledge_bases.append(
                metadata.get("knowledge_base_id", name[len(self.collection_prefix):])
            )
        return sorted(knowledge_bases)

    @staticmethod
    def _to_chroma_metadata(version: str | int, metadata: ChunkMetadata) -> dict[str, Any]:
        # ChromaDB accepts str, int, float and bool values only (no None, no lists)
        chroma_metadata: dict[str, Any] = {
            "source_file": metadata.source_file,
            "chunk_index": metadata.chunk_index,
            "total_chunks": metadata.total_chunks,
            "version": str(version),
        }
        if metadata.document_title is not None:
            chroma_metadata["document_title"] = metadata.document_title
        if metadata.section_path is not None:
            chroma_metadata["section_path"] = json.dumps(metadata.section_path)
        if metadata.extra:
            chroma_metadata["extra"] = json.dumps(metadata.extra, default=str)
        return chroma_metadata

    @staticmethod
    def _from_chroma_metadata(chroma_metadata: dict[str, Any]) -> ChunkMetadata:
        section_path = chroma_metadata.get("section_path")
        extra = chroma_metadata.get("extra")
        return ChunkMetadata(
            source_file=chroma_metadata.get("source_file", "unknown"),
            chunk_index=chroma_metadata.get("chunk_index", 0),
            total_chunks=chroma_metadata.get("total_chunks", 1),
            document_title=chroma_metadata.get("document_title"),
            section_path=json.loads(section_path) if section_path is not None else None,
            extra=json.loads(extra) if extra else {},
        )

    async def insert(
        self,
        knowledge_base_id: str,
        version: str | int,
        embedded_chunks: list[EmbeddedChunk],
    ) -> int:
        """Store embedded chunks for a knowledge base version.

        Chunk ids are derived from version, source file and chunk index, so
        inserting the same chunks again replaces them instead of
        duplicating them.

        Args:
            knowledge_base_id: Target knowledge base (collection is created on demand)
            version: Corpus version the chunks belong to
            embedded_chunks: Chunks with their embeddings

        Returns:
            Number of chunks written

        Raises:
            ValueError: If embedded_chunks is empty
        """
        if not embedded_chunks:
            raise ValueError("Cannot insert empty embedded_chunks list")

        ids = []
        documents = []
        metadatas = []
        embeddings = []

        for embedded in embedded_chunks:
            chunk = embedded.chunk
            chroma_metadata = self._to_chroma_metadata(version, chunk.metadata)
            chroma_metadata["content_with_context"] = chunk.content_with_context

            ids.append(make_chunk_id(version, chunk))
            documents.append(chunk.content)
            metadatas.append(chroma_metadata)
            embeddings.append(embedded.embedding)

        def _upsert():
            collection = self._get_or_create_collection(knowledge_base_id)
            collection.upsert(
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            logger.error(f"✗ Failed to insert chunks into '{knowledge_base_id}': {e}")
            raise

        logger.info(
            f"Inserted {len(ids)} chunks into knowledge base '{knowledge_base_id}' "
            f"(version {version})"
        )
        return len(ids)

    async def similarity_search(
        self,
        knowledge_base_id: str,
        query_embedding: list[float],
        limit: int = 10,
    ) -> list[RetrievalResult]:
        """Nearest-neighbour search by cosine similarity.

        Args:
            knowledge_base_id: Knowledge base to search
            query_embedding: Query embedding vector
            limit: Maximum number of results

        Returns:
            Results best first, ``score`` = cosine similarity

        Raises:
            ValueError: If query_embedding is empty or limit is invalid
            KnowledgeBaseNotFoundError: If the knowledge base was never ingested
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")
        if limit < 1:
            raise ValueError("limit must be at least 1")

        def _query():
            collection = self._get_collection(knowledge_base_id)
            n_results = min(limit, collection.count())
            if n_results == 0:
                return None
            return collection.query(
                query_embeddings=[query_embedding],
                n_results=n_results,
                include=["documents", "metadatas", "distances"],
            )

        raw = await asyncio.to_thread(_query)

        results: list[RetrievalResult] = []
        if raw and raw["ids"] and raw["ids"][0]:
            for i, chunk_id in enumerate(raw["ids"][0]):
                chroma_metadata = raw["metadatas"][0][i] or {}
                distance = raw["distances"][0][i]
                metadata = self._from_chroma_metadata(chroma_metadata)

                # ChromaDB cosine distance = 1 - cosine similarity
                score = max(0.0, min(1.0, 1.0 - distance))

                results.append(
                    RetrievalResult(
                        id=chunk_id,
                        content=raw["documents"][0][i],
                        score=score,
                        content_with_context=chroma_metadata.get("content_with_context"),
                        document_title=metadata.document_title,
                        section_path=metadata.section_path,
                        metadata=metadata,
                    )
                )

        logger.debug(
            f"Vector search in '{knowledge_base_id}' returned {len(results)} results "
            f"(limit={limit})"
        )
        return results

    async def delete_by_knowledge_base(
        self,
        knowledge_base_id: str,
        version: str | int | None = None,
    ) -> int:
        """Delete a knowledge base, or only one of its versions.

        Returns:
            Number of chunks deleted (0 if the knowledge base does not exist)
        """

        def _delete() -> int:
            if not self.has_knowledge_base(knowledge_base_id):
                return 0
            collection = self._get_collection(knowledge_base_id)
            if version is None:
                deleted = collection.count()
                self._client.delete_collection(name=self.collection_name(knowledge_base_id))
                return deleted
            matches = collection.get(where={"version": str(version)})
            if matches["ids"]:
                collection.delete(ids=matches["ids"])
            return len(matches["ids"])

        deleted = await asyncio.to_thread(_delete)
        scope = f"version {version} of " if version is not None else ""
        logger.info(f"Deleted {deleted} chunks from {scope}knowledge base '{knowledge_base_id}'")
        return deleted

    async def delete_by_source_file(self, knowledge_base_id: str, source_file: str) -> int:
        """Delete every chunk of one source file (all versions).

        Returns:
            Number of chunks deleted
        """

        def _delete() -> int:
            if not self.has_knowledge_base(knowledge_base_id):
                return 0
            collection = self._get_collection(knowledge_base_id)
            matches = collection.get(where={"source_file": source_file})
            if matches["ids"]:
                collection.delete(ids=matches["ids"])
            return len(matches["ids"])

        deleted = await asyncio.to_thread(_delete)
        if deleted:
            logger.info(
                f"Deleted {deleted} chunks of '{source_file}' from '{knowledge_base_id}'"
            )
        else:
            logger.info(
                f"No chunks found for '{source_file}' in '{knowledge_base_id}' "
                "(already deleted or never ingested)"
            )
        return deleted

    async def delete_chunks(self, knowledge_base_id: str, chunk_ids: list[str]) -> int:
        """Delete chunks by id; ids that are not stored are ignored.

        Returns:
            Number of chunks deleted
        """

        def _delete() -> int:
            if not chunk_ids or not self.has_knowledge_base(knowledge_base_id):
                return 0
            collection = self._get_collection(knowledge_base_id)
            existing = collection.get(ids=chunk_ids)["ids"]
            if existing:
                collection.delete(ids=existing)
            return len(existing)

        deleted = await asyncio.to_thread(_delete)
        logger.info(f"Deleted {deleted} chunks by id from '{knowledge_base_id}'")
        return deleted

    async def count_chunks(self, knowledge_base_id: str | None = None) -> int:
        """Count chunks in one knowledge base, or across all of them.

        Raises:
            KnowledgeBaseNotFoundError: If a named knowledge base does not exist
        """

        def _count() -> int:
            if knowledge_base_id is not None:
                return self._get_collection(knowledge_base_id).count()
            return sum(
                self._client.get_collection(name=name, embedding_function=None).count()
                for name in self._collection_names()
                if name.startswith(self.collection_prefix)
            )

        return await asyncio.to_thread(_count)
