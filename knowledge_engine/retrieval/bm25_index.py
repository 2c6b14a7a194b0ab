"""BM25 keyword search over chunks, persisted per knowledge base."""

import asyncio
import hashlib
import logging
import pickle
import re
from pathlib import Path
from typing import Any

from rank_bm25 import BM25Plus

from knowledge_engine.exceptions import KnowledgeBaseNotFoundError
from knowledge_engine.models.chunk import Chunk, ChunkMetadata, make_chunk_id
from knowledge_engine.models.search import RetrievalResult

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens; punctuation is dropped."""
    return TOKEN_PATTERN.findall(text.lower())


class BM25Index:
    """In-memory BM25 index over one corpus of chunk texts.

    Every entry keeps an arbitrary payload dict next to its text so search
    hits can be turned back into full results without another lookup.
    """

    def __init__(
        self,
        persist_path: Path | None = None,
        k1: float = 1.5,
        b: float = 0.75,
    ):
        """Initialize BM25 index.

        Args:
            persist_path: Pickle file the index is saved to and loaded from
            k1: BM25 k1 parameter (term frequency saturation)
            b: BM25 b parameter (length normalization)
        """
        self.persist_path = persist_path
        self.k1 = k1
        self.b = b

        self.doc_ids: list[str] = []
        self.texts: list[str] = []
        self.payloads: dict[str, dict[str, Any]] = {}
        self.tokenized_corpus: list[list[str]] = []
        self.bm25: BM25Plus | None = None

    def __len__(self) -> int:
        return len(self.doc_ids)

    def add_documents(
        self,
        doc_ids: list[str],
        texts: list[str],
        payloads: list[dict[str, Any]],
    ) -> None:
        """Add or replace documents; an existing id is overwritten.

        Raises:
            ValueError: If the three lists differ in length
        """
        if len(doc_ids) != len(texts) or len(doc_ids) != len(payloads):
            raise ValueError("doc_ids, texts, and payloads must have same length")

        existing = set(doc_ids) & set(self.payloads)
        if existing:
            self._drop(existing)

        for doc_id, text, payload in zip(doc_ids, texts, payloads):
            self.doc_ids.append(doc_id)
            self.texts.append(text)
            self.payloads[doc_id] = payload
            self.tokenized_corpus.append(tokenize(text))

        self._rebuild_bm25()
        logger.debug(f"Added {len(doc_ids)} documents to BM25 index ({len(self)} total)")

    def remove_where(self, **criteria: Any) -> int:
        """Remove documents whose payload matches every given key/value.

        Returns:
            Number of documents removed
        """
        matching = {
            doc_id
            for doc_id, payload in self.payloads.items()
            if all(payload.get(key) == value for key, value in criteria.items())
        }
        if matching:
            self._drop(matching)
            self._rebuild_bm25()
        return len(matching)

    def remove_ids(self, doc_ids: list[str]) -> int:
        """Remove documents by id; unknown ids are ignored."""
        present = set(doc_ids) & set(self.payloads)
        if present:
            self._drop(present)
            self._rebuild_bm25()
        return len(present)

    def _drop(self, doc_ids: set[str]) -> None:
        keep = [i for i, doc_id in enumerate(self.doc_ids) if doc_id not in doc_ids]
        self.doc_ids = [self.doc_ids[i] for i in keep]
        self.texts = [self.texts[i] for i in keep]
        self.tokenized_corpus = [self.tokenized_corpus[i] for i in keep]
        for doc_id in doc_ids:
            self.payloads.pop(doc_id, None)

    def search(self, query: str, top_k: int = 10) -> list[tuple[str, float]]:
        """Return up to top_k (doc_id, score) pairs, best first.

        Only documents sharing at least one token with the query are returned.
        BM25+ gives every term a positive idf, so a term that occurs in most of
        a small corpus still scores its matches above zero.
        """
        if self.bm25 is None or not self.doc_ids:
            return []

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        wanted = set(query_tokens)
        matching = [
            i for i, tokens in enumerate(self.tokenized_corpus) if not wanted.isdisjoint(tokens)
        ]
        if not matching:
            return []

        scores = self.bm25.get_scores(query_tokens)
        top_indices = sorted(matching, key=lambda i: scores[i], reverse=True)[:top_k]

        return [(self.doc_ids[i], float(scores[i])) for i in top_indices]

    def _rebuild_bm25(self) -> None:
        if self.tokenized_corpus:
            self.bm25 = BM25Plus(self.tokenized_corpus, k1=self.k1, b=self.b)
        else:
            self.bm25 = None

    def save(self) -> None:
        """Persist the index to ``persist_path`` with pickle."""
        if self.persist_path is None:
            logger.warning("No persist_path configured, skipping save")
            return

        self.persist_path.parent.mkdir(parents=True, exist_ok=True)

        index_data = {
            "doc_ids": self.doc_ids,
            "texts": self.texts,
            "payloads": self.payloads,
            "tokenized_corpus": self.tokenized_corpus,
            "k1": self.k1,
            "b": self.b,
        }

        with open(self.persist_path, "wb") as f:
            pickle.dump(index_data, f)

        logger.debug(f"Saved BM25 index to {self.persist_path}")

    def load(self) -> bool:
        """Load a previously saved index.

        A corrupt file is logged and leaves the index empty.

        Returns:
            True if an index was loaded
        """
        if self.persist_path is None or not self.persist_path.exists():
            return False

        try:
            with open(self.persist_path, "rb") as f:
                index_data = pickle.load(f)

            self.doc_ids = index_data["doc_ids"]
            self.texts = index_data["texts"]
            self.payloads = index_data["payloads"]
            self.tokenized_corpus = index_data["tokenized_corpus"]
            self.k1 = index_data.get("k1", self.k1)
            self.b = index_data.get("b", self.b)
        except (OSError, pickle.UnpicklingError, EOFError, KeyError) as e:
            logger.error(f"✗ Failed to load BM25 index from {self.persist_path}: {e}")
            self.doc_ids = []
            self.texts = []
            self.payloads = {}
            self.tokenized_corpus = []
            self.bm25 = None
            return False

        self._rebuild_bm25()
        logger.info(f"Loaded BM25 index from {self.persist_path} with {len(self)} documents")
        return True


class KeywordStore:
    """Keyword (lexical) retrieval over chunks, one BM25 index per knowledge base.

    Indexes are cached in memory after first use and written back to
    ``index_directory`` after every change.
    """

    def __init__(
        self,
        index_directory: str | Path = "./data/keyword_index",
        k1: float = 1.5,
        b: float = 0.75,
    ):
        self.index_directory = Path(index_directory)
        self.k1 = k1
        self.b = b
        self._indexes: dict[str, BM25Index] = {}

        logger.info(f"Initialized KeywordStore at '{self.index_directory}' (k1={k1}, b={b})")

    def _index_path(self, knowledge_base_id: str) -> Path:
        if not knowledge_base_id:
            raise ValueError("knowledge_base_id cannot be empty")
        digest = hashlib.sha1(knowledge_base_id.encode("utf-8")).hexdigest()[:16]
        safe = re.sub(r"[^A-Za-z0-9_-]", "_", knowledge_base_id)[:48]
        return self.index_directory / f"{safe}-{digest}.pkl"

    def _get_index(self, knowledge_base_id: str, create: bool = False) -> BM25Index | None:
        index = self._indexes.get(knowledge_base_id)
        if index is not None:
            return index

        index = BM25Index(self._index_path(knowledge_base_id), k1=self.k1, b=self.b)
        if not index.load() and not create:
            return None

        self._indexes[knowledge_base_id] = index
        return index

    def has_knowledge_base(self, knowledge_base_id: str) -> bool:
        return self._get_index(knowledge_base_id) is not None

    async def add_chunks(
        self,
        knowledge_base_id: str,
        version: str | int,
        chunks: list[Chunk],
    ) -> int:
        """Index chunks under the same ids the vector store uses.

        Returns:
            Number of chunks indexed
        """
        if not chunks:
            return 0

        doc_ids = [make_chunk_id(version, chunk) for chunk in chunks]
        texts = [chunk.content_with_context for chunk in chunks]
        payloads = [
            {
                "content": chunk.content,
                "content_with_context": chunk.content_with_context,
                "metadata": chunk.metadata.model_dump(),
                "source_file": chunk.metadata.source_file,
                "version": str(version),
            }
            for chunk in chunks
        ]

        index = self._get_index(knowledge_base_id, create=True)

        def _add():
            index.add_documents(doc_ids, texts, payloads)
            try:
                index.save()
            except Exception:
                # Keep memory and disk in step
                index.remove_ids(doc_ids)
                raise

        await asyncio.to_thread(_add)
        logger.info(f"Indexed {len(chunks)} chunks for keyword search in '{knowledge_base_id}'")
        return len(chunks)

    async def search(
        self,
        knowledge_base_id: str,
        query: str,
        limit: int = 10,
    ) -> list[RetrievalResult]:
        """BM25 search; scores are raw BM25 values (unbounded, not normalized).

        Raises:
            KnowledgeBaseNotFoundError: If the knowledge base has no keyword index
        """
        index = self._get_index(knowledge_base_id)
        if index is None:
            raise KnowledgeBaseNotFoundError(knowledge_base_id)

        hits = await asyncio.to_thread(index.search, query, limit)

        results = []
        for doc_id, score in hits:
            payload = index.payloads[doc_id]
            metadata = ChunkMetadata.model_validate(payload["metadata"])
            results.append(
                RetrievalResult(
                    id=doc_id,
                    content=payload["content"],
                    score=score,
                    content_with_context=payload["content_with_context"],
                    document_title=metadata.document_title,
                    section_path=metadata.section_path,
                    metadata=metadata,
                )
            )

        logger.debug(
            f"Keyword search in '{knowledge_base_id}' returned {len(results)} results "
            f"(limit={limit})"
        )
        return results

    async def delete_by_knowledge_base(
        self,
        knowledge_base_id: str,
        version: str | int | None = None,
    ) -> int:
        """Drop a knowledge base's index, or only the chunks of one version."""
        index = self._get_index(knowledge_base_id)
        if index is None:
            return 0

        if version is None:
            removed = len(index)
            self._indexes.pop(knowledge_base_id, None)
            self._index_path(knowledge_base_id).unlink(missing_ok=True)
            return removed

        removed = index.remove_where(version=str(version))
        await asyncio.to_thread(index.save)
        return removed

    async def delete_by_source_file(self, knowledge_base_id: str, source_file: str) -> int:
        index = self._get_index(knowledge_base_id)
        if index is None:
            return 0

        removed = index.remove_where(source_file=source_file)
        if removed:
            await asyncio.to_thread(index.save)
        return removed
