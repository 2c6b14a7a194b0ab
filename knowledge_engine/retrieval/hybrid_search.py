"""Hybrid search combining vector and keyword search with RRF fusion."""

import asyncio
import logging

from knowledge_engine.clients.openai_client import OpenAIClient
from knowledge_engine.models.search import RetrievalResult
from knowledge_engine.retrieval.bm25_index import KeywordStore
from knowledge_engine.retrieval.rrf import DEFAULT_RRF_K, fuse_ranked_lists
from knowledge_engine.storage.vector_store import VectorStore

logger = logging.getLogger(__name__)


async def gather_fail_fast(*coros):
    """Run coroutines concurrently; the first failure cancels the others.

    Sibling tasks are cancelled and awaited before the first exception is
    re-raised, so none is left running or holding an unretrieved exception.
    """
    tasks = [asyncio.create_task(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class HybridSearchEngine:
    """Hybrid search combining vector similarity and BM25 keyword search.

    Both sub-searches run concurrently and are fused with Reciprocal Rank
    Fusion. ``min_score`` is applied to each sub-search in its own score
    space (cosine similarity, raw BM25) before fusion; the fused RRF
    scores are never filtered.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        keyword_store: KeywordStore,
        embedder: OpenAIClient,
        rrf_k: int = DEFAULT_RRF_K,
        candidate_floor: int = 20,
    ):
        """Initialize hybrid search engine.

        Args:
            vector_store: Vector database for semantic search
            keyword_store: BM25 indexes for keyword search
            embedder: Client used to embed queries
            rrf_k: RRF smoothing constant
            candidate_floor: Minimum candidates fetched per sub-search
        """
        self.vector_store = vector_store
        self.keyword_store = keyword_store
        self.embedder = embedder
        self.rrf_k = rrf_k
        self.candidate_floor = candidate_floor

    def candidate_count(self, limit: int) -> int:
        return max(limit * 2, self.candidate_floor)

    async def search(
        self,
        knowledge_base_id: str,
        query: str,
        limit: int = 5,
        min_score: float = 0.0,
    ) -> list[RetrievalResult]:
        """Perform hybrid search with RRF fusion.

        Args:
            knowledge_base_id: Knowledge base to search
            query: Query text
            limit: Number of fused results to return
            min_score: Floor applied to each sub-search before fusion

        Returns:
            Up to ``limit`` results, score = RRF score

        Raises:
            KnowledgeBaseNotFoundError: If the knowledge base does not exist
            Exception: Any sub-search failure fails the whole search
        """
        candidates = self.candidate_count(limit)
        logger.info(
            f"→ Hybrid Search START in '{knowledge_base_id}' - top_{limit} "
            f"from {candidates} candidates per sub-search"
        )

        vector_results, keyword_results = await gather_fail_fast(
            self.vector_search(knowledge_base_id, query, candidates, min_score),
            self.keyword_search(knowledge_base_id, query, candidates, min_score),
        )

        fused = fuse_ranked_lists([vector_results, keyword_results], k=self.rrf_k)
        results = fused[:limit]

        logger.info(
            f"✓ Hybrid Search COMPLETE: {len(vector_results)} vector + "
            f"{len(keyword_results)} keyword → {len(fused)} fused → top {len(results)}"
        )
        self._log_top(results, "RRF")
        return results

    async def vector_search(
        self,
        knowledge_base_id: str,
        query: str,
        limit: int,
        min_score: float = 0.0,
    ) -> list[RetrievalResult]:
        """Embed the query and run a cosine similarity search.

        Returns:
            Results with score >= min_score, best first
        """
        query_embedding = await self.embedder.embed_text(query)
        results = await self.vector_store.similarity_search(
            knowledge_base_id,
            query_embedding,
            limit,
        )
        filtered = [r for r in results if r.score >= min_score]
        logger.debug(
            f"  Vector Search - {len(filtered)}/{len(results)} results above min_score={min_score}"
        )
        return filtered

    async def keyword_search(
        self,
        knowledge_base_id: str,
        query: str,
        limit: int,
        min_score: float = 0.0,
    ) -> list[RetrievalResult]:
        """BM25 keyword search.

        Returns:
            Results with score >= min_score, best first
        """
        results = await self.keyword_store.search(knowledge_base_id, query, limit)
        filtered = [r for r in results if r.score >= min_score]
        logger.debug(
            f"  BM25 Keyword Search - {len(filtered)}/{len(results)} results "
            f"above min_score={min_score}"
        )
        return filtered

    @staticmethod
    def _log_top(results: list[RetrievalResult], label: str) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        for i, res in enumerate(results[:5], 1):
            logger.debug(
                f"    {i}. {label}={res.score:.4f} | source={res.source_file} | "
                f"chunk={res.metadata.chunk_index} | content={res.content[:80]}..."
            )
        if len(results) > 5:
            logger.debug(f"    ... and {len(results) - 5} more results")
